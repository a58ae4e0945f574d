from .config import LoopConfig, load_config, save_config
from .models import BoundingBox, CapturedFrame, DetectionResult, LoopState, LoopStatus
from .errors import (AlreadyRunning, CaptureFailure, DecodeError, DecodeFailure, DetectionFailure,
                     InitializationFailure, LiveDetectorError, RenderFailure, TerminalInstability, TimeoutFailure)
from .decoder import compress_frame, decode_frame
from .camera import CameraFrameSource, FrameSource, SyntheticFrameSource
from .detector import Detector, MotionDetector
from .overlay import OverlayRenderer
from .controller import DetectionLoopController
from .events import SessionEvents
from .lifecycle import CameraLifecycle
from .summary import DetectionSummary, summarize
from .cli import main

__all__ = [
    'LoopConfig','load_config','save_config','BoundingBox','CapturedFrame','DetectionResult','LoopState','LoopStatus',
    'AlreadyRunning','CaptureFailure','DecodeError','DecodeFailure','DetectionFailure','InitializationFailure',
    'LiveDetectorError','RenderFailure','TerminalInstability','TimeoutFailure','compress_frame','decode_frame',
    'CameraFrameSource','FrameSource','SyntheticFrameSource','Detector','MotionDetector','OverlayRenderer',
    'DetectionLoopController','SessionEvents','CameraLifecycle','DetectionSummary','summarize','main'
]
