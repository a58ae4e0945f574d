from __future__ import annotations
import abc
import math
import threading
from typing import Optional

import cv2
import numpy as np

try:
    from picamera2 import Picamera2  # type: ignore
except ImportError:  # pragma: no cover
    Picamera2 = None  # type: ignore

from .config import LoopConfig
from .decoder import compress_frame
from .logging_utils import log
from .models import CapturedFrame


class FrameSource(abc.ABC):
    """Camera-like device the loop pulls frames from.

    ``capture`` JPEG-encodes the grabbed image at ``cfg.quality`` and gzips it
    when ``cfg.compress`` is set. An unreadable frame comes back as an empty
    ``CapturedFrame`` rather than an exception; the loop counts it as a
    capture failure.
    """

    def __init__(self, cfg: LoopConfig, overlay=None):
        self.cfg = cfg
        self.overlay = overlay
        self._lock = threading.Lock()
        self.latest_jpeg: Optional[bytes] = None

    @abc.abstractmethod
    def initialize(self, target_id: str) -> bool:
        ...

    @abc.abstractmethod
    def release(self, target_id: str) -> None:
        ...

    @abc.abstractmethod
    def _grab(self, target_id: str) -> Optional[np.ndarray]:
        ...

    def capture(self, target_id: str) -> CapturedFrame:
        quality = self.cfg.quality
        arr = self._grab(target_id)
        if arr is None or arr.size == 0:
            return CapturedFrame(b'', False, 0, 0, quality)
        h, w = arr.shape[:2]
        if self.overlay is not None:
            self.overlay.resize((w, h))
        ok, enc = cv2.imencode('.jpg', arr, [int(cv2.IMWRITE_JPEG_QUALITY), int(round(quality * 100))])
        if not ok:
            return CapturedFrame(b'', False, h, w, quality)
        data = enc.tobytes()
        with self._lock:
            self.latest_jpeg = data
        if self.cfg.compress:
            return CapturedFrame(compress_frame(data), True, h, w, quality)
        return CapturedFrame(data, False, h, w, quality)

    def latest_frame(self) -> Optional[bytes]:
        with self._lock:
            return self.latest_jpeg

    def clear_display(self, surface_id: str) -> None:
        if self.overlay is not None:
            self.overlay.clear(surface_id)


class CameraFrameSource(FrameSource):
    """Picamera2 when available, otherwise an OpenCV ``VideoCapture``."""

    def __init__(self, cfg: LoopConfig, overlay=None):
        super().__init__(cfg, overlay)
        self.cam = None
        self.cap = None

    def initialize(self, target_id: str) -> bool:
        if self.cam is not None or self.cap is not None:
            return True
        if Picamera2 is not None:
            self.cam = self._init_picamera()
            if self.cam is not None:
                return True
            log('Picamera2 unavailable; falling back to OpenCV capture', 'warn')
        return self._init_videocapture()

    def _init_picamera(self):
        try:
            cam = Picamera2()
        except Exception as e:
            log(f'Picamera2 open failed: {e}', 'error')
            return None
        w, h = self.cfg.frame_size
        try:
            video_config = cam.create_video_configuration(main={'size': (w, h), 'format': 'RGB888'})
            cam.configure(video_config)
        except Exception as e:
            log(f'Primary camera config failed ({e}); trying default format', 'warn')
            try:
                video_config = cam.create_video_configuration(main={'size': (w, h)})
                cam.configure(video_config)
            except Exception as e2:
                log(f'Fallback camera config failed: {e2}', 'error')
                self._close_quietly(cam)
                return None
        try:
            cam.start()
        except Exception as e:
            log(f'Camera start failed: {e}', 'error')
            self._close_quietly(cam)
            return None
        try:
            frame_duration_us = int(self.cfg.interval_ms * 1000)
            cam.set_controls({'FrameDurationLimits': (frame_duration_us, frame_duration_us)})
        except Exception as e:
            log(f'Setting FrameDurationLimits failed (continuing): {e}', 'warn')
        return cam

    @staticmethod
    def _close_quietly(cam) -> None:
        try:
            cam.close()
        except Exception as e:
            log(f'Closing camera after failed start raised: {e}', 'warn')

    def _init_videocapture(self) -> bool:
        cap = cv2.VideoCapture(self.cfg.camera_index)
        if not cap.isOpened():
            log(f'Camera {self.cfg.camera_index} could not be opened', 'error')
            cap.release()
            return False
        w, h = self.cfg.frame_size
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        self.cap = cap
        return True

    def _grab(self, target_id: str) -> Optional[np.ndarray]:
        if self.cam is not None:
            arr = self.cam.capture_array('main')
            return cv2.cvtColor(arr, cv2.COLOR_RGB2BGR)
        if self.cap is not None:
            ok, frame = self.cap.read()
            return frame if ok else None
        raise RuntimeError('Camera not initialized.')

    def release(self, target_id: str) -> None:
        if self.cam is not None:
            try:
                self.cam.stop()
                self.cam.close()
            finally:
                self.cam = None
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SyntheticFrameSource(FrameSource):
    """Moving bright square on a dark background; needs no hardware."""

    period_frames = 90

    def __init__(self, cfg: LoopConfig, overlay=None):
        super().__init__(cfg, overlay)
        self.frame_count = 0
        self.active = False

    def initialize(self, target_id: str) -> bool:
        self.active = True
        self.frame_count = 0
        return True

    def _grab(self, target_id: str) -> Optional[np.ndarray]:
        if not self.active:
            raise RuntimeError('Synthetic source not initialized.')
        w, h = self.cfg.frame_size
        frame = np.full((h, w, 3), 16, dtype=np.uint8)
        phase = self.frame_count % self.period_frames
        half = max(4, int(math.ceil(math.sqrt(max(self.cfg.min_area, 1)) / 2)) + 4)
        x = int(half + phase / self.period_frames * (w - 2 * half - 1))
        y = h // 2
        frame[max(0, y - half):min(h, y + half), max(0, x - half):min(w, x + half)] = 255
        self.frame_count += 1
        return frame

    def release(self, target_id: str) -> None:
        self.active = False
