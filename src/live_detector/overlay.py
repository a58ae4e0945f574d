from __future__ import annotations
import threading
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .errors import RenderFailure
from .models import DetectionResult

BOX_COLOR = (0, 255, 0, 255)
TEXT_COLOR = (255, 255, 255, 255)


class OverlayRenderer:
    """Draws detections onto transparent per-surface canvases.

    Each surface keeps a BGRA canvas sized to the frame, the PNG encoding of
    the last draw, and the detections that produced it.
    """

    def __init__(self, frame_size: Tuple[int, int]):
        self.frame_size = frame_size
        self.lock = threading.Lock()
        self._png: Dict[str, Optional[bytes]] = {}
        self._detections: Dict[str, List[DetectionResult]] = {}

    def resize(self, frame_size: Tuple[int, int]) -> None:
        """Match canvases to the geometry the camera actually delivers."""
        with self.lock:
            self.frame_size = (int(frame_size[0]), int(frame_size[1]))

    def _blank(self) -> np.ndarray:
        with self.lock:
            w, h = self.frame_size
        return np.zeros((h, w, 4), dtype=np.uint8)

    def draw(self, surface_id: str, target_id: str, detections: Sequence[DetectionResult]) -> None:
        canvas = self._blank()
        for det in detections:
            x, y, w, h = det.bounding_box.as_ints()
            cv2.rectangle(canvas, (x, y), (x + w, y + h), BOX_COLOR, 2)
            caption = f'{det.label} {det.confidence * 100:.0f}%'
            cv2.putText(canvas, caption, (x + 2, max(12, y - 4)), cv2.FONT_HERSHEY_SIMPLEX, 0.45, TEXT_COLOR, 1, cv2.LINE_AA)
        ok, enc = cv2.imencode('.png', canvas)
        if not ok:
            raise RenderFailure(f'Could not encode overlay for surface {surface_id!r}')
        with self.lock:
            self._png[surface_id] = enc.tobytes()
            self._detections[surface_id] = list(detections)

    def clear(self, surface_id: str) -> None:
        with self.lock:
            self._png.pop(surface_id, None)
            self._detections.pop(surface_id, None)

    def latest_png(self, surface_id: str) -> Optional[bytes]:
        with self.lock:
            return self._png.get(surface_id)

    def latest_detections(self, surface_id: str) -> List[DetectionResult]:
        with self.lock:
            return list(self._detections.get(surface_id, []))
