"""Detectors the live loop can drive.

The loop only depends on the ``Detector`` protocol: given encoded image bytes,
declared geometry and capture quality, return detections. ``MotionDetector``
is the built-in implementation: a running background (exponential moving
average of grayscale frames) is differenced against each new frame, the
thresholded mask is cleaned with morphology and every contour whose box area
lies within ``[min_area, max_area]`` becomes a ``motion`` detection. Low
capture quality raises the threshold to absorb JPEG noise.
"""
from __future__ import annotations
from typing import List, Optional, Protocol

import cv2
import numpy as np

from .config import LoopConfig
from .errors import DetectionFailure
from .models import BoundingBox, DetectionResult


class Detector(Protocol):
    def detect(self, data: bytes, height: int, width: int, quality: float) -> List[DetectionResult]:
        ...


class MotionDetector:
    label = 'motion'

    def __init__(self, *, threshold: int = 25, alpha: float = 0.05, morph_kernel: int = 3,
                 min_area: int = 50, max_area: int = 50000):
        self.threshold = threshold
        self.alpha = alpha
        self.morph_kernel = morph_kernel
        self.min_area = min_area
        self.max_area = max_area
        self._bg: Optional[np.ndarray] = None

    @classmethod
    def from_config(cls, cfg: LoopConfig) -> 'MotionDetector':
        return cls(threshold=cfg.threshold, alpha=cfg.alpha, min_area=cfg.min_area, max_area=cfg.max_area)

    def configure(self, cfg: LoopConfig):
        self.threshold = cfg.threshold
        self.alpha = cfg.alpha
        self.min_area = cfg.min_area
        self.max_area = cfg.max_area

    def reset(self):
        self._bg = None

    def _decode(self, data: bytes, height: int, width: int) -> np.ndarray:
        buf = np.frombuffer(data, dtype=np.uint8)
        gray = cv2.imdecode(buf, cv2.IMREAD_GRAYSCALE) if buf.size else None
        if gray is None:
            raise DetectionFailure(f'Could not decode image ({len(data)} bytes)')
        if gray.shape != (height, width):
            raise DetectionFailure(f'Frame geometry {gray.shape[1]}x{gray.shape[0]} does not match declared {width}x{height}')
        return gray

    def detect(self, data: bytes, height: int, width: int, quality: float) -> List[DetectionResult]:
        gray = self._decode(data, height, width)
        if self._bg is None or self._bg.shape != gray.shape:
            self._bg = gray.astype(np.float32)
            return []
        diff = cv2.absdiff(gray, cv2.convertScaleAbs(self._bg))
        thresh_value = self.threshold + (1.0 - min(1.0, max(0.0, quality))) * 10
        _, mask = cv2.threshold(diff, thresh_value, 255, cv2.THRESH_BINARY)
        if self.morph_kernel > 1:
            k = cv2.getStructuringElement(cv2.MORPH_RECT, (self.morph_kernel, self.morph_kernel))
            mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, k, iterations=1)
            mask = cv2.dilate(mask, k, iterations=1)
        # Moving pixels learn at a quarter rate so stale ghosts fade out.
        stable = mask == 0
        moving = ~stable
        self._bg[stable] = (1 - self.alpha) * self._bg[stable] + self.alpha * gray[stable]
        slow = self.alpha / 4
        self._bg[moving] = (1 - slow) * self._bg[moving] + slow * gray[moving]

        results: List[DetectionResult] = []
        cnts, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        for c in cnts:
            if not c.size:
                continue
            x, y, w, h = cv2.boundingRect(c)
            area = w * h
            if area < self.min_area or area > self.max_area:
                continue
            filled = float(np.count_nonzero(mask[y:y + h, x:x + w])) / area
            results.append(DetectionResult(self.label, round(min(1.0, filled), 4), BoundingBox(x, y, w, h)))
        results.sort(key=lambda r: r.confidence, reverse=True)
        return results
