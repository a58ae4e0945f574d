"""Shared fakes for the loop's collaborators.

Each fake records its calls so tests can assert on resource release and
pipeline order without a camera.
"""
import time

import pytest

from live_detector.config import LoopConfig
from live_detector.models import BoundingBox, CapturedFrame, DetectionResult


def good_frame(data=b'frame-bytes', compressed=False):
    return CapturedFrame(data, compressed, 4, 6, 0.8)


def empty_frame():
    return CapturedFrame(b'', False, 0, 0, 0.8)


class FakeSource:
    """Scripted frame source; items may be frames, exceptions or callables."""

    def __init__(self, frames=None, init_ok=True, default=None):
        self.frames = list(frames or [])
        self.init_ok = init_ok
        self.default = default if default is not None else good_frame()
        self.init_calls = 0
        self.capture_calls = 0
        self.release_calls = 0
        self.clear_calls = 0

    def initialize(self, target_id):
        self.init_calls += 1
        return self.init_ok

    def capture(self, target_id):
        self.capture_calls += 1
        item = self.frames.pop(0) if self.frames else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item()
        return item

    def release(self, target_id):
        self.release_calls += 1

    def clear_display(self, surface_id):
        self.clear_calls += 1


class SlowSource(FakeSource):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def capture(self, target_id):
        time.sleep(self.delay)
        return super().capture(target_id)


class FakeDetector:
    def __init__(self, results=None, error=None, hook=None):
        self.results = results if results is not None else [
            DetectionResult('cat', 0.9, BoundingBox(1, 2, 3, 4)),
        ]
        self.error = error
        self.hook = hook
        self.calls = []

    def detect(self, data, height, width, quality):
        self.calls.append((data, height, width, quality))
        if self.hook is not None:
            self.hook()
        if self.error is not None:
            raise self.error
        return list(self.results)


class FakeRenderer:
    def __init__(self, error=None):
        self.error = error
        self.draws = []

    def draw(self, surface_id, target_id, detections):
        if self.error is not None:
            raise self.error
        self.draws.append((surface_id, target_id, list(detections)))


@pytest.fixture
def cfg():
    # Long interval: tests drive tick() by hand and the timer never fires.
    return LoopConfig(interval_ms=60_000, call_timeout_s=1.0)
