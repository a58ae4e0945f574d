"""Fixed-interval capture -> decode -> detect -> render loop.

One timer thread per running controller calls ``tick()`` at a fixed cadence,
so ticks never overlap. Calls that cross the camera/detector boundary run on a
single I/O worker and are awaited with ``cfg.call_timeout_s``; a call that
stalls keeps that worker busy, so the following ticks time out as well and
the failure breaker opens.

Failure accounting is a plain counter in ``LoopState``: every failed tick
increments it, every non-empty capture resets it, and a tick that starts with
the counter at ``cfg.max_failures`` shuts the loop down as FAILED.
"""
from __future__ import annotations
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, List, Optional

from .config import LoopConfig
from .decoder import decode_frame
from .errors import (AlreadyRunning, CaptureFailure, InitializationFailure, LiveDetectorError,
                     TerminalInstability, TimeoutFailure)
from .logging_utils import log
from .models import DetectionResult, LoopState, LoopStatus

INIT_ERROR = 'Failed to initialize camera. Check that it is connected and not in use by another application.'


class DetectionLoopController:
    def __init__(self, source, detector, renderer, cfg: LoopConfig, *,
                 on_result: Optional[Callable[[List[DetectionResult]], None]] = None,
                 on_error: Optional[Callable[[LiveDetectorError], None]] = None):
        self.source = source
        self.detector = detector
        self.renderer = renderer
        self.cfg = cfg
        self.on_result = on_result
        self.on_error = on_error
        self._state = LoopState()
        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._cancel.set()
        self._thread: Optional[threading.Thread] = None
        self._released = True
        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix='live-io')

    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state.snapshot()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.status is LoopStatus.RUNNING

    # ---------- transitions ----------
    def start(self) -> None:
        with self._lock:
            if self._state.status is LoopStatus.RUNNING:
                raise AlreadyRunning('Detection loop is already running')
            try:
                ok = self._call(self.source.initialize, self.cfg.target_id)
            except Exception as e:
                log(f'Camera initialization raised: {e}', 'error')
                ok = False
            if not ok:
                self._state.status = LoopStatus.IDLE
                self._state.last_error = INIT_ERROR
                log(INIT_ERROR, 'error')
                err = InitializationFailure(INIT_ERROR)
                self._notify_error(err)
                raise err
            reset = getattr(self.detector, 'reset', None)
            if callable(reset):
                reset()
            self._state = LoopState(status=LoopStatus.RUNNING)
            self._released = False
            cancel = threading.Event()
            self._cancel = cancel
            self._thread = threading.Thread(target=self._run, args=(cancel,), name='detection-loop', daemon=True)
            self._thread.start()
        log(f'Detection loop started (interval {self.cfg.interval_ms}ms, max failures {self.cfg.max_failures})')

    def stop(self) -> None:
        with self._lock:
            self._cancel.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.cfg.call_timeout_s * 2 + self.cfg.interval_s + 1.0)
            if thread.is_alive():
                log('Detection loop thread did not exit in time; it will not tick again', 'warn')
        with self._lock:
            was_running = self._state.status is LoopStatus.RUNNING
            self._release_resources()
            self._state.status = LoopStatus.IDLE
            self._state.last_error = None
        if was_running:
            log('Detection loop stopped')

    def close(self) -> None:
        self.stop()
        self._io.shutdown(wait=False, cancel_futures=True)

    # ---------- loop ----------
    def _run(self, cancel: threading.Event) -> None:
        next_deadline = time.perf_counter() + self.cfg.interval_s
        while not cancel.wait(max(0.0, next_deadline - time.perf_counter())):
            self._tick(cancel)
            next_deadline += self.cfg.interval_s
            now = time.perf_counter()
            if next_deadline < now:
                next_deadline = now

    def tick(self) -> List[DetectionResult]:
        return self._tick(self._cancel)

    def _tick(self, cancel: threading.Event) -> List[DetectionResult]:
        with self._lock:
            if cancel.is_set() or self._state.status is not LoopStatus.RUNNING:
                return []
            if self._state.consecutive_failures >= self.cfg.max_failures:
                self._terminal()
                return []
            self._state.ticks += 1
        target_id, surface_id = self.cfg.target_id, self.cfg.surface_id
        try:
            frame = self._call(self.source.capture, target_id)
            if frame is None or frame.is_empty:
                raise CaptureFailure('Captured frame was empty')
            with self._lock:
                if cancel.is_set():
                    return []
                self._state.consecutive_failures = 0
            data = decode_frame(frame.data, frame.is_compressed)
            detections = list(self._call(self.detector.detect, data, frame.height, frame.width, frame.quality))
            if cancel.is_set():
                return []
            self.renderer.draw(surface_id, target_id, detections)
        except CaptureFailure:
            self._record_failure(cancel, 'Empty frame captured; skipping render', 'warn')
        except (TimeoutFailure, FutureTimeout, TimeoutError) as e:
            self._record_failure(cancel, f'Camera/detector call timed out: {e}')
        except Exception as e:
            self._record_failure(cancel, f'Detection tick failed: {type(e).__name__}: {e}')
        else:
            if self.on_result is not None:
                try:
                    self.on_result(detections)
                except Exception as e:
                    log(f'Result handler failed: {e}', 'warn')
            return detections
        return []

    def _call(self, fn, *args):
        future = self._io.submit(fn, *args)
        try:
            return future.result(timeout=self.cfg.call_timeout_s)
        except FutureTimeout as e:
            future.cancel()
            name = getattr(fn, '__name__', 'call')
            raise TimeoutFailure(f'{name} did not complete within {self.cfg.call_timeout_s:.2f}s') from e

    def _record_failure(self, cancel: threading.Event, msg: str, level: str = 'error') -> None:
        with self._lock:
            if cancel.is_set():
                return
            self._state.consecutive_failures += 1
            n = self._state.consecutive_failures
        log(f'{msg} (attempt {n}/{self.cfg.max_failures})', level)

    def _terminal(self) -> None:
        n = self._state.consecutive_failures
        msg = f'Connection unstable. Camera stopped after {n} consecutive failures.'
        log(msg, 'error')
        self._cancel.set()
        self._thread = None
        self._release_resources()
        self._state.status = LoopStatus.FAILED
        self._state.last_error = msg
        self._notify_error(TerminalInstability(msg))

    def _release_resources(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self.source.release(self.cfg.target_id)
        except Exception as e:
            log(f'Camera release failed: {e}', 'warn')
        try:
            self.source.clear_display(self.cfg.surface_id)
        except Exception as e:
            log(f'Clearing overlay failed: {e}', 'warn')

    def _notify_error(self, err: LiveDetectorError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(err)
        except Exception as e:
            log(f'Error handler failed: {e}', 'warn')
