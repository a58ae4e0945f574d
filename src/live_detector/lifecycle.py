from __future__ import annotations
import threading
from typing import Optional

from .controller import DetectionLoopController
from .errors import AlreadyRunning, InitializationFailure, LiveDetectorError
from .events import SessionEvents
from .logging_utils import log


class CameraLifecycle:
    """User-facing start/stop surface for one detection loop.

    Never raises: start failures end up in ``error``. Registers with the
    session hub on construction and unregisters in ``close()``.
    """

    def __init__(self, controller: DetectionLoopController, session: Optional[SessionEvents] = None):
        self.controller = controller
        self.session = session
        self.error: Optional[str] = None
        self._resume_pending = False
        self._closed = False
        self._lock = threading.RLock()
        self._subscription = None
        if controller.on_error is None:
            controller.on_error = self._on_controller_error
        if session is not None:
            self._subscription = session.subscribe(self.on_session_suspended, self.on_session_resumed)

    @property
    def is_running(self) -> bool:
        return self.controller.is_running

    def start(self) -> bool:
        with self._lock:
            if self._closed:
                log('Ignoring start on a closed camera lifecycle', 'warn')
                return False
            try:
                self.controller.start()
            except AlreadyRunning:
                log('Detection loop already running; start ignored', 'debug')
                return False
            except InitializationFailure as e:
                self.error = str(e)
                return False
            self.error = None
            return True

    def stop(self) -> None:
        with self._lock:
            self.controller.stop()
            self.error = None

    def toggle(self) -> bool:
        """Flip the loop; returns whether it is running afterwards."""
        with self._lock:
            if self.controller.is_running:
                self.stop()
            else:
                self.start()
            return self.controller.is_running

    def on_session_suspended(self) -> None:
        with self._lock:
            self._resume_pending = self.controller.is_running
            if self._resume_pending:
                log('Session suspended; pausing detection loop')
            self.controller.stop()
            self.error = None

    def on_session_resumed(self) -> None:
        with self._lock:
            pending, self._resume_pending = self._resume_pending, False
            if pending and not self._closed:
                log('Session resumed; restarting detection loop')
                self.start()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._resume_pending = False
            if self.session is not None and self._subscription is not None:
                self.session.unsubscribe(self._subscription)
                self._subscription = None
            self.controller.close()

    def status(self) -> dict:
        data = self.controller.state.to_dict()
        data['error'] = self.error or data['last_error']
        return data

    def _on_controller_error(self, err: LiveDetectorError) -> None:
        self.error = str(err)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
