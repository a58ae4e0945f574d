"""Failure taxonomy for the live detection loop.

Per-tick failures (capture, timeout, decode, detection, render) are caught by
the loop controller and counted; they never leave a tick. Initialization and
terminal instability surface through ``LoopState.last_error``.
"""


class LiveDetectorError(Exception):
    pass


class AlreadyRunning(LiveDetectorError):
    pass


class CaptureFailure(LiveDetectorError):
    pass


class TimeoutFailure(LiveDetectorError):
    pass


class DecodeFailure(LiveDetectorError):
    pass


DecodeError = DecodeFailure


class DetectionFailure(LiveDetectorError):
    pass


class RenderFailure(LiveDetectorError):
    pass


class InitializationFailure(LiveDetectorError):
    pass


class TerminalInstability(LiveDetectorError):
    pass
