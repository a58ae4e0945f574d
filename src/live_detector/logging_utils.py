from typing import Optional

LEVELS = ['debug', 'info', 'warn', 'error']
_threshold = 'info'


def set_level(level: str) -> None:
    global _threshold
    if level not in LEVELS:
        raise ValueError(f'Unknown log level {level!r} (expected one of {LEVELS})')
    _threshold = level


def log(msg: str, level: str = 'info', *, cfg_level: Optional[str] = None) -> None:
    threshold = cfg_level or _threshold
    if LEVELS.index(level) >= LEVELS.index(threshold):
        print(f'[{level.upper()}] {msg}', flush=True)
