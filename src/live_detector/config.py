from __future__ import annotations
from dataclasses import asdict, dataclass, fields
from typing import Any, Tuple
try:
    import yaml  # type: ignore
except ImportError:  # pragma: no cover
    yaml = None  # type: ignore

from .logging_utils import LEVELS

@dataclass
class LoopConfig:
    interval_ms: int = 100
    max_failures: int = 3
    call_timeout_s: float = 2.0
    frame_size: Tuple[int, int] = (640, 480)
    quality: float = 0.8
    compress: bool = False
    camera_index: int = 0
    target_id: str = 'camera'
    surface_id: str = 'overlay'
    threshold: int = 25
    alpha: float = 0.05
    min_area: int = 50
    max_area: int = 50000
    log_level: str = 'info'

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0

# Fields the HTTP surface may change at runtime.
MUTABLE_FIELDS = ('interval_ms', 'max_failures', 'call_timeout_s', 'quality', 'compress',
                  'threshold', 'alpha', 'min_area', 'max_area', 'log_level')

def _require_yaml():
    if yaml is None:
        raise RuntimeError("Missing dependency 'pyyaml'. Install with: pip install pyyaml")

LOG_LEVELS = tuple(LEVELS)

# name -> (type, minimum, maximum); None means unbounded.
_RULES = {
    'interval_ms': (int, 1, None),
    'max_failures': (int, 1, None),
    'call_timeout_s': (float, 0.001, None),
    'quality': (float, 0.0, 1.0),
    'compress': (bool, None, None),
    'camera_index': (int, 0, None),
    'threshold': (int, 0, 255),
    'alpha': (float, 0.0, 1.0),
    'min_area': (int, 0, None),
    'max_area': (int, 1, None),
}

def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValueError(f'expected true/false, got {value!r}')

def coerce_value(name: str, value: Any, *, clamp: bool = False) -> Any:
    """Convert and range-check one config value.

    Out-of-range numbers raise ``ValueError`` unless ``clamp`` is set, in
    which case they are pulled to the nearest bound (config files).
    """
    if name == 'log_level':
        level = str(value).lower()
        if level not in LOG_LEVELS:
            raise ValueError(f'log_level must be one of {", ".join(LOG_LEVELS)}')
        return level
    if name not in _RULES:
        return value
    kind, lo, hi = _RULES[name]
    if kind is bool:
        return _parse_bool(value)
    if isinstance(value, bool):
        raise ValueError(f'{name} must be a number')
    v = kind(value)
    if lo is not None and v < lo:
        if not clamp:
            raise ValueError(f'{name} must be >= {lo}')
        v = kind(lo)
    if hi is not None and v > hi:
        if not clamp:
            raise ValueError(f'{name} must be <= {hi}')
        v = kind(hi)
    return v

def load_config(path: str) -> LoopConfig:
    _require_yaml()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    d = LoopConfig()

    def get(name):
        return coerce_value(name, data.get(name, getattr(d, name)), clamp=True)

    return LoopConfig(
        interval_ms=get('interval_ms'),
        max_failures=get('max_failures'),
        call_timeout_s=get('call_timeout_s'),
        frame_size=tuple(data.get('frame_size', list(d.frame_size))),
        quality=get('quality'),
        compress=get('compress'),
        camera_index=get('camera_index'),
        target_id=str(data.get('target_id', d.target_id)),
        surface_id=str(data.get('surface_id', d.surface_id)),
        threshold=get('threshold'),
        alpha=get('alpha'),
        min_area=get('min_area'),
        max_area=get('max_area'),
        log_level=get('log_level'),
    )

def config_to_dict(cfg: LoopConfig) -> dict:
    data = asdict(cfg)
    data['frame_size'] = list(cfg.frame_size)
    return data

def save_config(cfg: LoopConfig, path: str):
    _require_yaml()
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config_to_dict(cfg), f, sort_keys=False)

def config_keys():
    return [f.name for f in fields(LoopConfig)]
