from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CapturedFrame:
    data: bytes
    is_compressed: bool
    height: int
    width: int
    quality: float

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    def as_ints(self):
        return int(self.x), int(self.y), int(self.width), int(self.height)


@dataclass(frozen=True)
class DetectionResult:
    label: str
    confidence: float
    bounding_box: BoundingBox

    def to_dict(self) -> Dict[str, Any]:
        b = self.bounding_box
        return {
            'label': self.label,
            'confidence': round(float(self.confidence), 4),
            'bounding_box': {'x': b.x, 'y': b.y, 'width': b.width, 'height': b.height},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DetectionResult':
        box = data.get('bounding_box') or data.get('boundingBox') or {}
        return cls(
            label=str(data['label']),
            confidence=float(data.get('confidence', 0.0)),
            bounding_box=BoundingBox(
                x=float(box.get('x', 0)),
                y=float(box.get('y', 0)),
                width=float(box.get('width', 0)),
                height=float(box.get('height', 0)),
            ),
        )


class LoopStatus(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    FAILED = 'failed'


@dataclass
class LoopState:
    status: LoopStatus = LoopStatus.IDLE
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    ticks: int = field(default=0, compare=False)

    @property
    def is_active(self) -> bool:
        return self.status is LoopStatus.RUNNING

    def snapshot(self) -> 'LoopState':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'is_active': self.is_active,
            'consecutive_failures': self.consecutive_failures,
            'last_error': self.last_error,
            'ticks': self.ticks,
        }
