from __future__ import annotations
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Union

from .models import DetectionResult

DetectionLike = Union[DetectionResult, Dict[str, Any]]


@dataclass
class LabelStats:
    count: int = 0
    confidence_sum: float = 0.0
    max_confidence: float = 0.0

    @property
    def mean_confidence(self) -> float:
        return self.confidence_sum / self.count if self.count else 0.0

    def add(self, confidence: float):
        self.count += 1
        self.confidence_sum += confidence
        self.max_confidence = max(self.max_confidence, confidence)


@dataclass
class DetectionSummary:
    total_frames: int = 0
    frames_with_detections: int = 0
    labels: Dict[str, LabelStats] = field(default_factory=dict)

    def add_frame(self, detections: Sequence[DetectionLike]):
        self.total_frames += 1
        if detections:
            self.frames_with_detections += 1
        for det in detections:
            if not isinstance(det, DetectionResult):
                det = DetectionResult.from_dict(det)
            self.labels.setdefault(det.label, LabelStats()).add(float(det.confidence))

    def ranked(self):
        return sorted(self.labels.items(), key=lambda kv: (-kv[1].count, kv[0]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_frames': self.total_frames,
            'frames_with_detections': self.frames_with_detections,
            'labels': [
                {'label': label, 'count': s.count, 'mean_confidence': round(s.mean_confidence, 4),
                 'max_confidence': round(s.max_confidence, 4)}
                for label, s in self.ranked()
            ],
        }


def summarize(frames: Iterable[Sequence[DetectionLike]]) -> DetectionSummary:
    summary = DetectionSummary()
    for dets in frames:
        summary.add_frame(dets)
    return summary


def load_frames(path: Union[str, Path]) -> List[List[Dict[str, Any]]]:
    """Read ``[{"frame": n, "detections": [...]}, ...]`` (or bare lists)."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f'{path}: expected a JSON list of frames')
    frames = []
    for entry in data:
        frames.append(entry.get('detections', []) if isinstance(entry, dict) else list(entry))
    return frames


def format_summary(summary: DetectionSummary) -> str:
    lines = [f'Frames: {summary.total_frames} ({summary.frames_with_detections} with detections)']
    if not summary.labels:
        lines.append('No detections.')
        return '\n'.join(lines)
    width = max(5, max(len(label) for label in summary.labels))
    lines.append(f'{"label":<{width}}  {"count":>6}  {"mean":>6}  {"max":>6}')
    for label, s in summary.ranked():
        lines.append(f'{label:<{width}}  {s.count:>6}  {s.mean_confidence:>6.2f}  {s.max_confidence:>6.2f}')
    return '\n'.join(lines)


class SummaryTracker:
    """Thread-safe running summary fed by the live loop's result hook."""

    def __init__(self):
        self.lock = threading.Lock()
        self.summary = DetectionSummary()

    def __call__(self, detections: Sequence[DetectionResult]):
        with self.lock:
            self.summary.add_frame(detections)

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return self.summary.to_dict()

    def reset(self):
        with self.lock:
            self.summary = DetectionSummary()
