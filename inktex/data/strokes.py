"""
Stroke primitives for pen/touch input.

Provides the point and stroke containers, arc-length resampling and the
significance gate that decides whether a gesture is worth recognizing.
"""

from typing import List, Sequence, Tuple, NamedTuple
from dataclasses import dataclass, field
import math


# Significance gate thresholds
MIN_BBOX_SIZE = 8.0
MIN_TOTAL_POINTS = 6
MIN_PATH_LENGTH = 15.0

DEFAULT_RESAMPLE_INTERVAL = 3.0


class StrokePoint(NamedTuple):
    """A single recorded pointer position in device space."""
    x: float
    y: float


@dataclass
class Stroke:
    """One pen-down to pen-up gesture.

    Attributes:
        points: Points in drawing order
        line_width: Rendering width in device units
    """
    points: List[StrokePoint] = field(default_factory=list)
    line_width: float = 3.0

    @classmethod
    def from_xy(cls, coords: Sequence[Tuple[float, float]], line_width: float = 3.0) -> 'Stroke':
        """Build a stroke from raw (x, y) pairs."""
        return cls(points=[StrokePoint(float(x), float(y)) for x, y in coords], line_width=line_width)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounds over every point of a gesture."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


def resample_points(
    points: Sequence[StrokePoint],
    interval: float = DEFAULT_RESAMPLE_INTERVAL,
) -> List[StrokePoint]:
    """Resample a polyline to uniform arc-length spacing.

    The first and last input points are kept as-is. When the total length is
    an exact multiple of ``interval`` the last point is emitted twice.

    Args:
        points: Input polyline
        interval: Spacing between emitted points

    Returns:
        New list of points

    Raises:
        ValueError: If ``interval`` is not positive
    """
    if interval <= 0:
        raise ValueError(f"Resample interval must be positive, got {interval}")
    if len(points) < 2:
        return list(points)

    resampled = [points[0]]
    remaining = interval

    for prev, curr in zip(points[:-1], points[1:]):
        dx = curr.x - prev.x
        dy = curr.y - prev.y
        dist = math.sqrt(dx * dx + dy * dy)

        if dist <= remaining:
            remaining -= dist
            continue

        covered = remaining
        while covered <= dist:
            t = covered / dist
            resampled.append(StrokePoint(prev.x + dx * t, prev.y + dy * t))
            covered += interval
        remaining = covered - dist

    resampled.append(points[-1])
    return resampled


def compute_bbox(strokes: Sequence[Stroke]) -> BoundingBox:
    """Bounding box across all points of all strokes.

    Raises:
        ValueError: If the strokes contain no points
    """
    xs = [p.x for s in strokes for p in s.points]
    ys = [p.y for s in strokes for p in s.points]
    if not xs:
        raise ValueError("Cannot compute bounding box of an empty gesture")
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def path_length(points: Sequence[StrokePoint]) -> float:
    """Arc length of a polyline."""
    total = 0.0
    for prev, curr in zip(points[:-1], points[1:]):
        total += math.hypot(curr.x - prev.x, curr.y - prev.y)
    return total


def count_points(strokes: Sequence[Stroke]) -> int:
    return sum(len(s.points) for s in strokes)


def is_meaningful(strokes: Sequence[Stroke]) -> bool:
    """Cheap gate run before the recognition pipeline.

    Rejects empty gestures, taps/dots whose bounding box is below
    ``MIN_BBOX_SIZE`` in both dimensions, and gestures with too few points
    or too little ink.
    """
    if not strokes or count_points(strokes) == 0:
        return False

    bbox = compute_bbox(strokes)
    if bbox.width < MIN_BBOX_SIZE and bbox.height < MIN_BBOX_SIZE:
        return False

    if count_points(strokes) < MIN_TOTAL_POINTS:
        return False

    total_length = sum(path_length(s.points) for s in strokes)
    return total_length >= MIN_PATH_LENGTH
