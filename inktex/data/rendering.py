"""
Stroke rasterization.

Renders a gesture in the CROHME convention the recognizer was trained on:
white ink on a black canvas, content placed ``PAD`` pixels from the top-left
corner (not centered), round caps and joins, and curves smoothed through the
midpoints of consecutive resampled points.
"""

from typing import List, Sequence, Tuple
from dataclasses import dataclass
import math
import logging

from PIL import Image, ImageDraw

from inktex.data.strokes import Stroke, StrokePoint, BoundingBox, compute_bbox, resample_points

logger = logging.getLogger(__name__)


PAD = 16
BACKGROUND = (0, 0, 0)
FOREGROUND = (255, 255, 255)
MIN_LINE_WIDTH = 2.0

# Segments used to flatten each quadratic curve
CURVE_SUBDIV = 8


@dataclass
class RenderedStrokes:
    """Raster produced from a gesture.

    Attributes:
        image: RGB canvas of size (bbox width + 2*PAD, bbox height + 2*PAD)
        bbox: Content bounding box in input device space
    """
    image: Image.Image
    bbox: BoundingBox

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def _sample_quadratic(p0, p1, p2, n: int = CURVE_SUBDIV) -> List[Tuple[float, float]]:
    """Uniformly sample a quadratic Bezier into n segments (n+1 points including endpoints)."""
    pts = []
    for i in range(n + 1):
        t = i / n
        mt = 1 - t
        x = mt * mt * p0[0] + 2 * mt * t * p1[0] + t * t * p2[0]
        y = mt * mt * p0[1] + 2 * mt * t * p1[1] + t * t * p2[1]
        pts.append((x, y))
    return pts


def stroke_outline(points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
    """Flatten the smoothed path through a stroke's points into a polyline.

    Two points give a straight segment. With more points the path starts at
    the first point, runs a quadratic curve through each interior point
    (as control) to the midpoint of it and its successor, and finishes with
    a straight segment to the true last point.
    """
    if len(points) == 0:
        return []
    if len(points) <= 2:
        return [tuple(p) for p in points]

    outline = [tuple(points[0])]
    pen = outline[0]
    for i in range(1, len(points) - 1):
        ctrl = points[i]
        nxt = points[i + 1]
        mid = ((ctrl[0] + nxt[0]) / 2, (ctrl[1] + nxt[1]) / 2)
        outline.extend(_sample_quadratic(pen, ctrl, mid)[1:])
        pen = mid
    outline.append(tuple(points[-1]))
    return outline


def _draw_round_stroke(draw: ImageDraw.ImageDraw, outline: List[Tuple[float, float]], width: float):
    """Draw a polyline with round joins and round caps."""
    line_width = max(1, int(round(width)))
    if len(outline) >= 2:
        draw.line(outline, fill=FOREGROUND, width=line_width, joint="curve")

    r = width / 2
    for x, y in (outline[0], outline[-1]):
        draw.ellipse([x - r, y - r, x + r, y + r], fill=FOREGROUND)


def render_strokes(strokes: Sequence[Stroke]) -> RenderedStrokes:
    """Render a gesture to a bitmap.

    Args:
        strokes: Strokes in drawing order

    Returns:
        RenderedStrokes with the canvas and the content bounding box

    Raises:
        ValueError: If the strokes contain no points
    """
    bbox = compute_bbox(strokes)
    raw_w = max(1, math.ceil(bbox.width))
    raw_h = max(1, math.ceil(bbox.height))

    image = Image.new('RGB', (raw_w + PAD * 2, raw_h + PAD * 2), BACKGROUND)
    draw = ImageDraw.Draw(image)

    for stroke in strokes:
        # A path without a second point has no segment to stroke
        if len(stroke.points) < 2:
            continue
        pts = resample_points(stroke.points)
        shifted = [(p.x - bbox.min_x + PAD, p.y - bbox.min_y + PAD) for p in pts]
        _draw_round_stroke(draw, stroke_outline(shifted), max(MIN_LINE_WIDTH, stroke.line_width))

    logger.debug(f"Rendered {len(strokes)} strokes to {image.width}x{image.height} canvas")
    return RenderedStrokes(image=image, bbox=bbox)
