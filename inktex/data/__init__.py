"""Stroke input, rasterization and tensor preprocessing."""

from inktex.data.strokes import Stroke, StrokePoint, BoundingBox, resample_points, compute_bbox, is_meaningful
from inktex.data.rendering import render_strokes, RenderedStrokes
from inktex.data.preprocessing import PreprocessConfig, PreprocessResult, preprocess_strokes
from inktex.data.crohme import CROHMEDataset, CROHMESample, parse_inkml, load_crohme_samples

__all__ = [
    'Stroke',
    'StrokePoint',
    'BoundingBox',
    'resample_points',
    'compute_bbox',
    'is_meaningful',
    'render_strokes',
    'RenderedStrokes',
    'PreprocessConfig',
    'PreprocessResult',
    'preprocess_strokes',
    'CROHMEDataset',
    'CROHMESample',
    'parse_inkml',
    'load_crohme_samples',
]
