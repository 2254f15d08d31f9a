"""Evaluation utilities for handwritten math recognition."""

from inktex.evaluation.metrics import compute_metrics, ExpRate, SymbolAccuracy, token_edit_distance
from inktex.evaluation.benchmark import run_benchmark

__all__ = [
    'compute_metrics',
    'ExpRate',
    'SymbolAccuracy',
    'token_edit_distance',
    'run_benchmark',
]
