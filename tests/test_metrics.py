"""Tests for evaluation metrics."""

from inktex.evaluation.metrics import (
    token_edit_distance,
    compute_metrics,
    ExpRate,
    SymbolAccuracy,
)


def test_token_edit_distance():
    assert token_edit_distance([], []) == 0
    assert token_edit_distance(['x'], []) == 1
    assert token_edit_distance(['x', '+', 'y'], ['x', '-', 'y']) == 1
    assert token_edit_distance(['a', 'b'], ['a', 'b', 'c', 'd']) == 2


def test_exp_rate_normalizes_bracing():
    metric = ExpRate()
    metric.update(['x ^ 2', 'x + y'], ['x ^ { 2 }', 'x - y'])
    assert metric.compute() == 0.5

    strict = ExpRate(normalize=False)
    strict.update(['x ^ 2'], ['x ^ { 2 }'])
    assert strict.compute() == 0.0


def test_symbol_accuracy():
    metric = SymbolAccuracy()
    metric.update(['x + y', '', ''], ['x - y', 'x', ''])
    assert abs(metric.compute() - (2 / 3 + 0.0 + 1.0) / 3) < 1e-9


def test_empty_metrics():
    assert ExpRate().compute() == 0.0
    assert compute_metrics([], []) == {'exp_rate': 0.0, 'symbol_accuracy': 0.0}
