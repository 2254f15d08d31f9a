"""
Evaluation Metrics for Handwritten Math Recognition

Standard metrics over space-separated token strings:
- Expression Recognition Rate (ExpRate): Exact match accuracy
- Symbol Accuracy: Token-level accuracy from edit distance
"""

from typing import List, Sequence, Dict

from inktex.models.decoder.repair import normalize_tokens


def token_edit_distance(a: Sequence[str], b: Sequence[str]) -> int:
    """Levenshtein distance between two token sequences."""
    if len(a) < len(b):
        return token_edit_distance(b, a)

    if len(b) == 0:
        return len(a)

    previous_row = list(range(len(b) + 1))
    for i, ta in enumerate(a):
        current_row = [i + 1]
        for j, tb in enumerate(b):
            # Insertions, deletions, substitutions
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (ta != tb)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def normalize_prediction(latex: str) -> List[str]:
    """Token list of a space-separated prediction with canonical bracing."""
    return normalize_tokens(latex.split())


class ExpRate:
    """Expression Recognition Rate metric.

    Measures exact token match between prediction and ground truth.
    """

    def __init__(self, normalize: bool = True):
        """
        Args:
            normalize: Whether to canonicalize bracing before comparison
        """
        self.normalize = normalize
        self.reset()

    def reset(self):
        """Reset accumulated statistics."""
        self.correct = 0
        self.total = 0

    def update(self, predictions: List[str], targets: List[str]):
        """Update with a batch of space-separated predictions and targets."""
        for pred, target in zip(predictions, targets):
            if self.normalize:
                pred_tokens, target_tokens = normalize_prediction(pred), normalize_prediction(target)
            else:
                pred_tokens, target_tokens = pred.split(), target.split()

            if pred_tokens == target_tokens:
                self.correct += 1
            self.total += 1

    def compute(self) -> float:
        """Expression recognition rate (0-1)."""
        if self.total == 0:
            return 0.0
        return self.correct / self.total


class SymbolAccuracy:
    """Token-level accuracy using edit distance.

    Computes 1 - (edit_distance / max_length) averaged over samples.
    """

    def __init__(self, normalize: bool = True):
        self.normalize = normalize
        self.reset()

    def reset(self):
        self.total_accuracy = 0.0
        self.count = 0

    def update(self, predictions: List[str], targets: List[str]):
        for pred, target in zip(predictions, targets):
            if self.normalize:
                pred_tokens, target_tokens = normalize_prediction(pred), normalize_prediction(target)
            else:
                pred_tokens, target_tokens = pred.split(), target.split()

            if len(target_tokens) == 0 and len(pred_tokens) == 0:
                self.total_accuracy += 1.0
            elif len(target_tokens) > 0:
                distance = token_edit_distance(pred_tokens, target_tokens)
                max_len = max(len(pred_tokens), len(target_tokens))
                self.total_accuracy += max(0.0, 1.0 - distance / max_len)

            self.count += 1

    def compute(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_accuracy / self.count


def compute_metrics(
    predictions: List[str],
    targets: List[str],
    normalize: bool = True,
) -> Dict[str, float]:
    """Compute all metrics for a batch.

    Args:
        predictions: Predicted LaTeX strings (space-separated tokens)
        targets: Ground truth LaTeX strings (space-separated tokens)
        normalize: Whether to canonicalize bracing

    Returns:
        Dictionary of metric names to values
    """
    exp_rate = ExpRate(normalize)
    symbol_acc = SymbolAccuracy(normalize)

    exp_rate.update(predictions, targets)
    symbol_acc.update(predictions, targets)

    return {
        'exp_rate': exp_rate.compute(),
        'symbol_accuracy': symbol_acc.compute(),
    }
