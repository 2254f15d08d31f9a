"""
Autoregressive decoding against an external executor.

Greedy and beam search over a fixed small vocabulary, with:
- optional vocabulary masking (e.g. "number" mode),
- repeat suppression (a token may not run longer than REPEAT_LIMIT),
- length-normalized ranking of beams (logProb / len(ids)).

The executor is only reached through ``encode``/``decode_step``; each call
is a suspension point, and ``max_steps`` is the only bound on decode length.
"""

from typing import Optional, List, Callable, Collection, Sequence, Any
from dataclasses import dataclass
import logging

import numpy as np

from inktex.models.executor import Executor
from inktex.models.decoder.tokenizer import Vocab

logger = logging.getLogger(__name__)


REPEAT_LIMIT = 3
DEFAULT_MAX_STEPS = 50
DEFAULT_BEAM_WIDTH = 3

# Digits and basic arithmetic/structural symbols allowed in "number" mode
NUMBER_MODE_SYMBOLS = (
    '0', '1', '2', '3', '4', '5', '6', '7', '8', '9',
    '+', '-', '=', '.', ',', '(', ')', '{', '}', '^', '_', '/',
    '\\times', '\\div', '\\cdot', '\\frac', '\\pm',
)

StepCallback = Callable[[int], None]


@dataclass
class DecodeConfig:
    """Decoding settings for one request."""
    beam_width: int = DEFAULT_BEAM_WIDTH
    max_steps: int = DEFAULT_MAX_STEPS
    repeat_limit: int = REPEAT_LIMIT


@dataclass
class Beam:
    """A hypothesis in the beam.

    ``ids`` always starts with sos. Once ``finished`` is set the beam is
    carried forward unchanged.
    """
    log_prob: float
    ids: List[int]
    finished: bool = False

    @property
    def score(self) -> float:
        """Length-normalized log-probability used for ranking."""
        return self.log_prob / max(len(self.ids), 1)


@dataclass
class Hypothesis:
    """A decoded candidate with sos stripped."""
    ids: List[int]
    log_prob: float
    finished: bool = True


def log_softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable log-softmax in float64: x - max - log(sum(exp(x - max)))."""
    x = np.asarray(logits, dtype=np.float64)
    max_val = np.max(x)
    log_sum_exp = np.log(np.sum(np.exp(x - max_val)))
    return x - max_val - log_sum_exp


def apply_mode_mask(log_probs: np.ndarray, allowed: Optional[Collection[int]]) -> np.ndarray:
    """Force log-probabilities of tokens outside ``allowed`` to -inf, in place.

    Allowed tokens keep their values. ``allowed=None`` leaves everything as-is.
    """
    if allowed is None:
        return log_probs
    keep = np.zeros(log_probs.shape[-1], dtype=bool)
    idx = [i for i in allowed if 0 <= i < keep.shape[0]]
    keep[idx] = True
    log_probs[~keep] = -np.inf
    return log_probs


def top_k_indices(values: np.ndarray, k: int) -> List[int]:
    """Indices of the k largest values, ties broken by lower index."""
    order = np.argsort(-values, kind='stable')
    return [int(i) for i in order[:k]]


def number_mode_token_ids(vocab: Vocab) -> frozenset:
    """Whitelist for "number" mode: digits, arithmetic symbols and eos."""
    return frozenset(vocab.ids_for(NUMBER_MODE_SYMBOLS) | {vocab.eos_token_id})


def _last_position_log_probs(
    executor: Executor,
    features: Any,
    enc_mask: Any,
    ids: Sequence[int],
    vocab_size: int,
    allowed: Optional[Collection[int]],
) -> np.ndarray:
    logits = np.asarray(executor.decode_step(features, enc_mask, ids))
    last = logits.reshape(-1, vocab_size)[len(ids) - 1]
    return apply_mode_mask(log_softmax(last), allowed)


def _trailing_run(ids: Sequence[int], token: int) -> int:
    """Length of the run of ``token`` at the end of ids, ignoring the leading sos."""
    run = 0
    for tid in reversed(ids[1:]):
        if tid != token:
            break
        run += 1
    return run


def greedy_decode(
    executor: Executor,
    features: Any,
    enc_mask: Any,
    vocab: Vocab,
    max_steps: int = DEFAULT_MAX_STEPS,
    allowed: Optional[Collection[int]] = None,
    repeat_limit: int = REPEAT_LIMIT,
    step_callback: Optional[StepCallback] = None,
) -> List[int]:
    """Greedy decoding.

    Stops on eos, when the same token would repeat for ``repeat_limit``
    consecutive steps, or after ``max_steps`` decoder calls.

    Args:
        executor: Model executor
        features: Encoder features from ``executor.encode``
        enc_mask: Encoder mask from ``executor.encode``
        vocab: Vocabulary (sos/eos ids and logits width)
        max_steps: Maximum number of decoder calls
        allowed: Optional whitelist of token ids
        repeat_limit: Consecutive repeats that end decoding
        step_callback: Called with the step index after each decoder call

    Returns:
        Generated token ids without sos (eos is never included)
    """
    ids = [vocab.sos_token_id]
    repeat_count = 0
    last_token = -1

    for step in range(max_steps):
        log_probs = _last_position_log_probs(
            executor, features, enc_mask, ids, vocab.vocab_size, allowed
        )
        next_token = int(np.argmax(log_probs))

        if step_callback is not None:
            step_callback(step)

        if next_token == vocab.eos_token_id:
            break
        if next_token == last_token:
            repeat_count += 1
            if repeat_count >= repeat_limit:
                logger.debug(f"Greedy decode stopped on repeated token {next_token} at step {step}")
                break
        else:
            repeat_count = 0
        last_token = next_token
        ids.append(next_token)

    return ids[1:]


def _rank(beams: List[Beam]) -> List[Beam]:
    # Stable: equal scores keep insertion order
    return sorted(beams, key=lambda b: b.score, reverse=True)


def beam_search(
    executor: Executor,
    features: Any,
    enc_mask: Any,
    vocab: Vocab,
    beam_width: int = DEFAULT_BEAM_WIDTH,
    max_steps: int = DEFAULT_MAX_STEPS,
    allowed: Optional[Collection[int]] = None,
    repeat_limit: int = REPEAT_LIMIT,
    step_callback: Optional[StepCallback] = None,
) -> List[Hypothesis]:
    """Beam search with length-normalized ranking.

    Each open beam proposes its ``2 * beam_width`` best extensions. An eos
    extension, or one that would extend a trailing run past
    ``repeat_limit``, finishes the beam with its ids frozen. Open and
    finished candidates are ranked together by ``log_prob / len(ids)``
    and the best ``beam_width`` survive.

    Args:
        executor: Model executor
        features: Encoder features from ``executor.encode``
        enc_mask: Encoder mask from ``executor.encode``
        vocab: Vocabulary (sos/eos ids and logits width)
        beam_width: Number of beams to keep
        max_steps: Maximum number of expansion rounds
        allowed: Optional whitelist of token ids
        repeat_limit: Maximum trailing run of a single token
        step_callback: Called with the step index after each expansion round

    Returns:
        Up to ``beam_width`` hypotheses (ids without sos), finished ones
        first, each group best first
    """
    eos = vocab.eos_token_id
    beams = [Beam(log_prob=0.0, ids=[vocab.sos_token_id])]

    for step in range(max_steps):
        candidates: List[Beam] = []
        for beam in beams:
            if beam.finished:
                candidates.append(beam)
                continue

            log_probs = _last_position_log_probs(
                executor, features, enc_mask, beam.ids, vocab.vocab_size, allowed
            )
            for token in top_k_indices(log_probs, beam_width * 2):
                token_log_prob = log_probs[token]
                if not np.isfinite(token_log_prob):
                    # Masked out
                    continue
                new_log_prob = beam.log_prob + float(token_log_prob)

                if token == eos or _trailing_run(beam.ids, token) >= repeat_limit:
                    candidates.append(Beam(new_log_prob, beam.ids, finished=True))
                else:
                    candidates.append(Beam(new_log_prob, beam.ids + [token]))

        if not candidates:
            break
        beams = _rank(candidates)[:beam_width]

        if step_callback is not None:
            step_callback(step)

        if all(b.finished for b in beams):
            break

    finished = _rank([b for b in beams if b.finished])
    still_open = _rank([b for b in beams if not b.finished])

    return [
        Hypothesis(ids=list(b.ids[1:]), log_prob=b.log_prob, finished=b.finished)
        for b in (finished + still_open)[:beam_width]
    ]


def decode(
    executor: Executor,
    features: Any,
    enc_mask: Any,
    vocab: Vocab,
    config: Optional[DecodeConfig] = None,
    allowed: Optional[Collection[int]] = None,
    step_callback: Optional[StepCallback] = None,
) -> List[Hypothesis]:
    """Run greedy (beam_width <= 1) or beam decoding and return candidates best first."""
    config = config or DecodeConfig()
    if config.beam_width <= 1:
        ids = greedy_decode(
            executor, features, enc_mask, vocab,
            max_steps=config.max_steps,
            allowed=allowed,
            repeat_limit=config.repeat_limit,
            step_callback=step_callback,
        )
        return [Hypothesis(ids=ids, log_prob=0.0)]

    return beam_search(
        executor, features, enc_mask, vocab,
        beam_width=config.beam_width,
        max_steps=config.max_steps,
        allowed=allowed,
        repeat_limit=config.repeat_limit,
        step_callback=step_callback,
    )
