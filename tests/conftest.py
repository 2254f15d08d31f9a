"""Shared fixtures: a small vocabulary and scripted executors."""

from typing import List, Sequence

import numpy as np
import pytest
import torch
import torch.nn as nn
import torch.nn.functional as F

from inktex.data.strokes import Stroke
from inktex.models.executor import Executor, EncoderOutput
from inktex.models.decoder.tokenizer import Vocab


SYMBOLS = ['<pad>', '<sos>', '<eos>', 'x', '+', 'y', '^', '{', '}', '2', '\\frac', '\\sqrt', '1', '3', 'a']


def make_vocab() -> Vocab:
    return Vocab.from_dict({
        'word2idx': {w: i for i, w in enumerate(SYMBOLS)},
        'idx2word': {str(i): w for i, w in enumerate(SYMBOLS)},
        'special_tokens': {'pad': 0, 'sos': 1, 'eos': 2},
        'vocab_size': len(SYMBOLS),
    })


@pytest.fixture
def vocab() -> Vocab:
    return make_vocab()


class ScriptedExecutor(Executor):
    """Emits a fixed token sequence, then eos.

    The token at decoder position ``len(ids) - 1`` gets a high logit; every
    other token gets ``background``.
    """

    def __init__(self, script: Sequence[int], vocab_size: int, eos: int = 2, peak: float = 10.0):
        self.script = list(script)
        self.vocab_size = vocab_size
        self.eos = eos
        self.peak = peak
        self.encode_calls = 0
        self.decode_calls = 0
        self.released = False

    def encode(self, pixel_values, pixel_mask) -> EncoderOutput:
        self.encode_calls += 1
        assert pixel_values.shape[:2] == (1, 1)
        assert pixel_mask.shape == pixel_values.shape[1:]
        return EncoderOutput(features=np.zeros((1, 4, 8), dtype=np.float32), mask=np.zeros((1, 4), dtype=bool))

    def next_token(self, ids: Sequence[int]) -> int:
        pos = len(ids) - 1
        return self.script[pos] if pos < len(self.script) else self.eos

    def decode_step(self, features, enc_mask, ids) -> np.ndarray:
        self.decode_calls += 1
        logits = np.zeros((1, len(ids), self.vocab_size), dtype=np.float32)
        logits[0, -1, self.next_token(ids)] = self.peak
        return logits

    def release(self):
        self.released = True


class ConstantExecutor(ScriptedExecutor):
    """Returns the same logits vector at every step."""

    def __init__(self, logits: Sequence[float]):
        super().__init__([], len(logits))
        self.logits = np.asarray(logits, dtype=np.float32)

    def decode_step(self, features, enc_mask, ids) -> np.ndarray:
        self.decode_calls += 1
        return np.tile(self.logits, (1, len(ids), 1))


class FailingExecutor(ScriptedExecutor):
    """Raises from the chosen stage."""

    def __init__(self, stage: str, error: Exception):
        super().__init__([], len(SYMBOLS))
        self.stage = stage
        self.error = error

    def encode(self, pixel_values, pixel_mask):
        if self.stage == 'encode':
            raise self.error
        return super().encode(pixel_values, pixel_mask)

    def decode_step(self, features, enc_mask, ids):
        if self.stage == 'decode':
            raise self.error
        return super().decode_step(features, enc_mask, ids)


def line_stroke(x0: float, y0: float, x1: float, y1: float, n: int = 10, width: float = 3.0) -> Stroke:
    """Straight stroke sampled with n points."""
    return Stroke.from_xy(
        [(x0 + (x1 - x0) * i / (n - 1), y0 + (y1 - y0) * i / (n - 1)) for i in range(n)],
        line_width=width,
    )


def x_squared_strokes() -> List[Stroke]:
    """An 'x', a raised '^'-like hook and a '2'."""
    return [
        line_stroke(0, 20, 30, 60),
        line_stroke(30, 20, 0, 60),
        line_stroke(36, 12, 42, 0, n=6),
        line_stroke(42, 0, 48, 12, n=6),
        Stroke.from_xy([(40, -20), (46, -26), (52, -20), (40, -6), (54, -6), (56, -6)]),
    ]


class TinyEncoder(nn.Module):
    """Pools 32x32 patches into features; mask marks all-padding patches."""

    def __init__(self, d_model: int = 4):
        super().__init__()
        self.proj = nn.Linear(1, d_model)

    def forward(self, pixel_values: torch.Tensor, pixel_mask: torch.Tensor):
        pooled = F.avg_pool2d(pixel_values, 32)
        features = self.proj(pooled.flatten(2).transpose(1, 2))
        mask = F.max_pool2d(pixel_mask.unsqueeze(1).float(), 32).flatten(1) > 0
        return features, mask


class TinyDecoder(nn.Module):
    """Embeds the prefix and adds the masked mean of the encoder features."""

    def __init__(self, vocab_size: int, d_model: int = 4):
        super().__init__()
        self.embed = nn.Embedding(vocab_size, d_model)
        self.out = nn.Linear(d_model, vocab_size)

    def forward(self, features: torch.Tensor, mask: torch.Tensor, input_ids: torch.Tensor) -> torch.Tensor:
        keep = (~mask).float().unsqueeze(-1)
        context = (features * keep).sum(1, keepdim=True) / keep.sum(1, keepdim=True).clamp(min=1.0)
        return self.out(self.embed(input_ids) + context)
