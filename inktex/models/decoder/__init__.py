"""Vocabulary, decoding and LaTeX repair."""

from inktex.models.decoder.tokenizer import Vocab
from inktex.models.decoder.search import greedy_decode, beam_search, DecodeConfig
from inktex.models.decoder.repair import repair_latex, is_complete_expression, is_structurally_valid

__all__ = [
    'Vocab',
    'greedy_decode',
    'beam_search',
    'DecodeConfig',
    'repair_latex',
    'is_complete_expression',
    'is_structurally_valid',
]
