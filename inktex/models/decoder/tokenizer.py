"""
Vocabulary for the handwritten math recognizer.

Handles:
1. Loading the word2idx/idx2word table shipped with the model
2. Mapping decoded token ids to LaTeX symbols (skipping pad/sos/eos and unknown ids)
3. Splitting ground-truth LaTeX strings into vocabulary symbols
"""

import re
import json
from pathlib import Path
from typing import List, Dict, Sequence, Iterable, Set, Union, Any
from dataclasses import dataclass
import logging

from inktex.errors import VocabError

logger = logging.getLogger(__name__)


SEPARATOR = ' '


@dataclass(frozen=True)
class SpecialTokens:
    """Ids of the special tokens."""
    pad: int
    sos: int
    eos: int

    def as_set(self) -> Set[int]:
        return {self.pad, self.sos, self.eos}


class Vocab:
    """Id <-> symbol table.

    Loaded once and shared read-only by every decode call.

    Document format (JSON):
        {
          "word2idx": {"<pad>": 0, "<sos>": 1, "<eos>": 2, "x": 3, ...},
          "idx2word": {"0": "<pad>", "1": "<sos>", ...},
          "special_tokens": {"pad": 0, "sos": 1, "eos": 2},
          "vocab_size": 113
        }
    """

    def __init__(
        self,
        word2idx: Dict[str, int],
        idx2word: Dict[int, str],
        special_tokens: SpecialTokens,
        vocab_size: int,
    ):
        """
        Args:
            word2idx: Symbol to id
            idx2word: Id to symbol
            special_tokens: pad/sos/eos ids
            vocab_size: Width of the decoder's logits
        """
        self.word2idx = dict(word2idx)
        self.idx2word = dict(idx2word)
        self.special_tokens = special_tokens
        self.vocab_size = vocab_size

        self._compile_patterns()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Vocab':
        """Build from a parsed vocabulary document."""
        try:
            word2idx = {str(w): int(i) for w, i in data['word2idx'].items()}
            special = data['special_tokens']
            special_tokens = SpecialTokens(
                pad=int(special['pad']),
                sos=int(special['sos']),
                eos=int(special['eos']),
            )

            if 'idx2word' in data:
                idx2word = {int(i): str(w) for i, w in data['idx2word'].items()}
            else:
                idx2word = {i: w for w, i in word2idx.items()}

            vocab_size = int(data.get('vocab_size', max(idx2word, default=-1) + 1))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise VocabError(f"Malformed vocabulary document: {e}") from e

        return cls(word2idx, idx2word, special_tokens, vocab_size)

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'Vocab':
        """Build from JSON bytes (e.g. fetched from a URL)."""
        try:
            data = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise VocabError(f"Vocabulary is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, vocab_file: Union[str, Path]) -> 'Vocab':
        """Load vocabulary from JSON file."""
        with open(vocab_file, 'rb') as f:
            vocab = cls.from_bytes(f.read())
        logger.info(f"Loaded vocabulary with {vocab.vocab_size} entries from {vocab_file}")
        return vocab

    def to_dict(self) -> Dict[str, Any]:
        return {
            'word2idx': self.word2idx,
            'idx2word': {str(i): w for i, w in self.idx2word.items()},
            'special_tokens': {
                'pad': self.special_tokens.pad,
                'sos': self.special_tokens.sos,
                'eos': self.special_tokens.eos,
            },
            'vocab_size': self.vocab_size,
        }

    def save(self, path: Union[str, Path]):
        """Save vocabulary to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def _compile_patterns(self):
        """Compile regex for splitting LaTeX strings into vocabulary symbols."""
        # Sort by length (longest first) to match longer commands first
        commands = sorted(
            [w for w in self.word2idx if w.startswith('\\')],
            key=len, reverse=True
        )
        escaped = [re.escape(cmd) for cmd in commands]
        command_pattern = '|'.join(escaped) if escaped else r'(?!)'

        # Known commands, OR unknown \alpha-style commands, OR single characters
        self.tokenize_pattern = re.compile(
            f'({command_pattern}|\\\\[a-zA-Z]+|\\\\.|[^\\s])'
        )

    @property
    def pad_token_id(self) -> int:
        return self.special_tokens.pad

    @property
    def sos_token_id(self) -> int:
        return self.special_tokens.sos

    @property
    def eos_token_id(self) -> int:
        return self.special_tokens.eos

    def __len__(self) -> int:
        return self.vocab_size

    def __contains__(self, symbol: str) -> bool:
        return symbol in self.word2idx

    def ids_to_symbols(self, ids: Iterable[int]) -> List[str]:
        """Map ids to symbols, dropping pad/sos/eos and ids absent from the table."""
        skip = self.special_tokens.as_set()
        symbols = []
        for tid in ids:
            if tid in skip:
                continue
            symbol = self.idx2word.get(int(tid))
            if symbol is not None:
                symbols.append(symbol)
        return symbols

    def symbols_to_ids(self, symbols: Iterable[str]) -> List[int]:
        """Map symbols to ids, skipping symbols outside the vocabulary."""
        return [self.word2idx[s] for s in symbols if s in self.word2idx]

    def ids_for(self, symbols: Iterable[str]) -> Set[int]:
        """Ids of the given symbols that exist in this vocabulary."""
        return set(self.symbols_to_ids(symbols))

    def decode(self, ids: Iterable[int]) -> str:
        """Decode ids to a space-separated LaTeX string."""
        return symbols_to_string(self.ids_to_symbols(ids))

    def tokenize_latex(self, latex: str) -> List[str]:
        """Split a LaTeX string into symbols (commands matched longest first)."""
        return self.tokenize_pattern.findall(latex)


def symbols_to_string(symbols: Sequence[str]) -> str:
    """Join symbols with a single separator."""
    return SEPARATOR.join(symbols)


def decode_token_ids(ids: Iterable[int], vocab: Vocab) -> str:
    """Decode token ids to a space-separated LaTeX string."""
    return vocab.decode(ids)
