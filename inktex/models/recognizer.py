"""
End-to-End Handwritten Math Recognizer

Strokes -> significance gate -> preprocessing -> encoder -> decoding
-> vocabulary mapping -> LaTeX repair/validation -> RecognitionResult.
"""

from typing import Optional, List, Sequence, Callable, Union
from dataclasses import dataclass, field
from pathlib import Path
import time
import logging

import yaml

from inktex.data.strokes import Stroke, is_meaningful
from inktex.data.preprocessing import PreprocessConfig, PreprocessResult, preprocess_strokes
from inktex.models.executor import Executor, OnnxExecutor, DEFAULT_PROVIDERS
from inktex.models.decoder.tokenizer import Vocab
from inktex.models.decoder.search import (
    DecodeConfig,
    StepCallback,
    decode,
    number_mode_token_ids,
    DEFAULT_BEAM_WIDTH,
    DEFAULT_MAX_STEPS,
)
from inktex.models.decoder.repair import select_candidate, is_structurally_valid
from inktex.utils.model_cache import ModelCache, fetch_with_cache

logger = logging.getLogger(__name__)


RECOGNITION_MODES = ('auto', 'number', 'expression')


@dataclass
class RecognizerConfig:
    """Configuration for the recognizer."""
    # Model sources (URL, file:// URL or local path)
    encoder_url: str = ""
    decoder_url: str = ""
    vocab_url: str = ""
    cache_dir: Optional[str] = None

    # Execution
    execution_providers: List[str] = field(default_factory=lambda: list(DEFAULT_PROVIDERS))

    # Decoding
    beam_width: int = DEFAULT_BEAM_WIDTH
    max_decode_steps: int = DEFAULT_MAX_STEPS
    mode: str = "auto"

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'RecognizerConfig':
        """Load from a YAML file; unknown keys are rejected."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        config = cls(**data)
        config.validate()
        return config

    def validate(self):
        if self.mode not in RECOGNITION_MODES:
            raise ValueError(f"Unknown recognition mode: {self.mode}")
        if self.max_decode_steps < 1:
            raise ValueError(f"max_decode_steps must be positive, got {self.max_decode_steps}")

    def decode_config(self) -> DecodeConfig:
        return DecodeConfig(beam_width=self.beam_width, max_steps=self.max_decode_steps)


@dataclass
class RecognitionResult:
    """Output of one recognition request.

    ``latex`` is empty when no candidate was recognizable as math.
    Timings are whole milliseconds.
    """
    latex: str
    token_ids: List[int]
    encoder_ms: int
    decoder_ms: int
    total_ms: int


def _elapsed_ms(start: float, end: float) -> int:
    return int(round((end - start) * 1000))


class MathRecognizer:
    """Session object owning an executor and a vocabulary.

    The vocabulary is shared read-only across requests; every request owns
    its own decode state, so ``recognize`` can be called concurrently if the
    executor supports it.
    """

    def __init__(
        self,
        executor: Executor,
        vocab: Vocab,
        config: Optional[RecognizerConfig] = None,
        validator: Callable[[str], bool] = is_structurally_valid,
        preprocess_config: Optional[PreprocessConfig] = None,
    ):
        """
        Args:
            executor: Encoder/decoder backend
            vocab: Vocabulary matching the model
            config: Recognizer configuration
            validator: Math acceptance check applied to repaired LaTeX
            preprocess_config: Encoder input geometry
        """
        self.executor = executor
        self.vocab = vocab
        self.config = config or RecognizerConfig()
        self.config.validate()
        self.validator = validator
        self.preprocess_config = preprocess_config or PreprocessConfig()

        self._number_mode_ids = number_mode_token_ids(vocab)

    @classmethod
    def from_config(
        cls,
        config: RecognizerConfig,
        validator: Callable[[str], bool] = is_structurally_valid,
    ) -> 'MathRecognizer':
        """Fetch model and vocabulary (through the cache) and create ONNX sessions."""
        config.validate()
        cache = ModelCache(config.cache_dir) if config.cache_dir else None

        vocab = Vocab.from_bytes(fetch_with_cache(config.vocab_url, cache))
        executor = OnnxExecutor.create(
            fetch_with_cache(config.encoder_url, cache),
            fetch_with_cache(config.decoder_url, cache),
            providers=config.execution_providers,
        )

        logger.info(f"Created recognizer with {vocab.vocab_size} vocabulary entries")
        return cls(executor, vocab, config, validator=validator)

    def preprocess(self, strokes: Sequence[Stroke]) -> PreprocessResult:
        return preprocess_strokes(strokes, self.preprocess_config)

    def _allowed_ids(self, mode: str):
        return self._number_mode_ids if mode == 'number' else None

    def recognize_tensor(
        self,
        inputs: PreprocessResult,
        mode: Optional[str] = None,
        step_callback: Optional[StepCallback] = None,
    ) -> RecognitionResult:
        """Encode, decode and select a candidate for a preprocessed gesture.

        Raises:
            InferenceError: If the executor fails
        """
        mode = mode or self.config.mode
        if mode not in RECOGNITION_MODES:
            raise ValueError(f"Unknown recognition mode: {mode}")

        t0 = time.perf_counter()
        encoded = self.executor.encode(inputs.pixel_values(), inputs.pixel_mask())
        t1 = time.perf_counter()

        candidates = decode(
            self.executor,
            encoded.features,
            encoded.mask,
            self.vocab,
            config=self.config.decode_config(),
            allowed=self._allowed_ids(mode),
            step_callback=step_callback,
        )
        t2 = time.perf_counter()

        chosen, latex = select_candidate(
            [self.vocab.ids_to_symbols(c.ids) for c in candidates],
            validator=self.validator,
            require_complete=(mode == 'auto'),
        )
        token_ids = list(candidates[chosen].ids) if chosen is not None else []

        result = RecognitionResult(
            latex=latex,
            token_ids=token_ids,
            encoder_ms=_elapsed_ms(t0, t1),
            decoder_ms=_elapsed_ms(t1, t2),
            total_ms=_elapsed_ms(t0, t2),
        )
        logger.debug(
            f"Recognized {latex!r} from {len(candidates)} candidates "
            f"(encoder {result.encoder_ms}ms, decoder {result.decoder_ms}ms)"
        )
        return result

    def recognize(
        self,
        strokes: Sequence[Stroke],
        mode: Optional[str] = None,
        step_callback: Optional[StepCallback] = None,
    ) -> Optional[RecognitionResult]:
        """Recognize a gesture.

        Args:
            strokes: Completed gesture in drawing order (read, never mutated)
            mode: "auto", "number" or "expression" (defaults to the config's)
            step_callback: Called between decode steps; raising from it abandons the request

        Returns:
            RecognitionResult, or None when the gesture is not worth recognizing
        """
        if not is_meaningful(strokes):
            logger.debug("Gesture rejected by significance gate")
            return None
        return self.recognize_tensor(self.preprocess(strokes), mode=mode, step_callback=step_callback)

    def release(self):
        self.executor.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


def recognize(
    strokes: Sequence[Stroke],
    executor: Executor,
    vocab: Vocab,
    mode: str = 'auto',
    config: Optional[RecognizerConfig] = None,
    validator: Callable[[str], bool] = is_structurally_valid,
) -> Optional[RecognitionResult]:
    """Recognize one gesture without keeping a session around."""
    recognizer = MathRecognizer(executor, vocab, config, validator=validator)
    return recognizer.recognize(strokes, mode=mode)


def preprocess(strokes: Sequence[Stroke]) -> PreprocessResult:
    """Turn a gesture into the encoder's pixel tensor and padding mask."""
    return preprocess_strokes(strokes)
