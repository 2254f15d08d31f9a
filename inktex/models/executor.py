"""
Model executors.

The recognizer only talks to the network through the ``Executor``
interface: one ``encode`` call per request and one ``decode_step`` call
per generated token per hypothesis. Any backend (onnxruntime, in-process
torch modules, a remote service) can be substituted.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Any
from dataclasses import dataclass
import logging

import numpy as np
import torch

from inktex.errors import ModelLoadError, InferenceError

logger = logging.getLogger(__name__)


DEFAULT_PROVIDERS = ('CPUExecutionProvider',)
FALLBACK_PROVIDERS = ('CPUExecutionProvider',)

# Graph input/output names shared by the exporter and OnnxExecutor
ENCODER_INPUTS = ('pixel_values', 'pixel_mask')
ENCODER_OUTPUTS = ('encoder_features', 'encoder_mask')
DECODER_INPUTS = ('encoder_features', 'encoder_mask', 'input_ids')
DECODER_OUTPUTS = ('logits',)


@dataclass
class EncoderOutput:
    """Standard output format for all executors.

    Attributes:
        features: Encoder features, backend-specific tensor
        mask: Encoder padding mask, backend-specific tensor
    """
    features: Any
    mask: Any


class Executor(ABC):
    """Capability interface over an encoder/decoder pair."""

    @abstractmethod
    def encode(self, pixel_values: np.ndarray, pixel_mask: np.ndarray) -> EncoderOutput:
        """Run the encoder.

        Args:
            pixel_values: float32 [1, 1, H, W]
            pixel_mask: uint8/bool [1, H, W], 1 for padding

        Returns:
            EncoderOutput passed back verbatim to ``decode_step``
        """

    @abstractmethod
    def decode_step(self, features: Any, enc_mask: Any, ids: Sequence[int]) -> np.ndarray:
        """Run the decoder on a prefix.

        Args:
            features: ``EncoderOutput.features``
            enc_mask: ``EncoderOutput.mask``
            ids: Token prefix starting with sos

        Returns:
            Logits [1, len(ids), vocab_size]
        """

    def release(self):
        """Free backend resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


def _create_session(model_bytes: bytes, providers: Sequence[str]):
    import onnxruntime as ort

    options = ort.SessionOptions()
    return ort.InferenceSession(model_bytes, sess_options=options, providers=list(providers))


class OnnxExecutor(Executor):
    """Executor backed by two onnxruntime sessions (encoder and decoder)."""

    def __init__(self, encoder_session, decoder_session):
        self.encoder_session = encoder_session
        self.decoder_session = decoder_session

    @classmethod
    def create(
        cls,
        encoder_bytes: bytes,
        decoder_bytes: bytes,
        providers: Sequence[str] = DEFAULT_PROVIDERS,
    ) -> 'OnnxExecutor':
        """Create sessions, retrying once on the CPU provider if the requested ones fail.

        Raises:
            ModelLoadError: If session creation fails on the fallback providers too
        """
        try:
            encoder_session = _create_session(encoder_bytes, providers)
            decoder_session = _create_session(decoder_bytes, providers)
        except Exception as e:
            if tuple(providers) == FALLBACK_PROVIDERS:
                raise ModelLoadError(f"Failed to create inference sessions: {e}") from e
            logger.warning(f"Session creation with {list(providers)} failed ({e}), retrying with {list(FALLBACK_PROVIDERS)}")
            try:
                encoder_session = _create_session(encoder_bytes, FALLBACK_PROVIDERS)
                decoder_session = _create_session(decoder_bytes, FALLBACK_PROVIDERS)
            except Exception as fallback_error:
                raise ModelLoadError(
                    f"Failed to create inference sessions: {fallback_error}"
                ) from fallback_error

        logger.info(f"Created ONNX sessions with providers {encoder_session.get_providers()}")
        return cls(encoder_session, decoder_session)

    def encode(self, pixel_values: np.ndarray, pixel_mask: np.ndarray) -> EncoderOutput:
        try:
            features, mask = self.encoder_session.run(
                list(ENCODER_OUTPUTS),
                {
                    'pixel_values': np.ascontiguousarray(pixel_values, dtype=np.float32),
                    'pixel_mask': np.ascontiguousarray(pixel_mask).astype(np.bool_),
                },
            )
        except Exception as e:
            raise InferenceError(f"Encoder failed: {e}") from e
        return EncoderOutput(features=features, mask=mask)

    def decode_step(self, features: Any, enc_mask: Any, ids: Sequence[int]) -> np.ndarray:
        input_ids = np.asarray(ids, dtype=np.int64).reshape(1, len(ids))
        try:
            (logits,) = self.decoder_session.run(
                list(DECODER_OUTPUTS),
                {
                    'encoder_features': features,
                    'encoder_mask': enc_mask,
                    'input_ids': input_ids,
                },
            )
        except Exception as e:
            raise InferenceError(f"Decoder step failed: {e}") from e
        return logits

    def release(self):
        self.encoder_session = None
        self.decoder_session = None


class TorchExecutor(Executor):
    """Executor running in-process torch modules.

    The encoder maps (pixel_values [1,1,H,W] float, pixel_mask [1,H,W] bool)
    to (features, mask); the decoder maps (features, mask, input_ids [1,T])
    to logits [1, T, vocab_size].
    """

    def __init__(self, encoder, decoder, device: Optional[str] = None):
        self.device = torch.device(device or 'cpu')
        self.encoder = encoder.to(self.device)
        self.decoder = decoder.to(self.device)

        # Set to inference mode
        self.encoder.train(False)
        self.decoder.train(False)

    def encode(self, pixel_values: np.ndarray, pixel_mask: np.ndarray) -> EncoderOutput:
        pixels = torch.as_tensor(np.asarray(pixel_values, dtype=np.float32), device=self.device)
        mask = torch.as_tensor(np.asarray(pixel_mask), device=self.device).bool()
        try:
            with torch.no_grad():
                features, enc_mask = self.encoder(pixels, mask)
        except (RuntimeError, IndexError) as e:
            raise InferenceError(f"Encoder failed: {e}") from e
        return EncoderOutput(features=features, mask=enc_mask)

    def decode_step(self, features: Any, enc_mask: Any, ids: Sequence[int]) -> np.ndarray:
        input_ids = torch.tensor([list(ids)], dtype=torch.long, device=self.device)
        try:
            with torch.no_grad():
                logits = self.decoder(features, enc_mask, input_ids)
        except (RuntimeError, IndexError) as e:
            raise InferenceError(f"Decoder step failed: {e}") from e
        return logits.float().cpu().numpy()
