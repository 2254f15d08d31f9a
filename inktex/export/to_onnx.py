"""
Export a torch encoder/decoder pair to ONNX.

Exports the encoder and decoder separately, with the graph input/output
names ``OnnxExecutor`` feeds:
- Encoder: pixel_values [1,1,H,W], pixel_mask [1,H,W] -> encoder_features, encoder_mask
- Decoder: encoder_features, encoder_mask, input_ids [1,T] -> logits [1,T,V]
"""

from typing import Tuple
from pathlib import Path
import logging

import torch
import torch.nn as nn

from inktex.data.preprocessing import MODEL_H, MIN_W
from inktex.models.executor import ENCODER_INPUTS, ENCODER_OUTPUTS, DECODER_INPUTS, DECODER_OUTPUTS

logger = logging.getLogger(__name__)


class EncoderWrapper(nn.Module):
    """Wrapper for exporting encoder to ONNX."""

    def __init__(self, encoder: nn.Module):
        super().__init__()
        self.encoder = encoder

    def forward(self, pixel_values: torch.Tensor, pixel_mask: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        features, mask = self.encoder(pixel_values, pixel_mask)
        return features, mask


class DecoderStepWrapper(nn.Module):
    """Wrapper for exporting a full-prefix decoder step to ONNX."""

    def __init__(self, decoder: nn.Module):
        super().__init__()
        self.decoder = decoder

    def forward(
        self,
        encoder_features: torch.Tensor,
        encoder_mask: torch.Tensor,
        input_ids: torch.Tensor,
    ) -> torch.Tensor:
        return self.decoder(encoder_features, encoder_mask, input_ids)


def export_to_onnx(
    encoder: nn.Module,
    decoder: nn.Module,
    output_path: str,
    height: int = MODEL_H,
    width: int = MIN_W,
    opset_version: int = 17,
) -> Tuple[str, str]:
    """Export model to ONNX format.

    Args:
        encoder: Module mapping (pixel_values, pixel_mask) to (features, mask)
        decoder: Module mapping (features, mask, input_ids) to logits
        output_path: Base path for output files
        height: Input height used for tracing
        width: Input width used for tracing (width is exported as dynamic)
        opset_version: ONNX opset version

    Returns:
        Tuple of (encoder_path, decoder_path)
    """
    output_dir = Path(output_path).parent
    output_dir.mkdir(parents=True, exist_ok=True)

    base_name = Path(output_path).stem

    encoder_wrapper = EncoderWrapper(encoder)
    decoder_wrapper = DecoderStepWrapper(decoder)
    encoder_wrapper.train(False)
    decoder_wrapper.train(False)

    dummy_pixels = torch.zeros(1, 1, height, width)
    dummy_mask = torch.zeros(1, height, width, dtype=torch.bool)
    with torch.no_grad():
        dummy_features, dummy_enc_mask = encoder_wrapper(dummy_pixels, dummy_mask)

    encoder_path = output_dir / f"{base_name}_encoder.onnx"
    torch.onnx.export(
        encoder_wrapper,
        (dummy_pixels, dummy_mask),
        str(encoder_path),
        input_names=list(ENCODER_INPUTS),
        output_names=list(ENCODER_OUTPUTS),
        dynamic_axes={
            'pixel_values': {3: 'width'},
            'pixel_mask': {2: 'width'},
            'encoder_features': {1: 'num_features'},
            'encoder_mask': {1: 'num_features'},
        },
        opset_version=opset_version,
        do_constant_folding=True,
        dynamo=False,
    )

    dummy_ids = torch.zeros(1, 2, dtype=torch.long)
    decoder_path = output_dir / f"{base_name}_decoder.onnx"
    torch.onnx.export(
        decoder_wrapper,
        (dummy_features, dummy_enc_mask, dummy_ids),
        str(decoder_path),
        input_names=list(DECODER_INPUTS),
        output_names=list(DECODER_OUTPUTS),
        dynamic_axes={
            'encoder_features': {1: 'num_features'},
            'encoder_mask': {1: 'num_features'},
            'input_ids': {1: 'seq_length'},
            'logits': {1: 'seq_length'},
        },
        opset_version=opset_version,
        do_constant_folding=True,
        dynamo=False,
    )

    logger.info(f"Exported encoder to {encoder_path}")
    logger.info(f"Exported decoder to {decoder_path}")

    return str(encoder_path), str(decoder_path)


def check_onnx(onnx_path: str) -> bool:
    """Check an exported graph with the ONNX checker."""
    import onnx

    try:
        onnx.checker.check_model(onnx.load(onnx_path))
    except onnx.checker.ValidationError as e:
        logger.error(f"ONNX check failed for {onnx_path}: {e}")
        return False

    logger.info(f"ONNX check passed for {onnx_path}")
    return True
