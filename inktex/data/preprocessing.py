"""
Stroke-to-tensor preprocessing.

Scales the rendered gesture to the encoder's input convention: fixed height,
dynamic width aligned to ``W_ALIGN`` and clamped to ``[MIN_W, MAX_W]``,
content scaled toward ``TARGET_H`` and anchored top-left, with a padding
mask marking everything outside the scaled content.
"""

from typing import Sequence, Optional
from dataclasses import dataclass
import math
import logging

import numpy as np
from PIL import Image

from inktex.data.strokes import Stroke
from inktex.data.rendering import render_strokes, PAD, BACKGROUND

logger = logging.getLogger(__name__)


MODEL_H = 256
MAX_W = 1024
MIN_W = 128
W_ALIGN = 64
# CROHME images average ~107px high; content is scaled to this, not MODEL_H
TARGET_H = 128

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


@dataclass
class PreprocessConfig:
    """Encoder input geometry."""
    model_height: int = MODEL_H
    target_height: int = TARGET_H
    min_width: int = MIN_W
    max_width: int = MAX_W
    width_align: int = W_ALIGN
    pad: int = PAD


@dataclass
class PreprocessResult:
    """Encoder-ready input.

    Attributes:
        tensor: Grayscale intensities in [0, 1], float32 [height, width]
        height: Tensor height (always the model height)
        width: Tensor width, a multiple of the alignment within [MIN_W, MAX_W]
        mask: uint8 [mask_height, mask_width], 1 for padding, 0 for content
    """
    tensor: np.ndarray
    height: int
    width: int
    mask: np.ndarray
    mask_height: int
    mask_width: int

    def pixel_values(self) -> np.ndarray:
        """Tensor shaped [1, 1, H, W] for the encoder."""
        return self.tensor.reshape(1, 1, self.height, self.width)

    def pixel_mask(self) -> np.ndarray:
        """Mask shaped [1, H, W] for the encoder."""
        return self.mask.reshape(1, self.mask_height, self.mask_width)


@dataclass
class ScaledCanvas:
    """Model-sized canvas with the scaled content at the top-left."""
    image: Image.Image
    content_height: int
    content_width: int

    @property
    def width(self) -> int:
        return self.image.width


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aligned_width(content_width: int, config: PreprocessConfig) -> int:
    """Canvas width for a given scaled content width."""
    width = math.ceil((content_width + config.pad) / config.width_align) * config.width_align
    return min(config.max_width, max(config.min_width, width))


def scale_to_fit(image: Image.Image, config: Optional[PreprocessConfig] = None) -> ScaledCanvas:
    """Scale a rendered gesture onto a model-height canvas.

    Args:
        image: Rendered gesture
        config: Input geometry

    Returns:
        ScaledCanvas with content size
    """
    config = config or PreprocessConfig()
    scale = min(config.target_height / image.height, config.max_width / image.width)
    dw = max(1, _round_half_up(image.width * scale))
    dh = max(1, _round_half_up(image.height * scale))
    canvas_w = aligned_width(dw, config)

    target = Image.new('RGB', (canvas_w, config.model_height), BACKGROUND)
    # Top-left alignment, not centered
    target.paste(image.resize((dw, dh), Image.Resampling.BILINEAR), (0, 0))

    return ScaledCanvas(image=target, content_height=dh, content_width=dw)


def to_grayscale(image: Image.Image) -> np.ndarray:
    """Luma-weighted grayscale in [0, 1] as float32 [H, W]."""
    rgb = np.asarray(image.convert('RGB'), dtype=np.float64)
    gray = (rgb @ LUMA_WEIGHTS) / 255.0
    return gray.astype(np.float32)


def build_mask(height: int, width: int, content_height: int, content_width: int) -> np.ndarray:
    """Padding mask: 0 inside [0, content_height) x [0, content_width), 1 elsewhere."""
    mask = np.ones((height, width), dtype=np.uint8)
    mask[:content_height, :content_width] = 0
    return mask


def preprocess_strokes(
    strokes: Sequence[Stroke],
    config: Optional[PreprocessConfig] = None,
) -> PreprocessResult:
    """Turn a gesture into the encoder's pixel tensor and padding mask.

    Raises:
        ValueError: If the strokes contain no points
    """
    config = config or PreprocessConfig()
    rendered = render_strokes(strokes)
    scaled = scale_to_fit(rendered.image, config)
    tensor = to_grayscale(scaled.image)
    height, width = tensor.shape

    mask = build_mask(height, width, scaled.content_height, scaled.content_width)

    logger.debug(
        f"Preprocessed {rendered.width}x{rendered.height} raster to {width}x{height} "
        f"(content {scaled.content_width}x{scaled.content_height})"
    )

    return PreprocessResult(
        tensor=tensor,
        height=height,
        width=width,
        mask=mask,
        mask_height=height,
        mask_width=width,
    )
