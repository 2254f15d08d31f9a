"""
Handwritten mathematical expression recognition.

Converts freehand pen strokes into LaTeX with a pretrained encoder-decoder
model run through an external executor.
"""

from inktex.data.strokes import Stroke, StrokePoint, is_meaningful
from inktex.data.preprocessing import PreprocessResult
from inktex.models.decoder.tokenizer import Vocab
from inktex.models.executor import Executor, OnnxExecutor
from inktex.models.recognizer import (
    MathRecognizer,
    RecognizerConfig,
    RecognitionResult,
    recognize,
    preprocess,
)

__version__ = '0.1.0'

__all__ = [
    'Stroke',
    'StrokePoint',
    'is_meaningful',
    'PreprocessResult',
    'Vocab',
    'Executor',
    'OnnxExecutor',
    'MathRecognizer',
    'RecognizerConfig',
    'RecognitionResult',
    'recognize',
    'preprocess',
]
