"""
Handwritten math recognition models

Executor backends and the end-to-end recognizer built on top of them.
"""

from inktex.models.executor import Executor, EncoderOutput, OnnxExecutor, TorchExecutor
from inktex.models.recognizer import MathRecognizer, RecognizerConfig, RecognitionResult

__all__ = [
    'Executor',
    'EncoderOutput',
    'OnnxExecutor',
    'TorchExecutor',
    'MathRecognizer',
    'RecognizerConfig',
    'RecognitionResult',
]
