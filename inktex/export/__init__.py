"""Export utilities for ONNX."""

from inktex.export.to_onnx import export_to_onnx, check_onnx

__all__ = ['export_to_onnx', 'check_onnx']
