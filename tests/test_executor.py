"""Tests for the torch and onnxruntime executors."""

import numpy as np
import pytest
import torch

from inktex.errors import ModelLoadError, InferenceError
from inktex.export import export_to_onnx, check_onnx
from inktex.models import executor as executor_module
from inktex.models.executor import OnnxExecutor, TorchExecutor
from inktex.models.recognizer import MathRecognizer, RecognizerConfig

from conftest import TinyEncoder, TinyDecoder, x_squared_strokes


def make_inputs(width=128):
    pixels = np.random.RandomState(0).rand(1, 1, 256, width).astype(np.float32)
    mask = np.zeros((1, 256, width), dtype=np.uint8)
    mask[:, :, width // 2:] = 1
    return pixels, mask


def test_torch_executor_shapes(vocab):
    torch.manual_seed(0)
    executor = TorchExecutor(TinyEncoder(), TinyDecoder(len(vocab)))
    encoded = executor.encode(*make_inputs())

    logits = executor.decode_step(encoded.features, encoded.mask, [1, 3, 4])
    assert logits.shape == (1, 3, len(vocab))
    assert logits.dtype == np.float32


def test_torch_executor_wraps_runtime_errors(vocab):
    executor = TorchExecutor(TinyEncoder(), TinyDecoder(len(vocab)))
    encoded = executor.encode(*make_inputs())
    with pytest.raises(InferenceError):
        executor.decode_step(encoded.features, encoded.mask, [1, 999])


def test_recognizer_with_torch_executor(vocab):
    torch.manual_seed(0)
    executor = TorchExecutor(TinyEncoder(), TinyDecoder(len(vocab)))
    recognizer = MathRecognizer(executor, vocab, RecognizerConfig(max_decode_steps=8))

    result = recognizer.recognize(x_squared_strokes())
    assert len(result.token_ids) <= 8
    assert all(0 <= t < len(vocab) for t in result.token_ids)


class FakeSession:
    def get_providers(self):
        return ['CPUExecutionProvider']


def test_session_creation_falls_back_to_cpu(monkeypatch):
    attempts = []

    def create_session(model_bytes, providers):
        attempts.append(tuple(providers))
        if 'CUDAExecutionProvider' in providers:
            raise RuntimeError('CUDA unavailable')
        return FakeSession()

    monkeypatch.setattr(executor_module, '_create_session', create_session)
    executor = OnnxExecutor.create(b'enc', b'dec', providers=['CUDAExecutionProvider'])

    assert isinstance(executor.encoder_session, FakeSession)
    assert attempts == [('CUDAExecutionProvider',), ('CPUExecutionProvider',), ('CPUExecutionProvider',)]


def test_session_creation_failure_raises(monkeypatch):
    def create_session(model_bytes, providers):
        raise RuntimeError('bad model')

    monkeypatch.setattr(executor_module, '_create_session', create_session)
    with pytest.raises(ModelLoadError):
        OnnxExecutor.create(b'enc', b'dec', providers=['CUDAExecutionProvider'])
    with pytest.raises(ModelLoadError):
        OnnxExecutor.create(b'enc', b'dec')


def test_invalid_model_bytes_raise_model_load_error():
    with pytest.raises(ModelLoadError):
        OnnxExecutor.create(b'not a model', b'not a model')


def test_export_matches_torch(tmp_path, vocab):
    torch.manual_seed(0)
    encoder, decoder = TinyEncoder(), TinyDecoder(len(vocab))
    enc_path, dec_path = export_to_onnx(encoder, decoder, str(tmp_path / 'tiny.onnx'))
    assert check_onnx(enc_path) and check_onnx(dec_path)

    with open(enc_path, 'rb') as f:
        enc_bytes = f.read()
    with open(dec_path, 'rb') as f:
        dec_bytes = f.read()

    torch_executor = TorchExecutor(encoder, decoder)
    with OnnxExecutor.create(enc_bytes, dec_bytes) as onnx_executor:
        # Wider than the traced input to exercise the dynamic width axis
        pixels, mask = make_inputs(width=256)
        ids = [1, 3, 6, 7]

        expected = torch_executor.decode_step(*_encoded(torch_executor, pixels, mask), ids)
        actual = onnx_executor.decode_step(*_encoded(onnx_executor, pixels, mask), ids)

    assert actual.shape == expected.shape == (1, 4, len(vocab))
    np.testing.assert_allclose(actual, expected, atol=1e-5)
    assert onnx_executor.encoder_session is None


def _encoded(executor, pixels, mask):
    encoded = executor.encode(pixels, mask)
    return encoded.features, encoded.mask


def test_recognizer_from_config(tmp_path, vocab):
    torch.manual_seed(0)
    enc_path, dec_path = export_to_onnx(TinyEncoder(), TinyDecoder(len(vocab)), str(tmp_path / 'tiny.onnx'))
    vocab_path = tmp_path / 'vocab.json'
    vocab.save(vocab_path)

    config = RecognizerConfig(
        encoder_url=enc_path,
        decoder_url=dec_path,
        vocab_url=str(vocab_path),
        cache_dir=str(tmp_path / 'cache'),
        beam_width=2,
        max_decode_steps=6,
    )
    with MathRecognizer.from_config(config) as recognizer:
        assert recognizer.vocab.vocab_size == len(vocab)
        result = recognizer.recognize(x_squared_strokes(), mode='expression')

    assert len(result.token_ids) <= 6
    assert len(list((tmp_path / 'cache').glob('*.bin'))) == 3
