"""Tests for the model blob cache."""

import pytest

from inktex.errors import ModelLoadError
from inktex.utils.model_cache import ModelCache, fetch_with_cache


def test_fetch_local_file_fills_cache(tmp_path):
    source = tmp_path / 'encoder.onnx'
    source.write_bytes(b'model-bytes')
    cache = ModelCache(tmp_path / 'cache')

    assert fetch_with_cache(str(source), cache) == b'model-bytes'
    assert cache.get(str(source)) == b'model-bytes'


def test_cache_hit_does_not_touch_source(tmp_path):
    source = tmp_path / 'vocab.json'
    source.write_bytes(b'{}')
    cache = ModelCache(tmp_path / 'cache')
    fetch_with_cache(str(source), cache)

    source.unlink()
    assert fetch_with_cache(str(source), cache) == b'{}'


def test_file_url(tmp_path):
    source = tmp_path / 'decoder.onnx'
    source.write_bytes(b'abc')
    assert fetch_with_cache(source.as_uri()) == b'abc'


def test_unwritable_cache_is_ignored(tmp_path):
    source = tmp_path / 'encoder.onnx'
    source.write_bytes(b'data')
    blocker = tmp_path / 'not-a-dir'
    blocker.write_text('file in the way')

    cache = ModelCache(blocker / 'cache')
    assert fetch_with_cache(str(source), cache) == b'data'
    assert cache.get(str(source)) is None


def test_missing_source_raises(tmp_path):
    with pytest.raises(ModelLoadError):
        fetch_with_cache(str(tmp_path / 'missing.onnx'), ModelCache(tmp_path / 'cache'))


def test_clear(tmp_path):
    cache = ModelCache(tmp_path / 'cache')
    cache.put('https://example.com/a', b'1')
    cache.clear()
    assert cache.get('https://example.com/a') is None
    ModelCache(tmp_path / 'never-created').clear()
