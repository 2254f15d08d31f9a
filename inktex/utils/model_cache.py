"""
Byte-blob source for model and vocabulary files.

Blobs are fetched by URL and optionally kept in a local directory cache
keyed by URL. The cache only saves latency: a missing, unreadable or
unwritable cache never changes what is returned.
"""

from typing import Optional, Union
from pathlib import Path
import hashlib
import logging
import os
import urllib.request
from urllib.error import URLError

from inktex.errors import ModelLoadError

logger = logging.getLogger(__name__)


DEFAULT_CACHE_DIR = Path.home() / '.cache' / 'inktex'


class ModelCache:
    """Directory cache of downloaded blobs, one file per URL."""

    def __init__(self, cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR):
        self.cache_dir = Path(cache_dir).expanduser()

    def _path_for(self, url: str) -> Path:
        key = hashlib.sha256(url.encode('utf-8')).hexdigest()
        return self.cache_dir / f"{key}.bin"

    def get(self, url: str) -> Optional[bytes]:
        """Cached bytes for ``url``, or None."""
        path = self._path_for(url)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Ignoring unreadable cache entry {path}: {e}")
            return None

    def put(self, url: str, data: bytes):
        """Store bytes for ``url``; failures are logged and ignored."""
        path = self._path_for(url)
        tmp_path = path.with_suffix('.tmp')
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(f"Could not cache {url}: {e}")

    def clear(self):
        """Remove every cached blob."""
        if not self.cache_dir.exists():
            return
        for path in self.cache_dir.glob('*.bin'):
            path.unlink()


def _read_source(url: str) -> bytes:
    """Read a URL, file:// URL or plain local path."""
    local = Path(url)
    if '://' not in url and local.exists():
        return local.read_bytes()

    try:
        with urllib.request.urlopen(url) as response:
            return response.read()
    except (URLError, ValueError, OSError) as e:
        raise ModelLoadError(f"Failed to fetch {url}: {e}") from e


def fetch_with_cache(url: str, cache: Optional[ModelCache] = None) -> bytes:
    """Fetch ``url``, serving from and filling ``cache`` when given.

    Raises:
        ModelLoadError: If the blob cannot be fetched
    """
    if cache is not None:
        cached = cache.get(url)
        if cached is not None:
            logger.debug(f"Cache hit for {url}")
            return cached

    data = _read_source(url)
    logger.info(f"Fetched {len(data):,} bytes from {url}")

    if cache is not None:
        cache.put(url, data)
    return data
