"""
Image Loader
Resolves an image reference (bytes, remote URL or local path) to base64
"""

import asyncio
import base64
import os
from pathlib import Path
from typing import Optional, Union

import aiohttp
import structlog

from showcase.core.config import Settings, settings as default_settings
from showcase.core.exceptions import ImageReadError
from showcase.services.http_client import client_session

logger = structlog.get_logger(__name__)

ImageSource = Union[bytes, bytearray, memoryview, str]


class ImageLoader:
    """Normalizes image sources into base64 payloads for the vendor API"""

    def __init__(self, config: Settings = default_settings, session: Optional[aiohttp.ClientSession] = None):
        self.logger = logger
        self.upload_root = Path(config.UPLOAD_DIR)
        self.url_prefix = config.UPLOAD_URL_PREFIX
        self.timeout = config.BAIDU_REQUEST_TIMEOUT
        self.session = session

    async def encode(self, source: ImageSource) -> str:
        """
        Encode an image as base64.

        Resolution order, first match wins:
            1. in-memory bytes
            2. http(s) URL, downloaded
            3. existing absolute file path
            4. path relative to the upload root, with the upload URL prefix stripped
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            return base64.b64encode(bytes(source)).decode("ascii")

        if not isinstance(source, str) or not source.strip():
            raise ImageReadError(f"Unable to read image: unsupported source {source!r}")

        source = source.strip()

        if source.startswith(("http://", "https://")):
            return base64.b64encode(await self._download(source)).decode("ascii")

        if os.path.isabs(source) and os.path.isfile(source):
            return self._read_file(Path(source))

        candidate = self._resolve_upload_path(source)
        if not candidate.is_relative_to(self.upload_root.resolve()):
            raise ImageReadError(f"Unable to read image: {source} (path escapes upload root)")
        if candidate.is_file():
            return self._read_file(candidate)

        raise ImageReadError(f"Unable to read image: {source} (tried path: {candidate})")

    def _resolve_upload_path(self, source: str) -> Path:
        """Map '/uploads/products/a.jpg' style references onto the upload root"""
        relative = source.lstrip("/")
        prefix = self.url_prefix.strip("/") + "/"
        if prefix != "/" and relative.startswith(prefix):
            relative = relative[len(prefix):]
        return (self.upload_root / relative).resolve()

    def _read_file(self, path: Path) -> str:
        try:
            return base64.b64encode(path.read_bytes()).decode("ascii")
        except OSError as e:
            raise ImageReadError(f"Unable to read image file {path}: {e}") from e

    async def _download(self, url: str) -> bytes:
        try:
            async with client_session(self.session, self.timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise ImageReadError(f"Unable to download image {url}: HTTP {response.status}")
                    content = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageReadError(f"Unable to download image {url}: {e}") from e

        if not content:
            raise ImageReadError(f"Unable to download image {url}: empty response body")

        self.logger.debug("Image downloaded", url=url, size=len(content))
        return content
