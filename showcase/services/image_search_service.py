"""
Baidu Image Search Service
Similar-image enrollment, search and deletion on top of the Baidu AI platform
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Type

import aiohttp
import structlog

from showcase.core.config import Settings, settings as default_settings
from showcase.core.exceptions import (
    ConfigurationError,
    DeletionError,
    EnrollmentError,
    ImageSearchError,
    SearchError,
    UpstreamAuthError,
)
from showcase.services.http_client import client_session
from showcase.services.image_loader import ImageLoader, ImageSource

logger = structlog.get_logger(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class AccessTokenManager:
    """Process-wide cache of the vendor access token"""

    def __init__(
        self,
        config: Settings = default_settings,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger
        self.api_key = config.BAIDU_API_KEY
        self.secret_key = config.BAIDU_SECRET_KEY
        self.token_url = config.BAIDU_TOKEN_URL
        self.default_ttl = config.BAIDU_TOKEN_DEFAULT_TTL
        self.refresh_margin = config.BAIDU_TOKEN_REFRESH_MARGIN
        self.timeout = config.BAIDU_REQUEST_TIMEOUT
        self.session = session
        self.clock = clock

        self.access_token: Optional[str] = None
        self.expires_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()

    def _cached_token(self) -> Optional[str]:
        if self.access_token and self.expires_at is not None and self.clock() < self.expires_at:
            return self.access_token
        return None

    def invalidate(self):
        """Drop the cached token so the next call re-authenticates"""
        self.access_token = None
        self.expires_at = None

    async def acquire_token(self) -> str:
        """Return a valid access token, exchanging credentials when the cache is stale"""
        if not self.api_key or not self.secret_key:
            raise ConfigurationError(
                "Baidu API credentials are not configured; set BAIDU_API_KEY and BAIDU_SECRET_KEY"
            )

        token = self._cached_token()
        if token:
            return token

        # Concurrent callers share one in-flight exchange
        async with self._refresh_lock:
            token = self._cached_token()
            if token:
                return token
            return await self._exchange_credentials()

    async def _exchange_credentials(self) -> str:
        params = {
            "grant_type": "client_credentials",
            "client_id": self.api_key,
            "client_secret": self.secret_key,
        }

        try:
            async with client_session(self.session, self.timeout) as session:
                async with session.post(self.token_url, params=params) as response:
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamAuthError(f"Failed to obtain Baidu access token: {e}") from e

        if isinstance(data, dict) and data.get("access_token"):
            expires_in = int(data.get("expires_in") or self.default_ttl)
            self.access_token = data["access_token"]
            self.expires_at = self.clock() + expires_in - self.refresh_margin
            self.logger.info("Baidu access token refreshed", expires_in=expires_in)
            return self.access_token

        if isinstance(data, dict) and data.get("error"):
            description = data.get("error_description") or data.get("error_msg") or ""
            raise UpstreamAuthError(
                f"Failed to obtain Baidu access token: {data['error']} - {description}",
                payload=data,
            )

        raise UpstreamAuthError(f"Failed to obtain Baidu access token: {json.dumps(data)}", payload=data)


class ImageSearchService:
    """Service for the Baidu similar-image index"""

    def __init__(
        self,
        config: Settings = default_settings,
        session: Optional[aiohttp.ClientSession] = None,
        loader: Optional[ImageLoader] = None,
        token_manager: Optional[AccessTokenManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger
        self.add_url = config.BAIDU_SIMILAR_ADD_URL
        self.search_url = config.BAIDU_SIMILAR_SEARCH_URL
        self.delete_url = config.BAIDU_SIMILAR_DELETE_URL
        self.max_page_size = config.BAIDU_MAX_PAGE_SIZE
        self.timeout = config.BAIDU_REQUEST_TIMEOUT
        self.session = session
        self.loader = loader or ImageLoader(config, session=session)
        self.token_manager = token_manager or AccessTokenManager(config, session=session, clock=clock)

    async def _post_form(
        self,
        url: str,
        form: Dict[str, str],
        error_class: Type[ImageSearchError],
        action: str,
    ) -> Dict[str, Any]:
        """POST a form to a vendor endpoint and return the decoded JSON body"""
        token = await self.token_manager.acquire_token()

        try:
            async with client_session(self.session, self.timeout) as session:
                async with session.post(
                    url,
                    params={"access_token": token},
                    data=form,
                    headers=FORM_HEADERS,
                ) as response:
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise error_class(f"{action} failed: {e}") from e

        if not isinstance(data, dict):
            raise error_class(f"{action} failed: {json.dumps(data)}", payload=data)

        if data.get("error_code"):
            if data["error_code"] in (110, 111):
                # Token revoked or expired early on the vendor side
                self.token_manager.invalidate()
            raise error_class(f"{action} failed: {json.dumps(data, ensure_ascii=False)}", payload=data)

        return data

    async def enroll(self, image_source: ImageSource, label: str) -> Dict[str, Any]:
        """
        Add an image to the similar-image index.

        Args:
            image_source: bytes, URL or path of the image
            label: brief stored alongside the image, returned with search hits

        Returns:
            dict with the vendor ``cont_sign`` and ``log_id``
        """
        await self.token_manager.acquire_token()
        image_base64 = await self.loader.encode(image_source)

        data = await self._post_form(
            self.add_url,
            {"image": image_base64, "brief": label or ""},
            EnrollmentError,
            "Image enrollment",
        )

        if not data.get("cont_sign"):
            raise EnrollmentError(
                f"Image enrollment failed: {json.dumps(data, ensure_ascii=False)}", payload=data
            )

        self.logger.info("Image enrolled", label=label, cont_sign=data["cont_sign"], log_id=data.get("log_id"))
        return {"cont_sign": data["cont_sign"], "log_id": data.get("log_id")}

    async def find_similar(self, image_source: ImageSource, page: int = 0, page_size: int = 10) -> List[Dict[str, Any]]:
        """Search the index; returns hits as dicts with brief, score and cont_sign"""
        await self.token_manager.acquire_token()
        image_base64 = await self.loader.encode(image_source)

        page_size = max(1, min(page_size, self.max_page_size))
        data = await self._post_form(
            self.search_url,
            {"image": image_base64, "pn": str(max(page, 0)), "rn": str(page_size)},
            SearchError,
            "Image search",
        )

        if "result" not in data:
            if data.get("result_num") == 0:
                return []
            raise SearchError(f"Image search failed: {json.dumps(data, ensure_ascii=False)}", payload=data)

        results = data["result"] or []
        if not isinstance(results, list):
            raise SearchError(f"Image search failed: {json.dumps(data, ensure_ascii=False)}", payload=data)

        self.logger.info("Image search completed", hits=len(results), log_id=data.get("log_id"))
        return [
            {
                "brief": item.get("brief"),
                "score": item.get("score", 0),
                "cont_sign": item.get("cont_sign"),
            }
            for item in results
            if isinstance(item, dict)
        ]

    async def remove(self, signature: str) -> Dict[str, Any]:
        """Delete an enrolled image by its cont_sign"""
        data = await self._post_form(
            self.delete_url,
            {"cont_sign": signature},
            DeletionError,
            "Image deletion",
        )

        if not data.get("log_id"):
            raise DeletionError(f"Image deletion failed: {json.dumps(data, ensure_ascii=False)}", payload=data)

        self.logger.info("Image removed from index", cont_sign=signature, log_id=data["log_id"])
        return {"log_id": data["log_id"]}


# Export singleton instance
image_search_service = ImageSearchService()
