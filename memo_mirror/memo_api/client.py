# memo_mirror/memo_api/client.py
# Description: Async client for the flomo memo list API
#
# This module handles all HTTP interactions with the remote note service:
# request signing, cursor parameters, response validation and conversion of
# the returned HTML memos into plain-text Memo records.

from __future__ import annotations
import time
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from ..Models.memo import Memo, PaginationCursor
from ..Utils.timestamps import timestamp_to_epoch
from .schemas import ApiMemo, ApiResponse
from .utils import html_to_text, normalize_bearer_token, with_signature

logger = logger.bind(module="memo_api_client")


class MemoAPIError(Exception):
    """Base exception for remote memo source errors."""
    pass


class MemoAPITransportError(MemoAPIError):
    """Network, connection or timeout failure."""
    pass


class MemoAPIResponseError(MemoAPIError):
    """Response could not be parsed or had an unexpected shape."""
    pass


class MemoAPIRemoteError(MemoAPIError):
    """The service answered with a non-success code."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class MemoAPIAuthError(MemoAPIRemoteError):
    """The service rejected the credentials."""
    pass


class FlomoClient:
    """Client for the flomo "memos updated since" endpoint."""

    PAGE_SIZE = 200
    URL_UPDATED = "https://flomoapp.com/api/v1/memo/updated/"
    MEMO_URL_TEMPLATE = "https://v.flomoapp.com/mine/?memo_id={slug}"
    SALT = "dbbc3dd73364b4084c3a69346e0ce2b2"
    DEFAULT_TIMEOUT = 30.0

    STATIC_PARAMS = {
        "tz": "8:0",
        "api_key": "flomo_web",
        "app_version": "5.25.64",
        "platform": "mac",
        "webp": "1",
    }

    def __init__(self, token: str, base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the client.

        Args:
            token: Authorization token, with or without the "Bearer " prefix
            base_url: Endpoint override, defaults to URL_UPDATED
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not token or not token.strip():
            raise ValueError("An authorization token is required")
        self.token = normalize_bearer_token(token)
        self.base_url = base_url or self.URL_UPDATED
        self.timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def page_size(self) -> int:
        return self.PAGE_SIZE

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"authorization": self.token},
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FlomoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def get_params(self, latest_slug: Optional[str] = None,
                   latest_updated_at: Optional[int] = None,
                   timestamp: Optional[int] = None) -> Dict[str, str]:
        """Build the signed query parameters for one page request.

        The slug is sent even when no timestamp could be derived for it.
        """
        params: Dict[str, str] = {
            "limit": str(self.PAGE_SIZE),
            "timestamp": str(timestamp if timestamp is not None else int(time.time())),
            **self.STATIC_PARAMS,
        }
        if latest_slug is not None:
            params["latest_slug"] = latest_slug
        if latest_updated_at is not None:
            params["latest_updated_at"] = str(latest_updated_at)
        if latest_slug is not None or latest_updated_at is not None:
            logger.debug(f"Pagination params: latest_slug={latest_slug}, latest_updated_at={latest_updated_at}")
        return with_signature(params, self.SALT)

    def _to_memo(self, api_memo: ApiMemo) -> Memo:
        return Memo(
            slug=api_memo.slug,
            content=html_to_text(api_memo.content),
            created_at=api_memo.created_at,
            updated_at=api_memo.updated_at,
            tags=list(api_memo.tags),
            url=self.MEMO_URL_TEMPLATE.format(slug=api_memo.slug),
        )

    async def _request_page(self, params: Dict[str, str]) -> ApiResponse:
        try:
            response = await self.client.get(self.base_url, params=params)
        except httpx.TimeoutException as e:
            raise MemoAPITransportError(f"Request timed out after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise MemoAPITransportError(f"Network error: {e}") from e

        if response.status_code in (401, 403):
            raise MemoAPIAuthError(f"Authentication failed: HTTP {response.status_code}",
                                   code=response.status_code)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MemoAPIRemoteError(f"HTTP error: {e.response.status_code}",
                                     code=e.response.status_code) from e

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise MemoAPIResponseError(f"JSON parse error: {e} - Response was: {response.text[:200]}") from e
        try:
            api_response = ApiResponse.model_validate(payload)
        except ValidationError as e:
            raise MemoAPIResponseError(f"Unexpected response shape: {e}") from e

        if api_response.code != 0:
            detail = f" - {api_response.message}" if api_response.message else ""
            raise MemoAPIRemoteError(f"API error: code {api_response.code}{detail}", code=api_response.code)
        return api_response

    async def fetch_page(self, cursor: Optional[PaginationCursor] = None) -> List[Memo]:
        """Fetch one page of memos after the cursor (from the start when None).

        Returns:
            Memos in the order the service returned them, content as plain text

        Raises:
            MemoAPIError: on transport, protocol or remote failures
        """
        params = self.get_params(
            latest_slug=cursor.slug if cursor else None,
            latest_updated_at=cursor.updated_at_epoch if cursor else None,
        )
        api_response = await self._request_page(params)
        return [self._to_memo(api_memo) for api_memo in api_response.data or []]

    async def fetch_all_memos(self, max_pages: int = 100) -> List[Memo]:
        """Fetch every memo without persisting anything.

        Stops at an empty or short page, or after max_pages requests.
        Duplicates are not removed.
        """
        all_memos: List[Memo] = []
        cursor: Optional[PaginationCursor] = None
        for _ in range(max_pages):
            memos = await self.fetch_page(cursor)
            all_memos.extend(memos)
            if len(memos) < self.PAGE_SIZE:
                break
            last = memos[-1]
            cursor = PaginationCursor(slug=last.slug, updated_at_epoch=timestamp_to_epoch(last.updated_at))
        logger.info(f"Fetched {len(all_memos)} memos")
        return all_memos

#
# End of client.py
#######################################################################################################################
