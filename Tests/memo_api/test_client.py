"""
Unit tests for the flomo API client.

Tests FlomoClient in isolation with httpx.MockTransport responses.
"""

import hashlib
import json

import httpx
import pytest

from memo_mirror.memo_api.client import (
    FlomoClient,
    MemoAPIAuthError,
    MemoAPIRemoteError,
    MemoAPIResponseError,
    MemoAPITransportError,
)
from memo_mirror.memo_api.utils import html_to_text, normalize_bearer_token, sign_params, with_signature
from memo_mirror.Models.memo import PaginationCursor


def api_memo(slug, content="<p>hello</p>", tags=None):
    return {
        "slug": slug,
        "content": content,
        "created_at": "2024-01-01 08:00:00",
        "updated_at": "2024-01-02 09:00:00",
        "tags": tags or [],
        "creator_id": 42,
        "files": [],
    }


def json_transport(payload, status_code=200, requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.MockTransport(handler)


class TestSigning:
    """Request signature helpers."""

    def test_signature_is_md5_over_sorted_pairs(self):
        params = {"b": "2", "a": "1", "c": "x y"}
        expected = hashlib.md5("a=1&b=2&c=x ysalt".encode("utf-8")).hexdigest()
        assert sign_params(params, "salt") == expected

    def test_signature_ignores_insertion_order(self):
        first = {"limit": "200", "tz": "8:0", "timestamp": "1700000000"}
        second = dict(reversed(list(first.items())))
        assert sign_params(first, "s") == sign_params(second, "s")

    def test_with_signature_does_not_mutate(self):
        params = {"a": "1"}
        signed = with_signature(params, "s")
        assert "sign" not in params
        assert signed["sign"] == sign_params(params, "s")

    def test_bearer_prefix(self):
        assert normalize_bearer_token("abc") == "Bearer abc"
        assert normalize_bearer_token("  Bearer abc ") == "Bearer abc"


class TestParams:
    """Query parameters of a page request."""

    @pytest.fixture
    def client(self):
        return FlomoClient(token="test_token")

    def test_first_page_has_no_cursor(self, client):
        params = client.get_params(timestamp=1700000000)
        assert params["limit"] == "200"
        assert params["timestamp"] == "1700000000"
        assert params["api_key"] == "flomo_web"
        assert params["tz"] == "8:0"
        assert "latest_slug" not in params
        assert "latest_updated_at" not in params
        unsigned = {k: v for k, v in params.items() if k != "sign"}
        assert params["sign"] == sign_params(unsigned, FlomoClient.SALT)

    def test_cursor_params(self, client):
        params = client.get_params("slug-1", 1700000000, timestamp=1)
        assert params["latest_slug"] == "slug-1"
        assert params["latest_updated_at"] == "1700000000"

    def test_slug_only_cursor(self, client):
        params = client.get_params("slug-1", None, timestamp=1)
        assert params["latest_slug"] == "slug-1"
        assert "latest_updated_at" not in params

    def test_signature_is_deterministic(self, client):
        assert client.get_params("s", 5, timestamp=10) == client.get_params("s", 5, timestamp=10)

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            FlomoClient(token="   ")

    def test_token_gets_bearer_prefix(self, client):
        assert client.token == "Bearer test_token"
        assert client.page_size == 200


class TestFetchPage:
    """fetch_page against a mocked endpoint."""

    @pytest.mark.asyncio
    async def test_success_converts_memos(self):
        requests = []
        payload = {"code": 0, "message": "ok", "data": [
            api_memo("abc", "<p>Line one<br>Line two</p>", tags=["idea"]),
        ]}
        async with FlomoClient("tok", transport=json_transport(payload, requests=requests)) as client:
            memos = await client.fetch_page(PaginationCursor("prev", 1700000000))

        assert len(memos) == 1
        memo = memos[0]
        assert memo.slug == "abc"
        assert memo.content == "Line one\nLine two"
        assert memo.tags == ["idea"]
        assert memo.url == "https://v.flomoapp.com/mine/?memo_id=abc"

        request = requests[0]
        assert request.headers["authorization"] == "Bearer tok"
        assert request.url.params["latest_slug"] == "prev"
        assert request.url.params["latest_updated_at"] == "1700000000"
        assert "sign" in request.url.params

    @pytest.mark.asyncio
    async def test_null_data_is_empty_page(self):
        async with FlomoClient("tok", transport=json_transport({"code": 0, "data": None})) as client:
            assert await client.fetch_page(None) == []

    @pytest.mark.asyncio
    async def test_nonzero_code_is_remote_error(self):
        payload = {"code": -10, "message": "token expired"}
        async with FlomoClient("tok", transport=json_transport(payload)) as client:
            with pytest.raises(MemoAPIRemoteError) as exc_info:
                await client.fetch_page(None)
        assert exc_info.value.code == -10
        assert "token expired" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_failure(self, status_code):
        async with FlomoClient("tok", transport=json_transport({}, status_code=status_code)) as client:
            with pytest.raises(MemoAPIAuthError):
                await client.fetch_page(None)

    @pytest.mark.asyncio
    async def test_server_error(self):
        async with FlomoClient("tok", transport=json_transport({}, status_code=502)) as client:
            with pytest.raises(MemoAPIRemoteError) as exc_info:
                await client.fetch_page(None)
        assert exc_info.value.code == 502
        assert not isinstance(exc_info.value, MemoAPIAuthError)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        async with FlomoClient("tok", transport=transport) as client:
            with pytest.raises(MemoAPIResponseError):
                await client.fetch_page(None)

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        payload = {"code": 0, "data": [{"content": "missing slug"}]}
        async with FlomoClient("tok", transport=json_transport(payload)) as client:
            with pytest.raises(MemoAPIResponseError):
                await client.fetch_page(None)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with FlomoClient("tok", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(MemoAPITransportError):
                await client.fetch_page(None)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with FlomoClient("tok", timeout=0.1, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(MemoAPITransportError, match="timed out"):
                await client.fetch_page(None)


class TestFetchAll:
    """fetch_all_memos paging without persistence."""

    @pytest.mark.asyncio
    async def test_stops_at_short_page(self):
        calls = []

        def handler(request):
            calls.append(dict(request.url.params))
            if len(calls) == 1:
                data = [api_memo(f"m{i}") for i in range(FlomoClient.PAGE_SIZE)]
            else:
                data = [api_memo("last")]
            return httpx.Response(200, content=json.dumps({"code": 0, "data": data}))

        async with FlomoClient("tok", transport=httpx.MockTransport(handler)) as client:
            memos = await client.fetch_all_memos()

        assert len(memos) == FlomoClient.PAGE_SIZE + 1
        assert len(calls) == 2
        assert calls[1]["latest_slug"] == f"m{FlomoClient.PAGE_SIZE - 1}"


class TestHtmlToText:
    """HTML memo bodies to plain text."""

    def test_paragraphs_and_breaks(self):
        assert html_to_text("<p>one</p><p>two<br/>three</p>") == "one\ntwo\nthree"

    def test_list_items_get_bullets(self):
        assert html_to_text("<ul><li>a</li><li>b</li></ul>") == "- a\n- b"

    def test_entities_and_inline_tags(self):
        assert html_to_text("<p><strong>Bold</strong> &amp; plain</p>") == "Bold & plain"

    def test_blank_lines_collapsed(self):
        assert html_to_text("<p>a</p><p></p><p></p><p></p><p>b</p>") == "a\n\nb"

    def test_empty(self):
        assert html_to_text("") == ""
