from __future__ import annotations

import asyncio
import json
from typing import Any, cast

import aiohttp
import pytest

from stats_board.golbat import GolbatAPIError, GolbatClient, count_unique_spawns
from stats_board.models import ApiOptions


class FakeResponse:
    def __init__(self, status: int, payload: Any = None) -> None:
        self.status = status
        self._payload = payload

    async def json(self, content_type: str | None = None) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def read(self) -> bytes:
        return b""

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class FakeSession:
    def __init__(self, response: FakeResponse) -> None:
        self._response = response
        self.posts: list[tuple[str, dict[str, Any]]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append((url, kwargs))
        return self._response


def test_count_unique_spawns() -> None:
    entries = [{"spawn_id": 1}, {"spawn_id": "1"}, {"spawn_id": 2}, {"spawn_id": None}, {}]
    assert count_unique_spawns(entries) == 2
    assert count_unique_spawns([]) == 0


def test_scan_iv_sends_filter_and_secret() -> None:
    session = FakeSession(FakeResponse(200, [{"spawn_id": 5}, "junk"]))
    client = GolbatClient(
        cast(aiohttp.ClientSession, session),
        ApiOptions(host="http://golbat:9001", secret="s3cret", scan_limit=50),
    )

    entries = asyncio.run(client.scan_iv(15, 15))

    assert entries == [{"spawn_id": 5}]
    url, kwargs = session.posts[0]
    assert url == "http://golbat:9001/api/pokemon/v2/scan"
    assert kwargs["headers"]["X-Golbat-Secret"] == "s3cret"
    assert kwargs["json"]["limit"] == 50
    assert kwargs["json"]["filters"] == [
        {
            "atk_iv": {"min": 15, "max": 15},
            "def_iv": {"min": 15, "max": 15},
            "sta_iv": {"min": 15, "max": 15},
        }
    ]


def test_scan_iv_errors() -> None:
    options = ApiOptions(host="http://golbat:9001")

    failing = GolbatClient(cast(aiohttp.ClientSession, FakeSession(FakeResponse(401))), options)
    with pytest.raises(GolbatAPIError):
        asyncio.run(failing.scan_iv(0, 0))

    odd = GolbatClient(cast(aiohttp.ClientSession, FakeSession(FakeResponse(200, {}))), options)
    with pytest.raises(GolbatAPIError):
        asyncio.run(odd.scan_iv(0, 0))

    html_page = json.JSONDecodeError("Expecting value", "<html>Bad Gateway</html>", 0)
    broken = GolbatClient(
        cast(aiohttp.ClientSession, FakeSession(FakeResponse(200, html_page))), options
    )
    with pytest.raises(GolbatAPIError) as excinfo:
        asyncio.run(broken.scan_iv(15, 15))
    assert "JSON" in str(excinfo.value)

    with pytest.raises(ValueError):
        GolbatClient(cast(aiohttp.ClientSession, FakeSession(FakeResponse(200))), ApiOptions())
