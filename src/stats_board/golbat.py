"""Golbat HTTP API client used to cross-check live IV counts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import aiohttp

from .models import ApiOptions

logger = logging.getLogger(__name__)

_SCAN_PATH = "/api/pokemon/v2/scan"


class GolbatAPIError(Exception):
    """The Golbat API could not be queried."""


class GolbatClient:
    """Query currently active Pokémon with fixed IV values."""

    def __init__(self, session: aiohttp.ClientSession, options: ApiOptions):
        if not options.host:
            raise ValueError("Golbat API host is not configured")
        self._session = session
        self._options = options

    async def scan_iv(self, iv_min: int, iv_max: int) -> Sequence[Mapping[str, Any]]:
        """Return active Pokémon whose attack, defence and stamina IV lie in range."""

        iv_range = {"min": iv_min, "max": iv_max}
        payload = {
            "min": {"latitude": -90.0, "longitude": -180.0},
            "max": {"latitude": 90.0, "longitude": 180.0},
            "limit": self._options.scan_limit,
            "filters": [{"atk_iv": iv_range, "def_iv": iv_range, "sta_iv": iv_range}],
        }
        headers = {"Accept": "application/json"}
        if self._options.secret:
            headers["X-Golbat-Secret"] = self._options.secret
        url = f"{self._options.host}{_SCAN_PATH}"

        try:
            timeout_cfg = aiohttp.ClientTimeout(total=30)
            async with self._session.post(
                url,
                json=payload,
                headers=headers,
                timeout=timeout_cfg,
            ) as resp:
                if resp.status >= 400:
                    await resp.read()
                    raise GolbatAPIError(f"Golbat ответил статусом {resp.status}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError as exc:
                    raise GolbatAPIError("Golbat вернул некорректный JSON") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise GolbatAPIError(f"Не удалось обратиться к Golbat: {exc}") from exc

        if not isinstance(data, list):
            raise GolbatAPIError("Golbat вернул ответ неожиданного формата")
        return [item for item in data if isinstance(item, Mapping)]


def count_unique_spawns(entries: Sequence[Mapping[str, Any]]) -> int:
    """Count distinct spawn points, ignoring entries without ``spawn_id``."""

    return len({str(entry["spawn_id"]) for entry in entries if entry.get("spawn_id") is not None})
