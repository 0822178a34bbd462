"""Discord API client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import aiohttp

from .models import SummaryEmbed
from .utils import RateLimiter

_API_BASE = "https://discord.com/api/v10"
_DEFAULT_USER_AGENT = "DiscordBot (https://github.com, 1.0)"
_UNKNOWN_MESSAGE_CODE = 10008
_UNKNOWN_MESSAGE_TEXT = "Unknown Message"
_MAX_ATTEMPTS = 3
_MAX_RETRY_AFTER = 30.0


logger = logging.getLogger(__name__)


class DiscordAPIError(Exception):
    """Discord rejected a request or could not be reached."""

    def __init__(self, status: int | None, code: int | None = None, message: str = ""):
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"HTTP {status}, code {code}: {message}" if status else message)


class UnknownMessageError(DiscordAPIError):
    """The target message no longer exists."""


@dataclass(slots=True)
class BotIdentity:
    id: str
    username: str


@dataclass(slots=True)
class PostedMessage:
    """Subset of the Discord message payload used by the reconciler."""

    id: str
    channel_id: str


def error_from_response(status: int, payload: Any) -> DiscordAPIError:
    """Build the exception matching a failed Discord response."""

    code: int | None = None
    message = ""
    if isinstance(payload, Mapping):
        try:
            code = int(payload["code"]) if payload.get("code") is not None else None
        except (TypeError, ValueError):
            code = None
        message = str(payload.get("message") or "")
    elif payload:
        message = str(payload)
    if code == _UNKNOWN_MESSAGE_CODE or _UNKNOWN_MESSAGE_TEXT in message:
        return UnknownMessageError(status, code, message)
    return DiscordAPIError(status, code, message)


class DiscordClient:
    """Thin asynchronous wrapper around the Discord REST API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: str,
        *,
        rate_per_second: float = 5.0,
        user_agent: str | None = None,
    ):
        self._session = session
        self._token = _normalize_token(token)
        self._user_agent = user_agent or _DEFAULT_USER_AGENT
        self._lock = asyncio.Lock()
        self._rate = RateLimiter(rate_per_second)

    async def fetch_identity(self) -> BotIdentity:
        payload = await self._request("GET", "/users/@me")
        if not isinstance(payload, Mapping) or not payload.get("id"):
            raise DiscordAPIError(None, None, "Discord вернул некорректный профиль бота")
        username = str(payload.get("global_name") or payload.get("username") or "")
        return BotIdentity(id=str(payload["id"]), username=username or "bot")

    async def send_embed(self, channel_id: str, embed: SummaryEmbed) -> PostedMessage:
        payload = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"embeds": [embed.to_payload()]},
        )
        return _parse_posted(payload, channel_id)

    async def edit_embed(
        self, channel_id: str, message_id: str, embed: SummaryEmbed
    ) -> PostedMessage:
        payload = await self._request(
            "PATCH",
            f"/channels/{channel_id}/messages/{message_id}",
            json={"embeds": [embed.to_payload()]},
        )
        return _parse_posted(payload, channel_id)

    async def list_recent_messages(
        self, channel_id: str, *, limit: int = 100
    ) -> Sequence[PostedMessage]:
        params = {"limit": str(max(1, min(limit, 100)))}
        payload = await self._request(
            "GET", f"/channels/{channel_id}/messages", params=params
        )
        if not isinstance(payload, list):
            return ()
        return tuple(
            PostedMessage(id=str(item["id"]), channel_id=channel_id)
            for item in payload
            if isinstance(item, Mapping) and item.get("id")
        )

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}")

    async def register_commands(
        self, application_id: str, commands: Sequence[Mapping[str, Any]]
    ) -> None:
        await self._request(
            "PUT",
            f"/applications/{application_id}/commands",
            json=[dict(command) for command in commands],
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        headers = {
            "Authorization": self._token,
            "User-Agent": self._user_agent,
            "Accept": "application/json",
        }
        url = f"{_API_BASE}{path}"

        async with self._lock:
            for attempt in range(1, _MAX_ATTEMPTS + 1):
                await self._rate.wait()
                try:
                    timeout_cfg = aiohttp.ClientTimeout(total=15)
                    async with self._session.request(
                        method,
                        url,
                        headers=headers,
                        params=params,
                        json=json,
                        timeout=timeout_cfg,
                    ) as resp:
                        status = resp.status
                        if status == 204:
                            await resp.read()
                            return None
                        try:
                            data = await resp.json(content_type=None)
                        except ValueError:
                            data = None
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    raise DiscordAPIError(
                        None, None, f"Не удалось обратиться к Discord: {exc}"
                    ) from exc

                if status == 429 and attempt < _MAX_ATTEMPTS:
                    delay = _retry_after(data)
                    logger.warning(
                        "Discord ограничил запросы (%s %s), повтор через %.2f с",
                        method,
                        path,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                if status >= 400:
                    raise error_from_response(status, data)
                return data
        raise DiscordAPIError(429, None, "Превышено число попыток")


def _normalize_token(token: str) -> str:
    candidate = (token or "").strip()
    lowered = candidate.lower()
    if lowered.startswith("bot ") or lowered.startswith("bearer "):
        return candidate
    return f"Bot {candidate}"


def _retry_after(payload: Any) -> float:
    if isinstance(payload, Mapping):
        try:
            value = float(payload.get("retry_after", 1.0))
        except (TypeError, ValueError):
            value = 1.0
    else:
        value = 1.0
    return max(0.0, min(value, _MAX_RETRY_AFTER))


def _parse_posted(payload: Any, channel_id: str) -> PostedMessage:
    if not isinstance(payload, Mapping) or not payload.get("id"):
        raise DiscordAPIError(None, None, "Discord не вернул идентификатор сообщения")
    return PostedMessage(
        id=str(payload["id"]),
        channel_id=str(payload.get("channel_id") or channel_id),
    )
