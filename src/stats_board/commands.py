"""Slash commands delivered through the Discord interactions endpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Sequence

from aiohttp import web
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .models import SummaryEmbed

logger = logging.getLogger(__name__)

INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2
RESPONSE_PONG = 1
RESPONSE_CHANNEL_MESSAGE = 4
_EPHEMERAL_FLAG = 64
_CHAT_INPUT_COMMAND = 1


@dataclass(slots=True)
class CommandContext:
    """Read-only view of the running service available to command handlers."""

    latest_summary: Callable[[], SummaryEmbed | None]


CommandHandler = Callable[[CommandContext, Mapping[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class CommandInfo:
    name: str
    description: str
    handler: CommandHandler


def _reply(content: str) -> dict[str, Any]:
    return {
        "type": RESPONSE_CHANNEL_MESSAGE,
        "data": {"content": content, "flags": _EPHEMERAL_FLAG},
    }


async def cmd_ping(ctx: CommandContext, interaction: Mapping[str, Any]) -> dict[str, Any]:
    return _reply("Понг! Бот на связи.")


async def cmd_stats(ctx: CommandContext, interaction: Mapping[str, Any]) -> dict[str, Any]:
    embed = ctx.latest_summary()
    if embed is None:
        return _reply("Статистика ещё не собрана, попробуйте чуть позже.")
    return {
        "type": RESPONSE_CHANNEL_MESSAGE,
        "data": {"embeds": [embed.to_payload()], "flags": _EPHEMERAL_FLAG},
    }


COMMANDS: tuple[CommandInfo, ...] = (
    CommandInfo(
        name="ping",
        description="Проверить, что бот работает.",
        handler=cmd_ping,
    ),
    CommandInfo(
        name="stats",
        description="Показать последнюю собранную статистику.",
        handler=cmd_stats,
    ),
)

COMMAND_MAP: Mapping[str, CommandInfo] = MappingProxyType(
    {info.name: info for info in COMMANDS}
)


def command_payloads(commands: Sequence[CommandInfo] = COMMANDS) -> list[dict[str, Any]]:
    """Application command definitions for bulk registration."""

    return [
        {
            "name": info.name,
            "description": info.description[:100],
            "type": _CHAT_INPUT_COMMAND,
        }
        for info in commands
    ]


async def dispatch(
    table: Mapping[str, CommandInfo],
    interaction: Mapping[str, Any],
    ctx: CommandContext,
) -> dict[str, Any] | None:
    """Build the response to ``interaction``; None for unsupported payloads."""

    interaction_type = interaction.get("type")
    if interaction_type == INTERACTION_PING:
        return {"type": RESPONSE_PONG}
    if interaction_type != INTERACTION_APPLICATION_COMMAND:
        return None

    data = interaction.get("data") or {}
    name = str(data.get("name") or "") if isinstance(data, Mapping) else ""
    info = table.get(name)
    if info is None:
        return _reply(f"Неизвестная команда /{name}.")
    try:
        return await info.handler(ctx, interaction)
    except Exception:
        logger.exception("Unexpected error while executing command %s", name)
        return _reply("Команда завершилась неудачно. Попробуйте повторить позже.")


def verify_signature(public_key: str, signature: str, timestamp: str, body: bytes) -> bool:
    """Check the Ed25519 signature Discord attaches to every interaction."""

    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key))
        key.verify(bytes.fromhex(signature), timestamp.encode() + body)
    except (ValueError, InvalidSignature):
        return False
    return True


def create_interactions_app(
    public_key: str,
    ctx: CommandContext,
    table: Mapping[str, CommandInfo] = COMMAND_MAP,
) -> web.Application:
    async def handle_interaction(request: web.Request) -> web.StreamResponse:
        body = await request.read()
        signature = request.headers.get("X-Signature-Ed25519", "")
        timestamp = request.headers.get("X-Signature-Timestamp", "")
        if not verify_signature(public_key, signature, timestamp, body):
            return web.Response(status=401, text="invalid request signature")
        try:
            interaction = json.loads(body)
        except ValueError:
            return web.Response(status=400, text="malformed payload")
        if not isinstance(interaction, Mapping):
            return web.Response(status=400, text="malformed payload")
        response = await dispatch(table, interaction, ctx)
        if response is None:
            return web.Response(status=400, text="unsupported interaction")
        return web.json_response(response)

    app = web.Application()
    app.router.add_post("/interactions", handle_interaction)
    return app
