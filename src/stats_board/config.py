"""TOML configuration loading."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from .models import ApiOptions, DatabaseOptions, DiscordOptions, Settings, SummaryOptions
from .utils import parse_bool

_ENV_TOKEN = "STATS_BOARD_DISCORD_TOKEN"
_ENV_API_SECRET = "STATS_BOARD_API_SECRET"
_ENV_DELETE_OLD = "STATS_BOARD_DELETE_OLD_EMBEDS"
_MAX_PURGE_LIMIT = 100


class ConfigError(ValueError):
    """Raised when the configuration file is missing or invalid."""


def load_settings(path: Path, *, environ: Mapping[str, str] | None = None) -> Settings:
    """Read ``path`` and return validated settings.

    Environment variables take precedence over the file for secrets, so the
    token does not have to live on disk.
    """

    env = os.environ if environ is None else environ
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Файл конфигурации {path} не найден") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Не удалось разобрать {path}: {exc}") from exc
    return parse_settings(raw, environ=env)


def parse_settings(
    raw: Mapping[str, Any], *, environ: Mapping[str, str] | None = None
) -> Settings:
    env = environ or {}
    discord_raw = _section(raw, "discord")
    database_raw = _section(raw, "database")
    api_raw = _section(raw, "api")
    summary_raw = _section(raw, "summary")

    token = (env.get(_ENV_TOKEN) or str(discord_raw.get("token") or "")).strip()
    if not token:
        raise ConfigError(f"Не задан токен Discord (discord.token или {_ENV_TOKEN})")

    channel_ids_raw = discord_raw.get("channel_ids") or []
    if not isinstance(channel_ids_raw, list):
        raise ConfigError("discord.channel_ids должен быть списком")
    channel_ids = [str(value).strip() for value in channel_ids_raw if str(value).strip()]
    if not channel_ids:
        raise ConfigError("Нужно указать хотя бы один канал в discord.channel_ids")

    public_key = str(discord_raw.get("public_key") or "").strip() or None
    discord = DiscordOptions(
        token=token,
        channel_ids=channel_ids,
        public_key=public_key,
        interactions_host=str(discord_raw.get("interactions_host") or "0.0.0.0"),
        interactions_port=_as_int(discord_raw, "interactions_port", 8080, "discord"),
    )

    database = DatabaseOptions(
        url=str(database_raw.get("url") or "").strip() or None,
        host=str(database_raw.get("host") or "127.0.0.1"),
        port=_as_int(database_raw, "port", 3306, "database"),
        user=str(database_raw.get("user") or "golbat"),
        password=str(database_raw.get("password") or ""),
        name=str(database_raw.get("name") or "golbat"),
    )

    api_host = str(api_raw.get("host") or "").strip().rstrip("/") or None
    api_secret = env.get(_ENV_API_SECRET) or str(api_raw.get("secret") or "").strip() or None
    api = ApiOptions(
        host=api_host,
        secret=api_secret,
        scan_limit=_as_int(api_raw, "scan_limit", 1000, "api"),
    )

    defaults = SummaryOptions()
    summary = SummaryOptions(
        title=str(summary_raw.get("title") or defaults.title),
        refresh_interval=_as_float(
            summary_raw, "refresh_interval", defaults.refresh_interval
        ),
        error_refresh_interval=_as_float(
            summary_raw, "error_refresh_interval", defaults.error_refresh_interval
        ),
        delete_old_embeds=parse_bool(
            env.get(_ENV_DELETE_OLD),
            default=_as_bool(summary_raw, "delete_old_embeds", defaults.delete_old_embeds),
        ),
        purge_limit=_as_int(summary_raw, "purge_limit", defaults.purge_limit, "summary"),
        include_active_counts=_as_bool(
            summary_raw, "include_active_counts", defaults.include_active_counts
        ),
        inline=_as_bool(summary_raw, "inline", defaults.inline),
    )

    if summary.refresh_interval <= 0 or summary.error_refresh_interval <= 0:
        raise ConfigError("Интервалы обновления должны быть положительными")
    if not 1 <= summary.purge_limit <= _MAX_PURGE_LIMIT:
        raise ConfigError(f"summary.purge_limit должен быть от 1 до {_MAX_PURGE_LIMIT}")
    if summary.include_active_counts and not api.host:
        raise ConfigError("include_active_counts требует api.host")

    return Settings(discord=discord, database=database, api=api, summary=summary)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Секция [{name}] должна быть таблицей")
    return value


def _as_int(section: Mapping[str, Any], key: str, default: int, name: str) -> int:
    value = section.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}.{key} должен быть целым числом") from exc


def _as_float(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"summary.{key} должен быть числом") from exc


def _as_bool(section: Mapping[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        parsed = parse_bool(value, default=True)
        if parsed == parse_bool(value, default=False):
            return parsed
    raise ConfigError(f"summary.{key} должен быть логическим значением (true/false)")
