"""Data models used across the stats board service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


@dataclass(slots=True)
class DiscordOptions:
    """Bot credentials and target channels."""

    token: str
    channel_ids: list[str] = field(default_factory=list)
    public_key: str | None = None
    interactions_host: str = "0.0.0.0"
    interactions_port: int = 8080


@dataclass(slots=True)
class DatabaseOptions:
    """Connection settings for the scanner database."""

    url: str | None = None
    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "golbat"
    password: str = ""
    name: str = "golbat"


@dataclass(slots=True)
class ApiOptions:
    """Golbat HTTP API used for live counts."""

    host: str | None = None
    secret: str | None = None
    scan_limit: int = 1000


@dataclass(slots=True)
class SummaryOptions:
    """Tunable behaviour of the summary loop."""

    title: str = "Scanner statistics"
    refresh_interval: float = 60.0
    error_refresh_interval: float = 10.0
    delete_old_embeds: bool = False
    purge_limit: int = 100
    include_active_counts: bool = False
    inline: bool = True


@dataclass(slots=True)
class Settings:
    discord: DiscordOptions
    database: DatabaseOptions = field(default_factory=DatabaseOptions)
    api: ApiOptions = field(default_factory=ApiOptions)
    summary: SummaryOptions = field(default_factory=SummaryOptions)


@dataclass(frozen=True, slots=True)
class PokemonStats:
    active: int = 0
    with_iv: int = 0
    hundo: int = 0
    nundo: int = 0


@dataclass(frozen=True, slots=True)
class RaidStats:
    raids: int = 0
    eggs: int = 0


@dataclass(frozen=True, slots=True)
class GymStats:
    neutral: int = 0
    mystic: int = 0
    valor: int = 0
    instinct: int = 0

    @property
    def total(self) -> int:
        return self.neutral + self.mystic + self.valor + self.instinct


@dataclass(frozen=True, slots=True)
class QuestStats:
    ar: int = 0
    no_ar: int = 0


@dataclass(frozen=True, slots=True)
class RocketStats:
    grunts: int = 0
    leaders: int = 0
    giovanni: int = 0


@dataclass(frozen=True, slots=True)
class EventStats:
    showcases: int = 0
    kecleon: int = 0


@dataclass(frozen=True, slots=True)
class AggregateSnapshot:
    """Statistics gathered during a single aggregation cycle."""

    pokemon: PokemonStats = PokemonStats()
    raids: RaidStats = RaidStats()
    gyms: GymStats = GymStats()
    pokestops: int = 0
    quests: QuestStats = QuestStats()
    lures: Mapping[int, int] = field(default_factory=dict)
    rockets: RocketStats = RocketStats()
    events: EventStats = EventStats()
    routes: int = 0
    hundo_active: int | None = None
    nundo_active: int | None = None


@dataclass(frozen=True, slots=True)
class DisplayField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True, slots=True)
class SummaryEmbed:
    """Rendered summary ready to be posted to Discord."""

    title: str
    fields: Sequence[DisplayField]
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "timestamp": self.timestamp,
            "fields": [
                {"name": item.name, "value": item.value, "inline": item.inline}
                for item in self.fields
            ],
        }

