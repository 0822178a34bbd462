"""Reporting queries against the Golbat scanner schema.

Every query is an independent function of ``(connection, now)`` so it can be
exercised on its own against any SQLAlchemy connection.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Connection, text

from .models import EventStats, GymStats, PokemonStats, QuestStats, RaidStats, RocketStats

# Golbat team ids
_TEAM_FIELDS = {0: "neutral", 1: "mystic", 2: "valor", 3: "instinct"}
_GIOVANNI = 44
_LEADERS = (41, 42, 43)
_INVASION_DISPLAY_TYPE = 1
_KECLEON_DISPLAY_TYPE = 8

_POKEMON_SQL = text(
    """
    SELECT
        COUNT(*) AS active,
        SUM(CASE WHEN iv IS NOT NULL THEN 1 ELSE 0 END) AS with_iv,
        SUM(CASE WHEN iv = 100 THEN 1 ELSE 0 END) AS hundo,
        SUM(CASE WHEN iv = 0 THEN 1 ELSE 0 END) AS nundo
    FROM pokemon
    WHERE expire_timestamp > :now
    """
)

_RAID_SQL = text(
    """
    SELECT
        SUM(CASE WHEN raid_battle_timestamp <= :now AND raid_pokemon_id > 0
            THEN 1 ELSE 0 END) AS raids,
        SUM(CASE WHEN raid_battle_timestamp > :now THEN 1 ELSE 0 END) AS eggs
    FROM gym
    WHERE raid_end_timestamp > :now
    """
)

_GYM_SQL = text(
    """
    SELECT team_id, COUNT(*) AS total
    FROM gym
    WHERE deleted = 0
    GROUP BY team_id
    """
)

_POKESTOP_SQL = text("SELECT COUNT(*) FROM pokestop WHERE deleted = 0")

_QUEST_SQL = text(
    """
    SELECT
        SUM(CASE WHEN quest_reward_type IS NOT NULL THEN 1 ELSE 0 END) AS ar,
        SUM(CASE WHEN alternative_quest_reward_type IS NOT NULL THEN 1 ELSE 0 END) AS no_ar
    FROM pokestop
    WHERE deleted = 0
    """
)

_LURE_SQL = text(
    """
    SELECT lure_id, COUNT(*) AS total
    FROM pokestop
    WHERE lure_expire_timestamp > :now
    GROUP BY lure_id
    """
)

_ROCKET_SQL = text(
    """
    SELECT `character` AS grunt, COUNT(*) AS total
    FROM incident
    WHERE expiration > :now AND display_type = :display_type
    GROUP BY `character`
    """
)

_EVENT_SQL = text(
    """
    SELECT
        (SELECT COUNT(*) FROM pokestop WHERE showcase_expiry > :now) AS showcases,
        (SELECT COUNT(*) FROM incident
            WHERE expiration > :now AND display_type = :kecleon) AS kecleon
    """
)

_ROUTE_SQL = text("SELECT COUNT(*) FROM route")


def _as_int(value: Any) -> int:
    return int(value or 0)


def query_pokemon(conn: Connection, now: int) -> PokemonStats:
    row = conn.execute(_POKEMON_SQL, {"now": now}).one()
    return PokemonStats(
        active=_as_int(row.active),
        with_iv=_as_int(row.with_iv),
        hundo=_as_int(row.hundo),
        nundo=_as_int(row.nundo),
    )


def query_raids(conn: Connection, now: int) -> RaidStats:
    row = conn.execute(_RAID_SQL, {"now": now}).one()
    return RaidStats(raids=_as_int(row.raids), eggs=_as_int(row.eggs))


def query_gyms(conn: Connection, now: int) -> GymStats:
    counts = {name: 0 for name in _TEAM_FIELDS.values()}
    for team_id, total in conn.execute(_GYM_SQL):
        name = _TEAM_FIELDS.get(_as_int(team_id))
        if name is not None:
            counts[name] += _as_int(total)
    return GymStats(**counts)


def query_pokestops(conn: Connection, now: int) -> int:
    return _as_int(conn.execute(_POKESTOP_SQL).scalar())


def query_quests(conn: Connection, now: int) -> QuestStats:
    row = conn.execute(_QUEST_SQL).one()
    return QuestStats(ar=_as_int(row.ar), no_ar=_as_int(row.no_ar))


def query_lures(conn: Connection, now: int) -> dict[int, int]:
    return {
        _as_int(lure_id): _as_int(total)
        for lure_id, total in conn.execute(_LURE_SQL, {"now": now})
        if lure_id
    }


def query_rockets(conn: Connection, now: int) -> RocketStats:
    grunts = leaders = giovanni = 0
    params = {"now": now, "display_type": _INVASION_DISPLAY_TYPE}
    for character, total in conn.execute(_ROCKET_SQL, params):
        character = _as_int(character)
        if character == _GIOVANNI:
            giovanni += _as_int(total)
        elif character in _LEADERS:
            leaders += _as_int(total)
        else:
            grunts += _as_int(total)
    return RocketStats(grunts=grunts, leaders=leaders, giovanni=giovanni)


def query_events(conn: Connection, now: int) -> EventStats:
    row = conn.execute(_EVENT_SQL, {"now": now, "kecleon": _KECLEON_DISPLAY_TYPE}).one()
    return EventStats(showcases=_as_int(row.showcases), kecleon=_as_int(row.kecleon))


def query_routes(conn: Connection, now: int) -> int:
    return _as_int(conn.execute(_ROUTE_SQL).scalar())
