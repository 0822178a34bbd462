"""Gather one snapshot of scanner statistics."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence

from sqlalchemy import Connection, Engine, create_engine
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from .golbat import GolbatAPIError, count_unique_spawns
from .models import AggregateSnapshot, DatabaseOptions, SummaryOptions
from .queries import (
    query_events,
    query_gyms,
    query_lures,
    query_pokemon,
    query_pokestops,
    query_quests,
    query_raids,
    query_rockets,
    query_routes,
)

logger = logging.getLogger(__name__)

HUNDO_IV = 15
NUNDO_IV = 0


class ActiveCountSource(Protocol):
    async def scan_iv(self, iv_min: int, iv_max: int) -> Sequence[Mapping[str, Any]]: ...


@dataclass(slots=True)
class AggregationResult:
    """Outcome of an aggregation attempt: a snapshot or the failure reason."""

    ok: bool
    snapshot: AggregateSnapshot | None = None
    error: str | None = None


def build_engine(options: DatabaseOptions) -> Engine:
    if options.url:
        url: str | URL = options.url
    else:
        url = URL.create(
            "mysql+pymysql",
            username=options.user,
            password=options.password,
            host=options.host,
            port=options.port,
            database=options.name,
        )
    return create_engine(url, pool_pre_ping=True, pool_recycle=3600)


def gather_database_stats(conn: Connection, now: int) -> AggregateSnapshot:
    return AggregateSnapshot(
        pokemon=query_pokemon(conn, now),
        raids=query_raids(conn, now),
        gyms=query_gyms(conn, now),
        pokestops=query_pokestops(conn, now),
        quests=query_quests(conn, now),
        lures=query_lures(conn, now),
        rockets=query_rockets(conn, now),
        events=query_events(conn, now),
        routes=query_routes(conn, now),
    )


def _read_database(engine: Engine, now: int) -> AggregateSnapshot:
    with engine.connect() as conn:
        return gather_database_stats(conn, now)


async def collect_stats(
    engine: Engine,
    options: SummaryOptions,
    api: ActiveCountSource | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> AggregationResult:
    """Run every reporting query and the optional live cross-check.

    A single failing step fails the whole aggregation; partial snapshots are
    never returned.
    """

    start = time.perf_counter()
    now = int(clock())
    try:
        snapshot = await asyncio.to_thread(_read_database, engine, now)
    except SQLAlchemyError as exc:
        return AggregationResult(ok=False, error=f"ошибка базы данных: {exc}")

    if options.include_active_counts:
        if api is None:
            return AggregationResult(ok=False, error="Golbat API не настроен")
        try:
            hundo = count_unique_spawns(await api.scan_iv(HUNDO_IV, HUNDO_IV))
            nundo = count_unique_spawns(await api.scan_iv(NUNDO_IV, NUNDO_IV))
        except GolbatAPIError as exc:
            return AggregationResult(ok=False, error=str(exc))
        snapshot = dataclasses.replace(snapshot, hundo_active=hundo, nundo_active=nundo)

    logger.info("Статистика собрана за %.2f с", time.perf_counter() - start)
    return AggregationResult(ok=True, snapshot=snapshot)
