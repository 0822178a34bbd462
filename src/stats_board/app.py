"""Application bootstrap and the periodic summary loop."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiohttp
from aiohttp import web

from .aggregator import AggregationResult, build_engine, collect_stats
from .commands import CommandContext, command_payloads, create_interactions_app
from .discord import BotIdentity, DiscordAPIError, DiscordClient
from .formatting import build_embed
from .golbat import GolbatClient
from .models import Settings, SummaryEmbed
from .reconciler import ACTION_FAILED, ChannelReconciler, ReconcilePolicy
from .state import MessageStateStore
from .utils import ChannelProcessingGuard

logger = logging.getLogger(__name__)

Collector = Callable[[], Awaitable[AggregationResult]]


class StartupError(RuntimeError):
    """The service cannot start: Discord or the local endpoint is unavailable."""


class StatsBoardApp:
    """High level coordinator tying together the database, Discord and local state."""

    def __init__(self, *, settings: Settings, state_path: Path):
        self._settings = settings
        self._store = MessageStateStore(state_path)
        self._store.load()
        self._channel_guard = ChannelProcessingGuard()
        self._latest_embed: SummaryEmbed | None = None
        self._stop_event = asyncio.Event()

    @property
    def store(self) -> MessageStateStore:
        return self._store

    @property
    def latest_embed(self) -> SummaryEmbed | None:
        return self._latest_embed

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        settings = self._settings
        engine = build_engine(settings.database)
        try:
            async with aiohttp.ClientSession() as session:
                discord_client = DiscordClient(session, settings.discord.token)
                try:
                    identity = await discord_client.fetch_identity()
                except DiscordAPIError as exc:
                    raise StartupError(f"Не удалось подключиться к Discord: {exc}") from exc
                logger.info("Бот %s (%s) подключён к Discord", identity.username, identity.id)
                await self._register_commands(discord_client, identity)

                api = None
                if settings.summary.include_active_counts:
                    api = GolbatClient(session, settings.api)
                reconciler = ChannelReconciler(
                    discord_client,
                    self._store,
                    policy=ReconcilePolicy(
                        delete_old_embeds=settings.summary.delete_old_embeds,
                        purge_limit=settings.summary.purge_limit,
                    ),
                    guard=self._channel_guard,
                )
                collect = functools.partial(collect_stats, engine, settings.summary, api)

                runner = await self._start_interactions()
                loop_task = asyncio.create_task(
                    self._supervise(
                        "summary-loop",
                        lambda: self._summary_loop(collect, reconciler),
                        retry_delay=settings.summary.error_refresh_interval,
                    ),
                    name="summary-loop-supervisor",
                )
                self._install_signal_handlers()
                logger.info("Бот запущен, каналов: %d", len(settings.discord.channel_ids))
                try:
                    await self._stop_event.wait()
                finally:
                    logger.info("Получен сигнал остановки, завершаем работу")
                    loop_task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await loop_task
                    if runner is not None:
                        await runner.cleanup()
        finally:
            engine.dispose()

    async def run_cycle(self, collect: Collector, reconciler: ChannelReconciler) -> float:
        """Run one aggregation cycle and return the delay before the next one."""

        summary = self._settings.summary
        try:
            result = await collect()
            if not result.ok or result.snapshot is None:
                logger.warning("Не удалось собрать статистику: %s", result.error)
                return summary.error_refresh_interval
            embed = build_embed(result.snapshot, summary)
            self._latest_embed = embed
            outcomes = await reconciler.reconcile_all(self._settings.discord.channel_ids, embed)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Цикл обновления сводки завершился с ошибкой")
            return summary.error_refresh_interval

        failed = [outcome.channel_id for outcome in outcomes if outcome.action == ACTION_FAILED]
        if failed:
            logger.warning(
                "Сводка не обновлена в каналах %s, повтор в следующем цикле", ", ".join(failed)
            )
        return summary.refresh_interval

    async def _summary_loop(self, collect: Collector, reconciler: ChannelReconciler) -> None:
        while True:
            delay = await self.run_cycle(collect, reconciler)
            await asyncio.sleep(delay)

    async def _supervise(
        self,
        name: str,
        factory: Callable[[], Awaitable[None]],
        *,
        retry_delay: float = 5.0,
    ) -> None:
        while True:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Задача %s остановлена", name)
                raise
            except Exception:
                logger.exception("Задача %s завершилась с ошибкой", name)
            else:
                logger.warning("Задача %s завершилась неожиданно, будет перезапущена", name)
            await asyncio.sleep(retry_delay)

    async def _register_commands(
        self, discord_client: DiscordClient, identity: BotIdentity
    ) -> None:
        try:
            await discord_client.register_commands(identity.id, command_payloads())
        except DiscordAPIError as exc:
            logger.warning("Не удалось зарегистрировать команды: %s", exc)

    async def _start_interactions(self) -> web.AppRunner | None:
        options = self._settings.discord
        if not options.public_key:
            return None
        ctx = CommandContext(latest_summary=lambda: self._latest_embed)
        runner = web.AppRunner(create_interactions_app(options.public_key, ctx))
        await runner.setup()
        site = web.TCPSite(runner, options.interactions_host, options.interactions_port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise StartupError(
                f"Не удалось открыть порт {options.interactions_port} для команд: {exc}"
            ) from exc
        logger.info(
            "Команды принимаются на %s:%s/interactions",
            options.interactions_host,
            options.interactions_port,
        )
        return runner

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.stop)
            except (NotImplementedError, RuntimeError):
                # Windows: Ctrl+C arrives as KeyboardInterrupt instead
                pass
