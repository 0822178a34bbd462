"""Keep exactly one live summary message per Discord channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from .discord import DiscordAPIError, PostedMessage, UnknownMessageError
from .models import SummaryEmbed
from .state import MessageStateStore
from .utils import ChannelProcessingGuard

logger = logging.getLogger(__name__)

ACTION_EDITED = "edited"
ACTION_CREATED = "created"
ACTION_RECREATED = "recreated"
ACTION_FAILED = "failed"


class SummaryTransport(Protocol):
    async def send_embed(self, channel_id: str, embed: SummaryEmbed) -> PostedMessage: ...

    async def edit_embed(
        self, channel_id: str, message_id: str, embed: SummaryEmbed
    ) -> PostedMessage: ...

    async def list_recent_messages(
        self, channel_id: str, *, limit: int = 100
    ) -> Sequence[PostedMessage]: ...

    async def delete_message(self, channel_id: str, message_id: str) -> None: ...


@dataclass(slots=True)
class ReconcilePolicy:
    delete_old_embeds: bool = False
    purge_limit: int = 100


@dataclass(slots=True)
class ReconcileOutcome:
    channel_id: str
    action: str
    message_id: str | None = None
    persisted: bool = False


class ChannelReconciler:
    """Edit the stored summary message in place or replace it."""

    def __init__(
        self,
        transport: SummaryTransport,
        store: MessageStateStore,
        *,
        policy: ReconcilePolicy | None = None,
        guard: ChannelProcessingGuard | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._policy = policy or ReconcilePolicy()
        self._guard = guard or ChannelProcessingGuard()

    async def reconcile_all(
        self, channel_ids: Sequence[str], embed: SummaryEmbed
    ) -> list[ReconcileOutcome]:
        outcomes: list[ReconcileOutcome] = []
        for channel_id in channel_ids:
            outcomes.append(await self.reconcile_channel(channel_id, embed))
        return outcomes

    async def reconcile_channel(
        self, channel_id: str, embed: SummaryEmbed
    ) -> ReconcileOutcome:
        async with self._guard.lock(channel_id):
            return await self._reconcile_locked(channel_id, embed)

    async def _reconcile_locked(
        self, channel_id: str, embed: SummaryEmbed
    ) -> ReconcileOutcome:
        stored_id = self._store.get(channel_id)

        if stored_id is None:
            posted = await self._create(channel_id, embed)
            if posted is None:
                return ReconcileOutcome(channel_id, ACTION_FAILED)
            persisted = self._store.record(channel_id, posted.id)
            logger.info("Создано сообщение %s в канале %s", posted.id, channel_id)
            return ReconcileOutcome(channel_id, ACTION_CREATED, posted.id, persisted)

        try:
            edited = await self._transport.edit_embed(channel_id, stored_id, embed)
        except UnknownMessageError:
            logger.info(
                "Сообщение %s в канале %s больше не существует, публикуем заново",
                stored_id,
                channel_id,
            )
        except DiscordAPIError as exc:
            logger.warning(
                "Не удалось отредактировать сообщение %s в канале %s: %s",
                stored_id,
                channel_id,
                exc,
            )
            return ReconcileOutcome(channel_id, ACTION_FAILED, stored_id)
        else:
            persisted = False
            if edited.id != stored_id:
                persisted = self._store.record(channel_id, edited.id)
            return ReconcileOutcome(channel_id, ACTION_EDITED, edited.id, persisted)

        posted = await self._create(channel_id, embed)
        if posted is None:
            return ReconcileOutcome(channel_id, ACTION_FAILED, stored_id)
        persisted = self._store.record(channel_id, posted.id)
        return ReconcileOutcome(channel_id, ACTION_RECREATED, posted.id, persisted)

    async def _create(self, channel_id: str, embed: SummaryEmbed) -> PostedMessage | None:
        if self._policy.delete_old_embeds:
            await self._purge_channel(channel_id)
        try:
            return await self._transport.send_embed(channel_id, embed)
        except DiscordAPIError as exc:
            logger.warning("Не удалось отправить сводку в канал %s: %s", channel_id, exc)
            return None

    async def _purge_channel(self, channel_id: str) -> None:
        try:
            messages = await self._transport.list_recent_messages(
                channel_id, limit=self._policy.purge_limit
            )
        except DiscordAPIError as exc:
            logger.warning(
                "Не удалось получить сообщения канала %s для очистки: %s", channel_id, exc
            )
            return
        for message in messages:
            try:
                await self._transport.delete_message(channel_id, message.id)
            except DiscordAPIError as exc:
                logger.debug(
                    "Не удалось удалить сообщение %s в канале %s: %s",
                    message.id,
                    channel_id,
                    exc,
                )
