from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Sequence

from stats_board.discord import DiscordAPIError, PostedMessage, UnknownMessageError
from stats_board.models import DisplayField, SummaryEmbed
from stats_board.reconciler import (
    ACTION_CREATED,
    ACTION_EDITED,
    ACTION_FAILED,
    ACTION_RECREATED,
    ChannelReconciler,
    ReconcilePolicy,
)
from stats_board.state import MessageStateStore


def sample_embed(value: str = "10") -> SummaryEmbed:
    return SummaryEmbed(
        title="Stats",
        fields=(DisplayField("Pokemon", value),),
        timestamp="2024-01-02T03:04:05+00:00",
    )


class DummyTransport:
    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.edit_error: DiscordAPIError | None = None
        self.send_error: DiscordAPIError | None = None
        self.list_error: DiscordAPIError | None = None
        self.delete_errors: set[str] = set()
        self.recent: list[str] = []
        self.list_limits: list[int] = []
        self.send_id: str | None = None
        self._next_id = 100

    async def send_embed(self, channel_id: str, embed: SummaryEmbed) -> PostedMessage:
        self.calls.append(("send", channel_id))
        if self.send_error is not None:
            raise self.send_error
        if self.send_id is not None:
            return PostedMessage(id=self.send_id, channel_id=channel_id)
        self._next_id += 1
        return PostedMessage(id=f"N{self._next_id}", channel_id=channel_id)

    async def edit_embed(
        self, channel_id: str, message_id: str, embed: SummaryEmbed
    ) -> PostedMessage:
        self.calls.append(("edit", channel_id, message_id))
        if self.edit_error is not None:
            raise self.edit_error
        return PostedMessage(id=message_id, channel_id=channel_id)

    async def list_recent_messages(
        self, channel_id: str, *, limit: int = 100
    ) -> Sequence[PostedMessage]:
        self.calls.append(("list", channel_id))
        self.list_limits.append(limit)
        if self.list_error is not None:
            raise self.list_error
        return [PostedMessage(id=item, channel_id=channel_id) for item in self.recent[:limit]]

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        self.calls.append(("delete", channel_id, message_id))
        if message_id in self.delete_errors:
            raise DiscordAPIError(403, 50013, "Missing Permissions")

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


def _make_store(tmp_path: Path, initial: dict[str, str] | None = None) -> MessageStateStore:
    path = tmp_path / "message_ids.json"
    if initial is not None:
        path.write_text(json.dumps(initial), encoding="utf-8")
    store = MessageStateStore(path)
    store.load()
    return store


def test_new_channel_gets_one_message_and_mapping(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    transport = DummyTransport()
    reconciler = ChannelReconciler(transport, store)

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert transport.calls == [("send", "C1")]
    assert outcome.action == ACTION_CREATED
    assert outcome.persisted is True
    assert store.snapshot() == {"C1": outcome.message_id}
    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved == {"C1": outcome.message_id}


def test_existing_message_is_edited_in_place(tmp_path: Path) -> None:
    store = _make_store(tmp_path, {"C1": "M1"})
    transport = DummyTransport()
    reconciler = ChannelReconciler(transport, store)

    async def runner() -> None:
        first = await reconciler.reconcile_channel("C1", sample_embed("10"))
        second = await reconciler.reconcile_channel("C1", sample_embed("11"))
        assert first.action == ACTION_EDITED
        assert second.action == ACTION_EDITED
        assert first.persisted is False

    asyncio.run(runner())

    assert transport.count("edit") == 2
    assert transport.count("send") == 0
    assert store.get("C1") == "M1"


def test_stale_message_is_replaced_without_purge(tmp_path: Path) -> None:
    store = _make_store(tmp_path, {"C1": "M1"})
    transport = DummyTransport()
    transport.edit_error = UnknownMessageError(404, 10008, "Unknown Message")
    transport.recent = ["OLD1"]
    reconciler = ChannelReconciler(transport, store)

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_RECREATED
    assert transport.count("send") == 1
    assert transport.count("delete") == 0
    assert transport.count("list") == 0
    assert store.get("C1") == outcome.message_id != "M1"
    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved == {"C1": outcome.message_id}


def test_other_edit_errors_leave_state_untouched(tmp_path: Path) -> None:
    store = _make_store(tmp_path, {"C1": "M1"})
    transport = DummyTransport()
    transport.edit_error = DiscordAPIError(500, None, "Internal Server Error")
    reconciler = ChannelReconciler(transport, store)

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_FAILED
    assert transport.count("send") == 0
    assert store.get("C1") == "M1"


def test_purge_deletes_recent_messages_before_creating(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    transport = DummyTransport()
    transport.recent = ["A", "B", "C"]
    transport.delete_errors = {"B"}
    reconciler = ChannelReconciler(
        transport, store, policy=ReconcilePolicy(delete_old_embeds=True, purge_limit=2)
    )

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_CREATED
    assert transport.list_limits == [2]
    assert transport.calls == [
        ("list", "C1"),
        ("delete", "C1", "A"),
        ("delete", "C1", "B"),
        ("send", "C1"),
    ]


def test_purge_runs_on_stale_reference(tmp_path: Path) -> None:
    store = _make_store(tmp_path, {"C1": "M1"})
    transport = DummyTransport()
    transport.edit_error = UnknownMessageError(404, 10008, "Unknown Message")
    transport.recent = ["X"]
    reconciler = ChannelReconciler(
        transport, store, policy=ReconcilePolicy(delete_old_embeds=True)
    )

    asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert [call[0] for call in transport.calls] == ["edit", "list", "delete", "send"]


def test_listing_failure_does_not_block_creation(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    transport = DummyTransport()
    transport.list_error = DiscordAPIError(403, 50001, "Missing Access")
    reconciler = ChannelReconciler(
        transport, store, policy=ReconcilePolicy(delete_old_embeds=True)
    )

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_CREATED
    assert transport.count("send") == 1


def test_send_failure_is_reported_and_nothing_stored(tmp_path: Path) -> None:
    store = _make_store(tmp_path)
    transport = DummyTransport()
    transport.send_error = DiscordAPIError(403, 50013, "Missing Permissions")
    reconciler = ChannelReconciler(transport, store)

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_FAILED
    assert store.snapshot() == {}


def test_channels_are_processed_in_configured_order(tmp_path: Path) -> None:
    store = _make_store(tmp_path, {"C2": "M2"})
    transport = DummyTransport()
    reconciler = ChannelReconciler(transport, store)

    outcomes = asyncio.run(reconciler.reconcile_all(["C3", "C2", "C1"], sample_embed()))

    assert [outcome.channel_id for outcome in outcomes] == ["C3", "C2", "C1"]
    assert [call[1] for call in transport.calls] == ["C3", "C2", "C1"]
    assert [outcome.action for outcome in outcomes] == [
        ACTION_CREATED,
        ACTION_EDITED,
        ACTION_CREATED,
    ]
    assert set(store.snapshot()) == {"C1", "C2", "C3"}


def test_recreate_with_same_id_still_rewrites_state(tmp_path: Path) -> None:
    path = tmp_path / "message_ids.json"
    path.write_text(json.dumps({"C1": "M1"}, indent=2), encoding="utf-8")
    store = MessageStateStore(path)
    store.load()
    transport = DummyTransport()
    transport.edit_error = UnknownMessageError(404, 10008, "Unknown Message")
    transport.send_id = "M1"
    reconciler = ChannelReconciler(transport, store)

    outcome = asyncio.run(reconciler.reconcile_channel("C1", sample_embed()))

    assert outcome.action == ACTION_RECREATED
    assert outcome.message_id == "M1"
    assert outcome.persisted is True
    assert path.read_text(encoding="utf-8") == '{"C1": "M1"}'


def test_unwritable_state_does_not_stop_other_channels(tmp_path: Path) -> None:
    store = MessageStateStore(tmp_path / "missing-dir" / "message_ids.json")
    store.load()
    transport = DummyTransport()
    reconciler = ChannelReconciler(transport, store)

    outcomes = asyncio.run(reconciler.reconcile_all(["C1", "C2"], sample_embed()))

    assert transport.calls == [("send", "C1"), ("send", "C2")]
    assert [outcome.action for outcome in outcomes] == [ACTION_CREATED, ACTION_CREATED]
    assert [outcome.persisted for outcome in outcomes] == [False, False]
    assert store.snapshot() == {
        "C1": outcomes[0].message_id,
        "C2": outcomes[1].message_id,
    }
    assert not store.path.exists()
