"""JSON file backed mapping of Discord channels to their summary messages."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)


def load_message_ids(path: Path) -> dict[str, str]:
    """Return the stored mapping, creating an empty file when it is missing.

    A damaged file is not fatal: the summaries are simply posted again and the
    mapping is rebuilt on the next successful send.
    """

    if not path.exists():
        try:
            save_message_ids(path, {})
        except OSError as exc:
            logger.warning("Не удалось создать файл состояния %s: %s", path, exc)
        return {}

    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Не удалось прочитать файл состояния %s: %s", path, exc)
        return {}

    if not isinstance(payload, Mapping):
        logger.warning("Файл состояния %s не содержит JSON-объект, начинаем с пустого", path)
        return {}
    return {
        str(channel_id): str(message_id)
        for channel_id, message_id in payload.items()
        if message_id is not None
    }


def save_message_ids(path: Path, data: Mapping[str, str]) -> None:
    """Overwrite ``path`` with ``data`` via a temporary file and rename."""

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(dict(data), handle, ensure_ascii=False, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise


class MessageStateStore:
    """Process-wide owner of the channel → message mapping.

    Only the summary loop mutates the mapping. Callers that need to touch a
    channel entry from elsewhere must hold the channel lock used by the
    reconciler.
    """

    def __init__(self, path: Path):
        self._path = path
        self._ids: dict[str, str] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, str]:
        self._ids = load_message_ids(self._path)
        logger.info("Загружено %d сохранённых сообщений из %s", len(self._ids), self._path)
        return dict(self._ids)

    def get(self, channel_id: str) -> str | None:
        return self._ids.get(channel_id)

    def snapshot(self) -> dict[str, str]:
        return dict(self._ids)

    def record(self, channel_id: str, message_id: str) -> bool:
        """Remember ``message_id`` and persist the whole mapping.

        Returns False when the file could not be written; the in-memory value
        is kept either way.
        """

        self._ids[channel_id] = message_id
        try:
            save_message_ids(self._path, self._ids)
        except OSError as exc:
            logger.error(
                "Не удалось сохранить файл состояния %s (канал %s): %s",
                self._path,
                channel_id,
                exc,
            )
            return False
        return True
