"""Discord embed rendering for aggregated statistics."""

from __future__ import annotations

from datetime import datetime, timezone

from .models import AggregateSnapshot, DisplayField, SummaryEmbed, SummaryOptions
from .utils import format_count

_LURE_NAMES = {
    501: "Обычный",
    502: "Ледяной",
    503: "Мшистый",
    504: "Магнитный",
    505: "Дождевой",
    506: "Золотой",
}
_EMPTY_VALUE = "нет"


def render_fields(
    snapshot: AggregateSnapshot, options: SummaryOptions
) -> tuple[DisplayField, ...]:
    """Convert a snapshot into ordered embed fields."""

    inline = options.inline
    pokemon = snapshot.pokemon
    pokemon_lines = [
        f"Активных: {format_count(pokemon.active)}",
        f"С IV: {format_count(pokemon.with_iv)}",
        f"100%: {format_count(pokemon.hundo)}",
        f"0%: {format_count(pokemon.nundo)}",
    ]
    if snapshot.hundo_active is not None or snapshot.nundo_active is not None:
        pokemon_lines.append(f"100% сейчас: {format_count(snapshot.hundo_active)}")
        pokemon_lines.append(f"0% сейчас: {format_count(snapshot.nundo_active)}")

    gyms = snapshot.gyms
    rockets = snapshot.rockets
    return (
        DisplayField("🐾 Покемоны", "\n".join(pokemon_lines), inline),
        DisplayField(
            "🥚 Рейды",
            _lines(("Рейды", snapshot.raids.raids), ("Яйца", snapshot.raids.eggs)),
            inline,
        ),
        DisplayField(
            "🏟️ Гимы",
            _lines(
                ("Всего", gyms.total),
                ("Mystic", gyms.mystic),
                ("Valor", gyms.valor),
                ("Instinct", gyms.instinct),
                ("Нейтральные", gyms.neutral),
            ),
            inline,
        ),
        DisplayField("📍 Покестопы", format_count(snapshot.pokestops), inline),
        DisplayField(
            "📜 Задания",
            _lines(("С AR", snapshot.quests.ar), ("Без AR", snapshot.quests.no_ar)),
            inline,
        ),
        DisplayField("🌸 Модули приманки", _render_lures(snapshot), inline),
        DisplayField(
            "🚀 Команда R",
            _lines(
                ("Бандиты", rockets.grunts),
                ("Лидеры", rockets.leaders),
                ("Джованни", rockets.giovanni),
            ),
            inline,
        ),
        DisplayField(
            "🎪 События",
            _lines(
                ("Витрины", snapshot.events.showcases),
                ("Кеклеон", snapshot.events.kecleon),
            ),
            inline,
        ),
        DisplayField("🧭 Маршруты", format_count(snapshot.routes), inline),
    )


def build_embed(
    snapshot: AggregateSnapshot,
    options: SummaryOptions,
    *,
    now: datetime | None = None,
) -> SummaryEmbed:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return SummaryEmbed(
        title=options.title,
        fields=render_fields(snapshot, options),
        timestamp=moment.isoformat(timespec="seconds"),
    )


def _lines(*pairs: tuple[str, int]) -> str:
    return "\n".join(f"{label}: {format_count(value)}" for label, value in pairs)


def _render_lures(snapshot: AggregateSnapshot) -> str:
    if not snapshot.lures:
        return _EMPTY_VALUE
    lines = []
    for lure_id in sorted(snapshot.lures):
        label = _LURE_NAMES.get(lure_id, f"Модуль {lure_id}")
        lines.append(f"{label}: {format_count(snapshot.lures[lure_id])}")
    return "\n".join(lines)
