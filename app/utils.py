"""Utility helpers for the Episodic service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, matching stored values."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def regular_seasons(seasons: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop specials (season 0) and malformed season stubs."""

    kept: list[dict[str, Any]] = []
    for season in seasons:
        if not isinstance(season, dict):
            continue
        number = coerce_int(season.get("season_number"))
        if number is None or number < 1:
            continue
        kept.append(season)
    return kept


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def genre_names(raw: Any) -> list[str]:
    """Return genre names from a TMDB ``genres`` list."""

    if not isinstance(raw, list):
        return []
    names: list[str] = []
    for entry in raw:
        if isinstance(entry, dict):
            name = entry.get("name")
        else:
            name = entry
        if isinstance(name, str) and name and name not in names:
            names.append(name)
    return names
