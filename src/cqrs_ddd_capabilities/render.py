"""Render statements to SQL text and memoize the result per capability."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.sql import ClauseElement

logger = logging.getLogger("cqrs_ddd.capabilities.render")


@dataclass(frozen=True)
class RenderedStatement:
    """SQL text plus the bind parameters known at compile time."""

    sql: str
    params: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.sql


def render(stmt: ClauseElement, dialect: Dialect) -> RenderedStatement:
    compiled = stmt.compile(dialect=dialect)
    return RenderedStatement(sql=str(compiled), params=dict(compiled.params))


def cache_key(kind: str, name: str) -> str:
    return f"{kind}:{name}"


class RenderCache:
    """
    ``"<kind>:<name>"`` → rendered SQL text.

    Not synchronised; the owning factory serialises access.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def put(self, key: str, sql: str) -> None:
        self._entries[key] = sql

    def invalidate(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("Render cache invalidated: %s", key)
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
