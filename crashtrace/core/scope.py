"""Scope — contextual metadata merged into every captured event."""

from __future__ import annotations

import copy
from collections import deque
from typing import TYPE_CHECKING, Any

from crashtrace.core.models import Breadcrumb, Event, EventType, Level

if TYPE_CHECKING:
    from crashtrace.tracing.transaction import Transaction


class Scope:
    """Tags, extra data, level, breadcrumbs and the active transaction.

    Scopes are owned by a ``Hub``; ``Hub.push_scope`` works on a copy and
    restores the parent when the block exits.
    """

    def __init__(self, max_breadcrumbs: int = 100) -> None:
        self.tags: dict[str, str] = {}
        self.extra: dict[str, Any] = {}
        self.level: Level | None = None
        self.breadcrumbs: deque[Breadcrumb] = deque(maxlen=max_breadcrumbs)
        self.transaction: Transaction | None = None

    # -- mutation -------------------------------------------------------------

    def set_tag(self, key: str, value: Any) -> None:
        self.tags[key] = str(value)

    def remove_tag(self, key: str) -> None:
        self.tags.pop(key, None)

    def set_extra(self, key: str, value: Any) -> None:
        self.extra[key] = value

    def remove_extra(self, key: str) -> None:
        self.extra.pop(key, None)

    def set_level(self, level: Level | None) -> None:
        self.level = level

    def add_breadcrumb(self, crumb: Breadcrumb) -> None:
        self.breadcrumbs.append(crumb)

    def clear(self) -> None:
        self.tags.clear()
        self.extra.clear()
        self.level = None
        self.breadcrumbs.clear()
        self.transaction = None

    def copy(self) -> "Scope":
        clone = Scope(max_breadcrumbs=self.breadcrumbs.maxlen or 100)
        clone.tags = dict(self.tags)
        clone.extra = copy.copy(self.extra)
        clone.level = self.level
        clone.breadcrumbs = deque(self.breadcrumbs, maxlen=self.breadcrumbs.maxlen)
        clone.transaction = self.transaction
        return clone

    # -- event merge ----------------------------------------------------------

    def apply_to_event(self, event: Event) -> Event:
        """Return a copy of *event* enriched with this scope's data."""
        update: dict[str, Any] = {
            "tags": {**self.tags, **event.tags},
            "extra": {**self.extra, **event.extra},
        }
        if self.level is not None:
            update["level"] = self.level
        if self.level == Level.FATAL:
            update["is_fatal"] = True
        if self.breadcrumbs and event.type == EventType.ERROR:
            update["breadcrumbs"] = [*self.breadcrumbs, *event.breadcrumbs]

        transaction = self.transaction
        if transaction is not None and event.type == EventType.ERROR:
            if event.transaction is None:
                update["transaction"] = transaction.name
            if "trace" not in event.contexts:
                update["contexts"] = {**event.contexts, "trace": transaction.trace_context()}

        return event.model_copy(update=update)
