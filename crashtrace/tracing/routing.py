"""RoutingInstrumentation — turns route changes into transaction contexts."""

from __future__ import annotations

import logging
from typing import Any, Callable

from crashtrace.core.models import TransactionContext
from crashtrace.tracing.transaction import Transaction

logger = logging.getLogger(__name__)

ROUTE_NAME = "routing.route.name"
ROUTE_PARAMS = "routing.route.params"
ROUTE_HAS_BEEN_SEEN = "routing.route.hasBeenSeen"

RouteChangeCallback = Callable[[TransactionContext], "Transaction | None"]


class RoutingInstrumentation:
    """Remembers visited routes and reports each navigation to one listener."""

    def __init__(self) -> None:
        self._callback: RouteChangeCallback | None = None
        self._seen: set[str] = set()

    def register(self, callback: RouteChangeCallback) -> None:
        self._callback = callback

    def has_been_seen(self, route_name: str) -> bool:
        return route_name in self._seen

    def navigate(
        self,
        route_name: str,
        op: str = "navigation",
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Transaction | None:
        """Call before the new route's work starts."""
        if self._callback is None:
            logger.debug("[Tracing] Route change to %r ignored: no listener registered", route_name)
            return None

        context = TransactionContext(
            name=route_name,
            op=op,
            tags={"routing.instrumentation": type(self).__name__},
            data={
                **(data or {}),
                ROUTE_NAME: route_name,
                ROUTE_PARAMS: dict(params or {}),
                ROUTE_HAS_BEEN_SEEN: route_name in self._seen,
            },
        )
        self._seen.add(route_name)
        return self._callback(context)
