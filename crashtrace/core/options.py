"""Client configuration — defaults, environment overrides."""

from __future__ import annotations

import os
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from crashtrace.core.models import Event

DEFAULT_SHUTDOWN_TIMEOUT = 2000  # ms

_ENV_PREFIX = "CRASHTRACE_"
_ENV_FIELDS = (
    "environment",
    "release",
    "dist",
    "shutdown_timeout",
    "sample_rate",
    "traces_sample_rate",
    "outbox_dir",
    "debug",
)


class ClientOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    environment: str | None = None
    release: str | None = None
    dist: str | None = None
    shutdown_timeout: int = DEFAULT_SHUTDOWN_TIMEOUT
    sample_rate: float = 1.0
    traces_sample_rate: float = 1.0
    max_breadcrumbs: int = 100
    max_spans: int = 1000
    before_send: Callable[[Event], Event | None] | None = None
    outbox_dir: str = "./outbox"
    debug: bool = False
    default_integrations: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientOptions":
        """Build options from ``CRASHTRACE_*`` variables, then apply *overrides*.

        Values read from the environment are strings; Pydantic coerces them
        (``"1"``/``"true"`` for booleans, numeric strings for numbers).
        """
        values: dict[str, Any] = {}
        for name in _ENV_FIELDS:
            raw = os.environ.get(_ENV_PREFIX + name.upper())
            if raw:
                values[name] = raw
        values.update(overrides)
        return cls(**values)
