"""Release integration — moves release/dist set at runtime onto events."""

from __future__ import annotations

from typing import Any

from crashtrace.core.models import Event
from crashtrace.integrations.interface import HubGetter, Integration

RELEASE_EXTRA = "__crashtrace_release"
DIST_EXTRA = "__crashtrace_dist"


class Release(Integration):
    """Reads the private extras written by ``set_release`` / ``set_dist``."""

    identifier = "Release"

    def setup_once(self, get_hub: HubGetter) -> None:
        client = get_hub().client
        if client is not None:
            client.add_event_processor(self.process)

    @staticmethod
    def process(event: Event, hint: dict[str, Any]) -> Event:
        if RELEASE_EXTRA not in event.extra and DIST_EXTRA not in event.extra:
            return event
        extra = dict(event.extra)
        update: dict[str, Any] = {}
        release = extra.pop(RELEASE_EXTRA, None)
        dist = extra.pop(DIST_EXTRA, None)
        if release is not None:
            update["release"] = release
        if dist is not None:
            update["dist"] = dist
        update["extra"] = extra
        return event.model_copy(update=update)
