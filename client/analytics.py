"""
In-process product analytics buffer.

Events are kept in order in memory; an optional ``sink`` callable is
invoked for each one (e.g. to forward to a tracking service).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class AnalyticsEvent:
    name: str
    properties: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None


class TrackingEvents:
    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    SUBSCRIPTION_UPGRADE = "subscription_upgrade"
    GA_CONNECTED = "ga_connected"
    GSC_CONNECTED = "gsc_connected"
    PAGESPEED_SCAN = "pagespeed_scan"
    SETTINGS_UPDATED = "settings_updated"


class AnalyticsTracker:
    def __init__(self, sink: Optional[Callable[[AnalyticsEvent], None]] = None):
        self._events: List[AnalyticsEvent] = []
        self.enabled = True
        self.sink = sink

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def track(self, event: AnalyticsEvent) -> None:
        """Record ``event``, stamping it with the current time if needed."""
        if not self.enabled:
            return

        if event.timestamp is None:
            event = replace(event, timestamp=datetime.now(timezone.utc))
        self._events.append(event)

        if self.sink is not None:
            self.sink(event)
        logger.debug("Tracked event %s", event.name)

    def get_events(self) -> List[AnalyticsEvent]:
        return list(self._events)

    def clear_events(self) -> None:
        self._events = []


analytics = AnalyticsTracker()


def track_event(name: str, properties: Optional[Dict[str, Any]] = None) -> None:
    analytics.track(AnalyticsEvent(name=name, properties=properties))
