"""
client — Python helpers for dashboard front-ends: integration hooks,
pagination, profile access and the analytics event buffer.
"""

from client.analytics import AnalyticsEvent, AnalyticsTracker, TrackingEvents, track_event
from client.hooks import IntegrationHook, Paginator, UserProfileHook, use_ga, use_gsc

__all__ = [
    "AnalyticsEvent",
    "AnalyticsTracker",
    "IntegrationHook",
    "Paginator",
    "TrackingEvents",
    "UserProfileHook",
    "track_event",
    "use_ga",
    "use_gsc",
]
