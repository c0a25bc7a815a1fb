"""Services for feed_sieve."""

from .feed_parser import FeedFetchError, parse_feed
from .preferences import PreferenceStoreClient, new_phrase_rule
from .visit_tracker import VisitTimeTracker
from .orchestrator import FeedOrchestrator, LoadState, create_orchestrator, get_orchestrator

__all__ = [
    "FeedFetchError",
    "parse_feed",
    "PreferenceStoreClient",
    "new_phrase_rule",
    "VisitTimeTracker",
    "FeedOrchestrator",
    "LoadState",
    "create_orchestrator",
    "get_orchestrator",
]
