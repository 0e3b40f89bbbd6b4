"""Services package."""

from .async_runner import set_main_loop, run_coroutine_sync, fire_and_forget
from .event_scheduler import EventScheduler
from .featuring import FeaturedPlacementService, FeatureCollaborator
from .live_event import LiveEventService
from .lottery import SecureLottery, RaffleResult
from .lottery_service import RaffleManager
from .notification_service import NotificationService, init_notification_service
from .roster import RosterProvider, SQLiteRosterProvider
from .timeline import TimelineEngine, generate_timeline
from .viewer_presence import ViewerPresence

__all__ = [
    "set_main_loop",
    "run_coroutine_sync",
    "fire_and_forget",
    "EventScheduler",
    "FeaturedPlacementService",
    "FeatureCollaborator",
    "LiveEventService",
    "SecureLottery",
    "RaffleResult",
    "RaffleManager",
    "NotificationService",
    "init_notification_service",
    "RosterProvider",
    "SQLiteRosterProvider",
    "TimelineEngine",
    "generate_timeline",
    "ViewerPresence",
]
