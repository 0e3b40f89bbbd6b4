"""Time-boxed promotional placement for event winners."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol

from core import get_logger
from core.constants import FeatureDefaults
from database.models import Contestant, FeaturedPlacement
from database.repositories import FeaturedRepository
from utils.timeutils import utcnow

logger = get_logger(__name__)


class FeatureCollaborator(Protocol):
    async def feature_winner(self, contestant: Contestant) -> None: ...


class FeaturedPlacementService:
    """Grants a winner a featured placement lasting ``days`` days."""

    def __init__(self, days: int = FeatureDefaults.PLACEMENT_DAYS, clock: Callable[[], datetime] = utcnow) -> None:
        self.days = days
        self._clock = clock

    async def feature_winner(self, contestant: Contestant) -> None:
        starts_at = self._clock()
        expires_at = starts_at + timedelta(days=self.days)
        await FeaturedRepository.upsert(contestant.id, contestant.event_id, starts_at, expires_at)
        logger.info(
            f"⭐ Contestant {contestant.id} featured until {expires_at:%Y-%m-%d} "
            f"(event {contestant.event_id})"
        )

    async def list_active(self, now: Optional[datetime] = None) -> List[FeaturedPlacement]:
        return await FeaturedRepository.list_active(now or self._clock())
