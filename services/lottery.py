"""Secure, deterministic raffle selection."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core import get_logger
from core.constants import RaffleDefaults, RaffleOutcome
from core.exceptions import ApplicationError, BoundsViolationError, NothingToRaffleError, ValidationError
from database.models import RaffleEntry
from utils.timeutils import utcnow

logger = get_logger(__name__)


def deterministic_value(seed: str, index: int) -> int:
    """Ranking value for the entrant at ``index``.

    The first ``DIGEST_BYTES`` of ``sha256(f"{seed}-{index}")`` read as a
    big-endian unsigned integer.
    """
    digest = hashlib.sha256(f"{seed}-{index}".encode("utf-8")).digest()
    return int.from_bytes(digest[:RaffleDefaults.DIGEST_BYTES], "big")


@dataclass(slots=True)
class RaffleResult:
    seed: str
    capacity: int
    entries: List[RaffleEntry] = field(default_factory=list)

    @property
    def selected(self) -> List[RaffleEntry]:
        return [entry for entry in self.entries if entry.outcome == RaffleOutcome.SELECTED]

    @property
    def waitlisted(self) -> List[RaffleEntry]:
        return [entry for entry in self.entries if entry.outcome == RaffleOutcome.WAITLISTED]

    @property
    def selected_ids(self) -> List[int]:
        return [entry.entrant_id for entry in self.selected]


class SecureLottery:
    """Cryptographically seeded raffle with reproducible ranking.

    System randomness is only used to pick the seed. Once the seed is
    published anyone can rerun :meth:`perform_raffle` and get the same ranks.
    """

    def __init__(self) -> None:
        """Initialize lottery service."""
        self.seed: Optional[str] = None
        self._random_bytes_size = RaffleDefaults.SEED_RANDOM_BYTES

    def generate_seed(self) -> str:
        """Generate cryptographically secure seed for the raffle.

        Returns:
            str: SHA-256 hex digest of timestamp and random bytes
        """
        timestamp = utcnow().isoformat()
        random_bytes = os.urandom(self._random_bytes_size)
        combined = f"{timestamp}{random_bytes.hex()}"
        self.seed = hashlib.sha256(combined.encode()).hexdigest()

        logger.info(f"Generated new raffle seed: {self.seed[:16]}...")
        return self.seed

    @staticmethod
    def validate_capacity(capacity: int) -> None:
        if capacity < RaffleDefaults.MIN_CAPACITY:
            raise BoundsViolationError(
                f"Capacity must be at least {RaffleDefaults.MIN_CAPACITY}",
                limit=RaffleDefaults.MIN_CAPACITY,
                capacity=capacity,
            )
        if capacity > RaffleDefaults.MAX_CAPACITY:
            raise BoundsViolationError(
                f"Capacity cannot exceed {RaffleDefaults.MAX_CAPACITY}",
                limit=RaffleDefaults.MAX_CAPACITY,
                capacity=capacity,
            )

    def perform_raffle(
        self,
        entrants: Sequence[int],
        capacity: int,
        seed: Optional[str] = None,
    ) -> RaffleResult:
        """Rank entrants and split them into selected and waitlisted.

        Args:
            entrants: Entrant ids in registration order; the index of each id
                is part of its hash input
            capacity: Number of entrants to select
            seed: Published seed; generated when omitted

        Returns:
            RaffleResult with every entrant ranked from position 1

        Raises:
            NothingToRaffleError: If there are no entrants
            BoundsViolationError: If capacity is out of range
            ValidationError: If an entrant id appears twice
        """
        if not entrants:
            raise NothingToRaffleError("Nothing to raffle: no entrants registered")
        self.validate_capacity(capacity)
        if len(set(entrants)) != len(entrants):
            raise ValidationError("Entrant list contains duplicates", entrant_count=len(entrants))

        if seed is None:
            seed = self.seed or self.generate_seed()
        self.seed = seed

        values = [deterministic_value(seed, index) for index in range(len(entrants))]
        ranking = sorted(range(len(entrants)), key=lambda idx: (values[idx], entrants[idx]))

        entries = [
            RaffleEntry(
                entrant_id=entrants[idx],
                entrant_index=idx,
                position=rank,
                random_value=values[idx],
                outcome=RaffleOutcome.SELECTED if rank <= capacity else RaffleOutcome.WAITLISTED,
            )
            for rank, idx in enumerate(ranking, start=1)
        ]
        result = RaffleResult(seed=seed, capacity=capacity, entries=entries)
        logger.info(
            f"Raffle ranked {len(entries)} entrants: {len(result.selected)} selected, "
            f"{len(result.waitlisted)} waitlisted"
        )
        return result

    def verify_raffle(
        self,
        entrants: Sequence[int],
        seed: str,
        expected_selected_ids: Sequence[int],
        capacity: int,
    ) -> bool:
        """Recompute the raffle and compare the selected set (order-insensitive).

        Returns:
            True if the recomputed selection equals ``expected_selected_ids``
        """
        try:
            result = SecureLottery().perform_raffle(entrants, capacity, seed=seed)
        except ApplicationError as e:
            logger.warning(f"Raffle verification could not recompute: {e}")
            return False
        expected = list(expected_selected_ids)
        if len(set(expected)) != len(expected):
            return False
        return set(result.selected_ids) == set(expected)

    @staticmethod
    def generate_public_report(
        result: RaffleResult,
        title: str = "",
        executed_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Public transparency report for a completed raffle."""
        selected = result.selected
        waitlisted = result.waitlisted
        return {
            "title": title,
            "seed": result.seed,
            "algorithm": RaffleDefaults.ALGORITHM,
            "executedAt": executed_at,
            "statistics": {
                "totalEntrants": len(result.entries),
                "selected": len(selected),
                "waitlisted": len(waitlisted),
                "capacity": result.capacity,
            },
            "selected": [
                {
                    "position": entry.position,
                    "entrantId": entry.entrant_id,
                    "entrantIndex": entry.entrant_index,
                    "randomValue": str(entry.random_value),
                    "normalizedValue": round(entry.normalized_value, 8),
                }
                for entry in selected
            ],
            "waitlist": [
                {
                    "position": entry.position,
                    "entrantId": entry.entrant_id,
                    "randomValue": str(entry.random_value),
                }
                for entry in waitlisted[:RaffleDefaults.PUBLIC_WAITLIST_SIZE]
            ],
            "verification": [
                "Take the published seed and the full entrant list in registration order.",
                "For each entrant at index i compute SHA-256 of '<seed>-<i>'.",
                f"Read the first {RaffleDefaults.DIGEST_BYTES} bytes as a big-endian unsigned integer.",
                "Sort ascending (ties by entrant id); the first <capacity> entrants are selected.",
            ],
        }
