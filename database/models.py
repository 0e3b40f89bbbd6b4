"""Data access layer models implemented with handcrafted queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.constants import (
    ContestantStatus,
    EventStatus,
    PhaseName,
    PhaseStatus,
    RaffleDefaults,
    RaffleOutcome,
    TimelineDefaults,
)
from utils.timeutils import parse_datetime, to_iso


@dataclass(slots=True)
class Phase:
    name: PhaseName
    duration: float  # minutes
    status: PhaseStatus = PhaseStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "duration": self.duration,
            "status": self.status.value,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Phase":
        return cls(
            name=PhaseName(data["name"]),
            duration=data.get("duration") or 0,
            status=PhaseStatus(data.get("status", PhaseStatus.PENDING.value)),
            start_time=parse_datetime(data.get("startTime")),
            end_time=parse_datetime(data.get("endTime")),
        )


@dataclass(slots=True)
class PerformanceSlot:
    contestant_id: int
    order: int
    video_duration: Optional[float]  # seconds
    status: PhaseStatus = PhaseStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contestantId": self.contestant_id,
            "order": self.order,
            "videoDuration": self.video_duration,
            "status": self.status.value,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PerformanceSlot":
        return cls(
            contestant_id=data["contestantId"],
            order=data["order"],
            video_duration=data.get("videoDuration"),
            status=PhaseStatus(data.get("status", PhaseStatus.PENDING.value)),
            start_time=parse_datetime(data.get("startTime")),
            end_time=parse_datetime(data.get("endTime")),
        )


@dataclass(slots=True)
class TimeAdjustment:
    phase: str
    delta_minutes: int
    actor: Optional[str]
    adjusted_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "deltaMinutes": self.delta_minutes,
            "action": "extended" if self.delta_minutes > 0 else "reduced",
            "actor": self.actor,
            "adjustedAt": to_iso(self.adjusted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeAdjustment":
        return cls(
            phase=data["phase"],
            delta_minutes=data["deltaMinutes"],
            actor=data.get("actor"),
            adjusted_at=parse_datetime(data["adjustedAt"]),
        )


@dataclass(slots=True)
class ManualOverride:
    active: bool = False
    reason: Optional[str] = None
    overridden_at: Optional[datetime] = None
    overridden_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "reason": self.reason,
            "overriddenAt": to_iso(self.overridden_at),
            "overriddenBy": self.overridden_by,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ManualOverride":
        data = data or {}
        return cls(
            active=bool(data.get("active")),
            reason=data.get("reason"),
            overridden_at=parse_datetime(data.get("overriddenAt")),
            overridden_by=data.get("overriddenBy"),
        )


@dataclass(slots=True)
class WinnerAnnouncement:
    announced_at: datetime
    winner_id: Optional[int] = None
    total_votes: int = 0
    top_votes: int = 0
    is_tie: bool = False
    no_winner: bool = False
    reason: Optional[str] = None
    prize_details: str = ""
    tied_entries: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "announcedAt": to_iso(self.announced_at),
            "winnerId": self.winner_id,
            "totalVotes": self.total_votes,
            "topVotes": self.top_votes,
            "isTie": self.is_tie,
            "noWinner": self.no_winner,
            "reason": self.reason,
            "prizeDetails": self.prize_details,
            "tiedEntries": list(self.tied_entries),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WinnerAnnouncement":
        return cls(
            announced_at=parse_datetime(data["announcedAt"]),
            winner_id=data.get("winnerId"),
            total_votes=data.get("totalVotes", 0),
            top_votes=data.get("topVotes", 0),
            is_tie=bool(data.get("isTie")),
            no_winner=bool(data.get("noWinner")),
            reason=data.get("reason"),
            prize_details=data.get("prizeDetails", ""),
            tied_entries=list(data.get("tiedEntries") or []),
        )


@dataclass(slots=True)
class TimelineState:
    """The per-event timeline aggregate persisted as one document."""
    event_id: int
    phases: List[Phase] = field(default_factory=list)
    slots: List[PerformanceSlot] = field(default_factory=list)
    event_status: EventStatus = EventStatus.SCHEDULED
    is_live: bool = False
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    paused_by: Optional[str] = None
    manual_override: ManualOverride = field(default_factory=ManualOverride)
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    winner_announcement: Optional[WinnerAnnouncement] = None
    time_adjustments: List[TimeAdjustment] = field(default_factory=list)
    restart_count: int = 0
    version: int = 0

    def active_phase(self) -> Optional[Phase]:
        for phase in self.phases:
            if phase.status == PhaseStatus.ACTIVE:
                return phase
        return None

    def active_index(self) -> int:
        for idx, phase in enumerate(self.phases):
            if phase.status == PhaseStatus.ACTIVE:
                return idx
        return -1

    def phase(self, name: PhaseName) -> Optional[Phase]:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def phase_index(self, name: PhaseName) -> int:
        for idx, phase in enumerate(self.phases):
            if phase.name == name:
                return idx
        return -1

    def active_slot(self) -> Optional[PerformanceSlot]:
        for slot in self.slots:
            if slot.status == PhaseStatus.ACTIVE:
                return slot
        return None

    @property
    def current_phase_name(self) -> str:
        active = self.active_phase()
        if active is not None:
            return active.name.value
        if self.event_status == EventStatus.COMPLETED:
            return "ended"
        return self.phases[0].name.value if self.phases else PhaseName.WELCOME.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "phases": [phase.to_dict() for phase in self.phases],
            "performances": [slot.to_dict() for slot in self.slots],
            "eventStatus": self.event_status.value,
            "isLive": self.is_live,
            "isPaused": self.is_paused,
            "pausedAt": to_iso(self.paused_at),
            "pausedBy": self.paused_by,
            "manualOverride": self.manual_override.to_dict(),
            "actualStartTime": to_iso(self.actual_start_time),
            "actualEndTime": to_iso(self.actual_end_time),
            "winnerAnnouncement": (
                self.winner_announcement.to_dict() if self.winner_announcement else None
            ),
            "timeExtensions": [adj.to_dict() for adj in self.time_adjustments],
            "restartCount": self.restart_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], version: int = 0) -> "TimelineState":
        announcement = data.get("winnerAnnouncement")
        return cls(
            event_id=data["eventId"],
            phases=[Phase.from_dict(item) for item in data.get("phases", [])],
            slots=[PerformanceSlot.from_dict(item) for item in data.get("performances", [])],
            event_status=EventStatus(data.get("eventStatus", EventStatus.SCHEDULED.value)),
            is_live=bool(data.get("isLive")),
            is_paused=bool(data.get("isPaused")),
            paused_at=parse_datetime(data.get("pausedAt")),
            paused_by=data.get("pausedBy"),
            manual_override=ManualOverride.from_dict(data.get("manualOverride")),
            actual_start_time=parse_datetime(data.get("actualStartTime")),
            actual_end_time=parse_datetime(data.get("actualEndTime")),
            winner_announcement=(
                WinnerAnnouncement.from_dict(announcement) if announcement else None
            ),
            time_adjustments=[
                TimeAdjustment.from_dict(item) for item in data.get("timeExtensions", [])
            ],
            restart_count=data.get("restartCount", 0),
            version=version,
        )


@dataclass(slots=True)
class Event:
    id: int
    title: str
    event_date: datetime
    capacity: int
    welcome_minutes: float = TimelineDefaults.WELCOME_MINUTES
    performance_minutes: float = TimelineDefaults.PERFORMANCE_MINUTES
    performance_slot_minutes: float = TimelineDefaults.PERFORMANCE_SLOT_MINUTES
    voting_minutes: float = TimelineDefaults.VOTING_MINUTES
    winner_minutes: float = TimelineDefaults.WINNER_MINUTES
    thankyou_minutes: float = TimelineDefaults.THANKYOU_MINUTES
    countdown_minutes: float = TimelineDefaults.COUNTDOWN_MINUTES
    commercial_durations: List[float] = field(default_factory=list)
    registration_start: Optional[datetime] = None
    registration_end: Optional[datetime] = None
    raffle_scheduled_at: Optional[datetime] = None
    raffle_seed: Optional[str] = None
    raffle_executed_at: Optional[datetime] = None
    prize_description: str = ""
    status: str = "draft"
    voting_open: bool = False
    voting_deadline: Optional[datetime] = None

    def configured_minutes(self) -> Dict[PhaseName, float]:
        """Operator-configured minutes for phases with a fixed length."""
        return {
            PhaseName.WELCOME: self.welcome_minutes,
            PhaseName.PERFORMANCE: self.performance_minutes,
            PhaseName.VOTING: self.voting_minutes,
            PhaseName.WINNER: self.winner_minutes,
            PhaseName.THANKYOU: self.thankyou_minutes,
            PhaseName.COUNTDOWN: self.countdown_minutes,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "eventDate": to_iso(self.event_date),
            "capacity": self.capacity,
            "status": self.status,
            "registrationStart": to_iso(self.registration_start),
            "registrationEnd": to_iso(self.registration_end),
            "raffleScheduledAt": to_iso(self.raffle_scheduled_at),
            "raffleExecutedAt": to_iso(self.raffle_executed_at),
            "votingOpen": self.voting_open,
            "votingDeadline": to_iso(self.voting_deadline),
            "prizeDescription": self.prize_description,
        }


@dataclass(slots=True)
class Contestant:
    id: int
    event_id: int
    display_name: str
    status: str = ContestantStatus.SUBMITTED.value
    video_duration: Optional[float] = None
    vote_count: int = 0
    raffle_position: Optional[int] = None
    raffle_value: Optional[int] = None
    is_winner: bool = False
    won_at: Optional[datetime] = None
    telegram_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "status": self.status,
            "videoDuration": self.video_duration,
            "votes": self.vote_count,
            "rafflePosition": self.raffle_position,
            "isWinner": self.is_winner,
        }


@dataclass(slots=True)
class RaffleEntry:
    entrant_id: int
    entrant_index: int
    position: int
    random_value: int
    outcome: RaffleOutcome

    @property
    def normalized_value(self) -> float:
        """Random value scaled into [0, 1) for display."""
        return self.random_value / float(1 << (8 * RaffleDefaults.DIGEST_BYTES))


@dataclass(slots=True)
class RaffleRun:
    id: int
    event_id: int
    seed: str
    capacity: int
    entrant_count: int
    selected_count: int
    executed_at: datetime
    executed_by: Optional[str] = None


@dataclass(slots=True)
class FeaturedPlacement:
    id: int
    contestant_id: int
    event_id: int
    starts_at: datetime
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contestantId": self.contestant_id,
            "eventId": self.event_id,
            "startsAt": to_iso(self.starts_at),
            "expiresAt": to_iso(self.expires_at),
        }
