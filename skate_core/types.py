"""Record types shared by the heat, score, ranking and phase modules."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional


Phase = Literal["qualifier", "semi", "final"]
HeatStatus = Literal["pending", "in_progress", "completed"]
RunType = Literal["single_run", "jam"]
ScoringSystem = Literal["best", "average", "total"]
Seeding = Literal["sequential", "snake"]
Stance = Literal["regular", "goofy"]

PHASE_ORDER: tuple[Phase, ...] = ("qualifier", "semi", "final")
SCORING_SYSTEMS: tuple[ScoringSystem, ...] = ("best", "average", "total")

MIN_SCORE = 0.0
MAX_SCORE = 10.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Skater:
    id: str
    name: str
    stance: Optional[Stance] = None
    sponsors: Optional[str] = None


@dataclass(frozen=True)
class Category:
    id: str
    contest_id: str
    name: str
    entry_fee: float = 0.0
    max_participants: Optional[int] = None
    description: Optional[str] = None


@dataclass
class Heat:
    """One group of skaters competing in rotation within a phase.

    ``participants`` order is fixed at creation and defines the rotation.
    ``version`` is bumped on every state-machine write and is used as a
    compare-and-swap guard by stores.
    """

    contest_id: str
    category_id: str
    phase: Phase
    heat_number: int
    participants: List[str]
    runs_per_skater: int
    time_per_run: int  # seconds
    status: HeatStatus = "pending"
    current_skater_index: int = 0
    current_run: int = 1  # 1-based
    run_type: RunType = "single_run"
    skaters_per_jam: Optional[int] = None
    version: int = 0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


@dataclass
class Score:
    heat_id: str
    skater_id: str
    judge_id: str
    run_number: int
    value: float
    notes: Optional[str] = None
    # Locked once the heat is completed and its scores are finalized.
    is_final: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str, str, int]:
        return (self.heat_id, self.skater_id, self.judge_id, self.run_number)


@dataclass(frozen=True)
class Ranking:
    contest_id: str
    category_id: str
    phase: Phase
    skater_id: str
    position: int
    best_score: float
    average_score: float
    total_score: float
    skater_name: Optional[str] = None
    computed_at: datetime = field(default_factory=utcnow, compare=False)
