"""Heat progression state machine.

Architecture:
- A Heat moves pending -> in_progress -> completed; there are no reverse
  transitions and ``completed`` is terminal.
- ``apply_advance()`` / ``apply_start_run()`` are pure: they work on a
  deepcopy of the heat and return a HeatOutcome with the new heat.
- ``advance()`` / ``start_run()`` load the heat from a store, hold the
  per-heat lock for read-compute-write, persist with a version
  compare-and-swap and publish a "heats" change event.

Rotation:
- ``current_skater_index`` walks the participant list in creation order.
  When it wraps back to 0 the run number increments; once the run number
  would exceed ``runs_per_skater`` the heat completes and the cursor is
  reset to (0, 1) for display.
- Jam heats rotate by groups of ``skaters_per_jam`` participants who share
  one run; the group starts at ``current_skater_index``.

Timing:
- The state machine never looks at a clock. ``time_per_run`` is exposed
  for the caller's countdown, and ``timer_alert()`` / ``due_alerts()`` turn
  remaining seconds into half-time / 20 s / 10 s / time-up alerts.
"""
from __future__ import annotations

import logging
import math
from copy import deepcopy
from dataclasses import dataclass
from typing import List, Literal, Optional, Tuple, Union

from .errors import ConcurrencyConflictError, InvalidStateError, ValidationError
from .store import ContestStore, Notifier, safe_notify
from .types import Heat

logger = logging.getLogger(__name__)

TimerAlert = Literal["none", "halftime", "twenty_seconds", "ten_seconds", "time_up"]
ParticipantStatus = Literal["active", "up_next", "completed", "waiting"]

# Fixed countdown marks in seconds remaining; half-time depends on the run length.
_COUNTDOWN_MARKS: Tuple[Tuple[int, TimerAlert], ...] = (
    (20, "twenty_seconds"),
    (10, "ten_seconds"),
    (0, "time_up"),
)


@dataclass
class HeatOutcome:
    """Result of applying a heat transition."""

    heat: Heat
    heat_completed: bool
    previous_index: int
    previous_run: int
    state_changed: bool


@dataclass(frozen=True)
class SingleSlot:
    index: int


@dataclass(frozen=True)
class JamSlot:
    indices: Tuple[int, ...]


ActiveSlot = Union[SingleSlot, JamSlot]


@dataclass(frozen=True)
class ParticipantState:
    skater_id: str
    position: int  # 1-based rotation position
    status: ParticipantStatus
    runs_completed: int


# ==================== INVARIANTS ====================


def rotation_step(heat: Heat) -> int:
    """How many participants move through one slot of the rotation."""
    if heat.run_type == "jam" and heat.skaters_per_jam:
        return max(1, min(heat.skaters_per_jam, heat.participant_count))
    return 1


def check_heat_invariants(heat: Heat) -> None:
    """Raise ValidationError if the heat cursor or configuration is inconsistent."""
    if heat.participant_count == 0:
        raise ValidationError(f"heat {heat.id!r} has no participants")
    if len(set(heat.participants)) != heat.participant_count:
        raise ValidationError(f"heat {heat.id!r} lists a participant twice")
    if heat.runs_per_skater < 1:
        raise ValidationError("runs_per_skater must be >= 1")
    if heat.time_per_run < 1:
        raise ValidationError("time_per_run must be >= 1 second")
    if not 0 <= heat.current_skater_index < heat.participant_count:
        raise ValidationError(
            f"current_skater_index {heat.current_skater_index} out of range "
            f"for {heat.participant_count} participants"
        )
    if not 1 <= heat.current_run <= heat.runs_per_skater:
        raise ValidationError(
            f"current_run {heat.current_run} out of range 1..{heat.runs_per_skater}"
        )
    if heat.run_type == "jam" and not heat.skaters_per_jam:
        raise ValidationError("jam heats require skaters_per_jam")


# ==================== DERIVED READS ====================


def next_position(heat: Heat) -> Tuple[int, int]:
    """Cursor (index, run) after one advance; run may exceed runs_per_skater.

    For single-run heats this is ``((i + 1) mod n, run + wrapped)``.
    """
    step = rotation_step(heat)
    next_index = heat.current_skater_index + step
    if next_index >= heat.participant_count:
        return 0, heat.current_run + 1
    return next_index, heat.current_run


def active_slot(heat: Heat) -> ActiveSlot:
    if heat.run_type == "jam":
        step = rotation_step(heat)
        start = heat.current_skater_index
        end = min(start + step, heat.participant_count)
        return JamSlot(indices=tuple(range(start, end)))
    return SingleSlot(index=heat.current_skater_index)


def _slot_indices(slot: ActiveSlot) -> Tuple[int, ...]:
    if isinstance(slot, JamSlot):
        return slot.indices
    return (slot.index,)


def active_skaters(heat: Heat) -> List[str]:
    """Skaters currently on the course; empty once the heat is completed."""
    if heat.is_completed or not heat.participants:
        return []
    return [heat.participants[i] for i in _slot_indices(active_slot(heat))]


def active_skater(heat: Heat) -> Optional[str]:
    skaters = active_skaters(heat)
    return skaters[0] if skaters else None


def next_skater(heat: Heat) -> Optional[str]:
    """Skater who goes after the active one (first of the next jam group)."""
    if heat.is_completed or not heat.participants:
        return None
    index, _ = next_position(heat)
    return heat.participants[index]


def slots_per_run(heat: Heat) -> int:
    return math.ceil(heat.participant_count / rotation_step(heat))


def remaining_advances(heat: Heat) -> int:
    """Number of ``advance()`` calls left until the heat completes."""
    if heat.is_completed:
        return 0
    per_run = slots_per_run(heat)
    done = (heat.current_run - 1) * per_run + heat.current_skater_index // rotation_step(heat)
    return heat.runs_per_skater * per_run - done


def heat_progress(heat: Heat) -> float:
    """Fraction of the heat's runs already completed (0.0 - 1.0)."""
    if heat.is_completed:
        return 1.0
    total = heat.runs_per_skater * slots_per_run(heat)
    if total == 0:
        return 0.0
    return (total - remaining_advances(heat)) / total


def participant_states(heat: Heat) -> List[ParticipantState]:
    """Per-skater status for the commentator overview."""
    if heat.is_completed:
        return [
            ParticipantState(sid, i + 1, "completed", heat.runs_per_skater)
            for i, sid in enumerate(heat.participants)
        ]
    active = set(_slot_indices(active_slot(heat)))
    next_index, next_run = next_position(heat)
    up_next: set[int] = set()
    if next_run <= heat.runs_per_skater:
        up_next = set(range(next_index, min(next_index + rotation_step(heat), heat.participant_count)))
    states: List[ParticipantState] = []
    for i, skater_id in enumerate(heat.participants):
        runs_completed = heat.current_run - 1
        if i < heat.current_skater_index and i not in active:
            runs_completed += 1
        if i in active:
            status: ParticipantStatus = "active"
        elif i in up_next:
            status = "up_next"
        elif runs_completed >= heat.runs_per_skater:
            status = "completed"
        else:
            status = "waiting"
        states.append(ParticipantState(skater_id, i + 1, status, runs_completed))
    return states


def run_duration(heat: Heat) -> int:
    """Configured seconds for each run of this heat."""
    return heat.time_per_run


# ==================== TIMER HELPERS ====================


def format_clock(seconds: float) -> str:
    """Format remaining seconds as m:ss for the countdown display."""
    total = max(0, int(seconds))
    return f"{total // 60}:{total % 60:02d}"


def timer_alert(remaining: float, total: float) -> TimerAlert:
    """Most urgent alert reached with ``remaining`` of ``total`` seconds left."""
    if remaining <= 0:
        return "time_up"
    if remaining <= 10:
        return "ten_seconds"
    if remaining <= 20:
        return "twenty_seconds"
    if remaining <= math.floor(total / 2):
        return "halftime"
    return "none"


def due_alerts(previous: float, remaining: float, total: float) -> List[TimerAlert]:
    """Alerts whose mark is crossed when a countdown ticks from ``previous`` to ``remaining``.

    Half-time fires on crossing ``floor(total / 2)`` independently of the
    20 s / 10 s marks, so short runs hear it after the 20 s warning.
    Crossed marks are returned in countdown order.
    """
    marks = [(math.floor(total / 2), "halftime"), *_COUNTDOWN_MARKS]
    crossed = [(mark, alert) for mark, alert in marks if previous > mark >= remaining]
    crossed.sort(key=lambda m: -m[0])
    return [alert for _, alert in crossed]


# ==================== PURE TRANSITIONS ====================


def apply_start_run(heat: Heat) -> HeatOutcome:
    """pending -> in_progress; no-op on an in-progress heat."""
    if heat.is_completed:
        raise InvalidStateError(f"heat {heat.id!r} is completed")
    new_heat = deepcopy(heat)
    changed = new_heat.status == "pending"
    if changed:
        new_heat.status = "in_progress"
    return HeatOutcome(
        heat=new_heat,
        heat_completed=False,
        previous_index=heat.current_skater_index,
        previous_run=heat.current_run,
        state_changed=changed,
    )


def apply_advance(heat: Heat) -> HeatOutcome:
    """Move the cursor to the next skater (or jam group), completing the heat
    after the last run of the last skater.

    A pending heat is started implicitly.
    """
    if heat.is_completed:
        raise InvalidStateError(f"heat {heat.id!r} is already completed")
    check_heat_invariants(heat)

    new_heat = deepcopy(heat)
    next_index, next_run = next_position(heat)
    completed = next_run > heat.runs_per_skater
    if completed:
        new_heat.status = "completed"
        new_heat.current_skater_index = 0
        new_heat.current_run = 1
    else:
        new_heat.status = "in_progress"
        new_heat.current_skater_index = next_index
        new_heat.current_run = next_run
    return HeatOutcome(
        heat=new_heat,
        heat_completed=completed,
        previous_index=heat.current_skater_index,
        previous_run=heat.current_run,
        state_changed=True,
    )


# ==================== STORE-BOUND OPERATIONS ====================


def _check_version(heat: Heat, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != heat.version:
        raise ConcurrencyConflictError(
            f"heat {heat.id!r} is at version {heat.version}, caller expected {expected_version}"
        )


def start_run(
    store: ContestStore,
    heat_id: str,
    *,
    expected_version: int | None = None,
    notifier: Notifier | None = None,
) -> HeatOutcome:
    """Start (or re-arm) the current run of a heat."""
    with store.heat_lock(heat_id):
        heat = store.get_heat(heat_id)
        _check_version(heat, expected_version)
        outcome = apply_start_run(heat)
        if outcome.state_changed:
            outcome.heat = store.save_heat(outcome.heat)
            logger.info(f"Heat {heat_id} started")
    safe_notify(notifier, "heats", heat_id)
    return outcome


def advance(
    store: ContestStore,
    heat_id: str,
    *,
    expected_version: int | None = None,
    notifier: Notifier | None = None,
) -> HeatOutcome:
    """Advance a heat by one skater (the commentator's "next").

    Raises:
        InvalidStateError: the heat is already completed.
        ConcurrencyConflictError: ``expected_version`` is stale, the stored
            heat changed underneath, or the heat lock timed out.
    """
    with store.heat_lock(heat_id):
        heat = store.get_heat(heat_id)
        _check_version(heat, expected_version)
        outcome = apply_advance(heat)
        outcome.heat = store.save_heat(outcome.heat)

    if outcome.heat_completed:
        logger.info(
            f"Heat {heat_id} ({heat.phase} #{heat.heat_number}) completed"
        )
    else:
        logger.debug(
            f"Heat {heat_id} advanced to skater index {outcome.heat.current_skater_index} "
            f"run {outcome.heat.current_run}"
        )
    safe_notify(notifier, "heats", heat_id)
    return outcome


def find_current_heat(
    store: ContestStore, contest_id: str, category_id: str, phase: str
) -> Optional[Heat]:
    """The in-progress heat of a phase, else the lowest-numbered pending one."""
    heats = store.query_heats(contest_id, category_id, phase)
    for heat in heats:
        if heat.status == "in_progress":
            return heat
    pending = [h for h in heats if h.status == "pending"]
    if not pending:
        return None
    return min(pending, key=lambda h: h.heat_number)


__all__ = [
    "HeatOutcome",
    "SingleSlot",
    "JamSlot",
    "ActiveSlot",
    "ParticipantState",
    "TimerAlert",
    "rotation_step",
    "check_heat_invariants",
    "next_position",
    "active_slot",
    "active_skaters",
    "active_skater",
    "next_skater",
    "remaining_advances",
    "heat_progress",
    "participant_states",
    "run_duration",
    "format_clock",
    "timer_alert",
    "due_alerts",
    "apply_start_run",
    "apply_advance",
    "start_run",
    "advance",
    "find_current_heat",
]
