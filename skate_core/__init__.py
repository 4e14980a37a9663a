from .errors import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    PhaseNotCompleteError,
    SkateCoreError,
    TerminalPhaseError,
    ValidationError,
)
from .types import (
    MAX_SCORE,
    MIN_SCORE,
    PHASE_ORDER,
    Category,
    Heat,
    Phase,
    Ranking,
    Score,
    Skater,
)
from .validation import (
    ContestSettings,
    InputSanitizer,
    PhaseSettings,
    ScoreSubmission,
    default_contest_settings,
    parse_timer_preset,
)
from .store import (
    ContestStore,
    InMemoryStore,
    Notifier,
    NullNotifier,
    RecordingNotifier,
)
from .scores import finalize_heat_scores, get_scores, submit_score
from .heat import (
    HeatOutcome,
    JamSlot,
    ParticipantState,
    SingleSlot,
    active_skater,
    active_skaters,
    active_slot,
    advance,
    apply_advance,
    apply_start_run,
    due_alerts,
    find_current_heat,
    format_clock,
    heat_progress,
    next_skater,
    participant_states,
    remaining_advances,
    run_duration,
    start_run,
    timer_alert,
)
from .ranking import aggregate_scores, compute_rankings, names_by_id, recompute_rankings
from .heat_builder import auto_create_heats, build_heats, partition_pool
from .phases import (
    PhaseTransition,
    advance_phase,
    current_phase,
    is_phase_complete,
    next_phase,
)

__all__ = [
    "SkateCoreError",
    "ValidationError",
    "InvalidStateError",
    "PhaseNotCompleteError",
    "TerminalPhaseError",
    "NotFoundError",
    "ConcurrencyConflictError",
    "MIN_SCORE",
    "MAX_SCORE",
    "PHASE_ORDER",
    "Phase",
    "Skater",
    "Category",
    "Heat",
    "Score",
    "Ranking",
    "ScoreSubmission",
    "PhaseSettings",
    "ContestSettings",
    "default_contest_settings",
    "InputSanitizer",
    "ContestStore",
    "Notifier",
    "InMemoryStore",
    "NullNotifier",
    "RecordingNotifier",
    "submit_score",
    "get_scores",
    "finalize_heat_scores",
    "HeatOutcome",
    "SingleSlot",
    "JamSlot",
    "ParticipantState",
    "start_run",
    "advance",
    "apply_start_run",
    "apply_advance",
    "active_slot",
    "active_skater",
    "active_skaters",
    "next_skater",
    "remaining_advances",
    "run_duration",
    "heat_progress",
    "participant_states",
    "parse_timer_preset",
    "format_clock",
    "timer_alert",
    "due_alerts",
    "find_current_heat",
    "aggregate_scores",
    "compute_rankings",
    "recompute_rankings",
    "names_by_id",
    "partition_pool",
    "build_heats",
    "auto_create_heats",
    "PhaseTransition",
    "advance_phase",
    "next_phase",
    "current_phase",
    "is_phase_complete",
]
