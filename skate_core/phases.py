"""Phase transitions: qualifier -> semi -> final.

``advance_phase`` closes the current phase of a category (all heats must be
completed), freezes its ranking and seeds the next phase's heats with the
top skaters in ranking order. It runs under the (contest, category) lock so
two concurrent calls cannot move the phase pointer twice.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .errors import PhaseNotCompleteError, TerminalPhaseError
from .heat_builder import build_heats_locked
from .ranking import recompute_rankings
from .store import ContestStore, Notifier, safe_notify
from .types import PHASE_ORDER, Heat, Phase, Ranking
from .validation import ContestSettings

logger = logging.getLogger(__name__)


@dataclass
class PhaseTransition:
    """Result of moving a category to its next phase."""

    contest_id: str
    category_id: str
    from_phase: Phase
    to_phase: Phase
    rankings: List[Ranking]
    advanced_skaters: List[str]
    heats: List[Heat]


def phase_sequence(settings: ContestSettings | None = None) -> tuple[Phase, ...]:
    if settings is None:
        return PHASE_ORDER
    return tuple(p.phase for p in settings.phases)


def next_phase(phase: str, settings: ContestSettings | None = None) -> Optional[Phase]:
    """Phase after ``phase``, or None when ``phase`` is the last one."""
    sequence = phase_sequence(settings)
    if phase not in sequence:
        return None
    idx = sequence.index(phase)
    if idx + 1 >= len(sequence):
        return None
    return sequence[idx + 1]


def current_phase(store: ContestStore, contest_id: str, category_id: str) -> Phase:
    return store.get_current_phase(contest_id, category_id)


def is_phase_complete(store: ContestStore, contest_id: str, category_id: str, phase: str) -> bool:
    heats = store.query_heats(contest_id, category_id, phase)
    return bool(heats) and all(h.is_completed for h in heats)


def advance_phase(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    *,
    notifier: Notifier | None = None,
) -> PhaseTransition:
    """
    Move a category from its current phase to the next one.

    Raises:
      TerminalPhaseError: the current phase is the last configured phase.
      PhaseNotCompleteError: the current phase has no heats, an open heat,
        or no scored skaters to advance.
    """
    settings = store.get_contest_settings(contest_id)
    with store.scope_lock(contest_id, category_id):
        from_phase = current_phase(store, contest_id, category_id)
        to_phase = next_phase(from_phase, settings)
        if to_phase is None:
            raise TerminalPhaseError(f"{from_phase!r} is the last phase")

        heats = store.query_heats(contest_id, category_id, from_phase)
        if not heats:
            raise PhaseNotCompleteError(f"no {from_phase} heats for {contest_id}/{category_id}")
        unfinished = [h.heat_number for h in heats if not h.is_completed]
        if unfinished:
            raise PhaseNotCompleteError(
                f"{from_phase} heats {unfinished} are not completed"
            )

        rankings = recompute_rankings(
            store, contest_id, category_id, from_phase, notifier=notifier
        )
        if not rankings:
            raise PhaseNotCompleteError(f"no scored skaters in {from_phase}")
        for heat in heats:
            store.finalize_scores(heat.id)

        next_settings = settings.for_phase(to_phase)
        advanced = [r.skater_id for r in rankings[: next_settings.cut]]
        # The cut already decided who advances; a short field still gets heats.
        seeded_settings = next_settings.model_copy(
            update={"auto_heat_threshold": min(next_settings.auto_heat_threshold, len(advanced))}
        )
        new_heats = build_heats_locked(
            store,
            contest_id,
            category_id,
            to_phase,
            advanced,
            seeded_settings,
            run_type=settings.run_type,
            skaters_per_jam=settings.skaters_per_jam,
            notifier=notifier,
        )
        store.set_current_phase(contest_id, category_id, to_phase)

    logger.info(
        f"{contest_id}/{category_id} advanced {from_phase} -> {to_phase} "
        f"with {len(advanced)} skaters in {len(new_heats)} heats"
    )
    safe_notify(notifier, "contests", f"{contest_id}:{category_id}")
    return PhaseTransition(
        contest_id=contest_id,
        category_id=category_id,
        from_phase=from_phase,
        to_phase=to_phase,
        rankings=rankings,
        advanced_skaters=advanced,
        heats=new_heats,
    )


__all__ = [
    "PhaseTransition",
    "phase_sequence",
    "next_phase",
    "current_phase",
    "is_phase_complete",
    "advance_phase",
]
