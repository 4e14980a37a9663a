"""Judge score recording.

Scores are keyed on (heat_id, skater_id, judge_id, run_number); submitting
again for the same key updates the stored score in place. Ranking
recomputation is left to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from .errors import InvalidStateError, ValidationError
from .store import ContestStore, Notifier, safe_notify
from .types import Score
from .validation import InputSanitizer

logger = logging.getLogger(__name__)


def submit_score(
    store: ContestStore,
    heat_id: str,
    skater_id: str,
    judge_id: str,
    run_number: int,
    value: float,
    notes: Optional[str] = None,
    *,
    notifier: Notifier | None = None,
) -> Score:
    """Record (or overwrite) one judge's score for one run.

    Raises:
        ValidationError: value outside [0, 10], run_number outside
            [1, runs_per_skater], skater not in the heat, malformed ids.
        NotFoundError: the heat does not exist.
        InvalidStateError: the heat has not started, or its scores are final.
    """
    submission = InputSanitizer.validate_score(
        heat_id=heat_id,
        skater_id=skater_id,
        judge_id=judge_id,
        run_number=run_number,
        value=value,
        notes=notes,
    )
    heat = store.get_heat(submission.heat_id)
    if heat.status == "pending":
        raise InvalidStateError(f"heat {heat.id!r} has not started")
    if submission.run_number > heat.runs_per_skater:
        logger.warning(
            f"Rejected score for run {submission.run_number} on heat {heat.id} "
            f"({heat.runs_per_skater} runs per skater)"
        )
        raise ValidationError(
            f"run_number must be between 1 and {heat.runs_per_skater}, got {submission.run_number}"
        )
    if submission.skater_id not in heat.participants:
        raise ValidationError(
            f"skater {submission.skater_id!r} is not a participant of heat {heat.id!r}"
        )

    score = store.upsert_score(
        submission.heat_id,
        submission.skater_id,
        submission.judge_id,
        submission.run_number,
        submission.value,
        submission.notes,
    )
    logger.debug(
        f"Score {score.value} stored for skater {score.skater_id} run {score.run_number} "
        f"by judge {score.judge_id} on heat {score.heat_id}"
    )
    safe_notify(notifier, "scores", score.heat_id)
    return score


def get_scores(
    store: ContestStore,
    heat_id: str,
    *,
    skater_id: str | None = None,
    judge_id: str | None = None,
    viewer_judge_id: str | None = None,
) -> List[Score]:
    """Scores of a heat, optionally filtered by skater and/or judge.

    When ``viewer_judge_id`` is given, notes written by other judges are
    blanked out.
    """
    scores = store.query_scores([heat_id], skater_id=skater_id, judge_id=judge_id)
    scores.sort(key=lambda s: (s.skater_id, s.judge_id, s.run_number))
    if viewer_judge_id is None:
        return scores
    return [
        s if s.judge_id == viewer_judge_id else replace(s, notes=None)
        for s in scores
    ]


def finalize_heat_scores(
    store: ContestStore, heat_id: str, *, notifier: Notifier | None = None
) -> int:
    """Lock every score of a completed heat. Returns the number of scores locked."""
    heat = store.get_heat(heat_id)
    if not heat.is_completed:
        raise InvalidStateError(f"heat {heat_id!r} is {heat.status}, not completed")
    count = store.finalize_scores(heat_id)
    if count:
        logger.info(f"Finalized {count} scores on heat {heat_id}")
        safe_notify(notifier, "scores", heat_id)
    return count


__all__ = ["submit_score", "get_scores", "finalize_heat_scores"]
