"""Ranking aggregation for a (contest, category, phase).

Single source of truth for standings across commentator, judges and public
scoreboard:
- Per skater: best = max of all judge/run scores, total = sum, average =
  total / count.
- Primary order is the phase's scoring system (best, average or total),
  descending; ties fall back to best score descending, then skater id.
- Positions are 1..N with no shared ranks.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import ValidationError
from .store import ContestStore, Notifier, safe_notify
from .types import SCORING_SYSTEMS, Ranking, Score, Skater, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _SkaterTotals:
    skater_id: str
    values: List[float] = field(default_factory=list)

    @property
    def best(self) -> float:
        return max(self.values)

    @property
    def total(self) -> float:
        return math.fsum(self.values)

    @property
    def average(self) -> float:
        return self.total / len(self.values)

    def metric(self, scoring_system: str) -> float:
        if scoring_system == "best":
            return self.best
        if scoring_system == "average":
            return self.average
        return self.total


def _check_scoring_system(scoring_system: str) -> None:
    if scoring_system not in SCORING_SYSTEMS:
        raise ValidationError(
            f"scoring_system must be one of {SCORING_SYSTEMS}, got {scoring_system!r}"
        )


def _group_by_skater(scores: Iterable[Score]) -> Dict[str, _SkaterTotals]:
    grouped: Dict[str, _SkaterTotals] = {}
    for score in scores:
        grouped.setdefault(score.skater_id, _SkaterTotals(score.skater_id)).values.append(
            float(score.value)
        )
    return grouped


def _rank_sort_key(totals: _SkaterTotals, scoring_system: str) -> tuple[float, float, str]:
    return (-totals.metric(scoring_system), -totals.best, totals.skater_id)


def aggregate_scores(
    scores: Iterable[Score],
    scoring_system: str,
    *,
    contest_id: str,
    category_id: str,
    phase: str,
    skater_names: Optional[Mapping[str, str]] = None,
) -> List[Ranking]:
    """
    Turn raw scores into a strictly ordered ranking.

    Args:
      scores: every score of the phase's heats (any order).
      scoring_system: "best", "average" or "total".
      skater_names: optional id -> display name for scoreboards.

    Skaters without a single score are not ranked.
    """
    _check_scoring_system(scoring_system)
    grouped = _group_by_skater(scores)
    ordered = sorted(grouped.values(), key=lambda t: _rank_sort_key(t, scoring_system))
    names = skater_names or {}
    computed_at = utcnow()
    return [
        Ranking(
            contest_id=contest_id,
            category_id=category_id,
            phase=phase,
            skater_id=totals.skater_id,
            position=position,
            best_score=totals.best,
            average_score=totals.average,
            total_score=totals.total,
            skater_name=names.get(totals.skater_id),
            computed_at=computed_at,
        )
        for position, totals in enumerate(ordered, start=1)
    ]


def compute_rankings(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    phase: str,
    *,
    scoring_system: str | None = None,
    skater_names: Optional[Mapping[str, str]] = None,
) -> List[Ranking]:
    """Compute standings from the store without writing anything.

    The scoring system defaults to the phase's configured one.
    """
    if scoring_system is None:
        scoring_system = store.get_contest_settings(contest_id).for_phase(phase).scoring_system
    heats = store.query_heats(contest_id, category_id, phase)
    scores = store.query_scores([h.id for h in heats])
    return aggregate_scores(
        scores,
        scoring_system,
        contest_id=contest_id,
        category_id=category_id,
        phase=phase,
        skater_names=skater_names,
    )


def recompute_rankings(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    phase: str,
    *,
    scoring_system: str | None = None,
    skater_names: Optional[Mapping[str, str]] = None,
    notifier: Notifier | None = None,
) -> List[Ranking]:
    """Compute standings and replace the stored set for the phase in one write."""
    rankings = compute_rankings(
        store,
        contest_id,
        category_id,
        phase,
        scoring_system=scoring_system,
        skater_names=skater_names,
    )
    store.replace_rankings(contest_id, category_id, phase, rankings)
    logger.debug(
        f"Rankings recomputed for {contest_id}/{category_id}/{phase}: {len(rankings)} skaters"
    )
    safe_notify(notifier, "rankings", ranking_scope_id(contest_id, category_id, phase))
    return rankings


def ranking_scope_id(contest_id: str, category_id: str, phase: str) -> str:
    return f"{contest_id}:{category_id}:{phase}"


def names_by_id(skaters: Iterable[Skater]) -> Dict[str, str]:
    """Display names for ``skater_names`` from externally owned skater profiles."""
    return {skater.id: skater.name for skater in skaters}


__all__ = [
    "aggregate_scores",
    "compute_rankings",
    "recompute_rankings",
    "ranking_scope_id",
    "names_by_id",
]
