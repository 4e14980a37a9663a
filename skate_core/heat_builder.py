"""Automatic heat creation for a (contest, category, phase).

Heats are created once per scope, only after the skater pool reaches the
phase's ``auto_heat_threshold``. Pool order (registration order for
qualifiers, ranking order afterwards) decides heat assignment.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from .errors import ValidationError
from .store import ContestStore, Notifier, safe_notify
from .types import Category, Heat
from .validation import PhaseSettings

logger = logging.getLogger(__name__)


def _dedupe(pool: Sequence[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for skater_id in pool:
        if not isinstance(skater_id, str) or not skater_id.strip():
            raise ValidationError(f"invalid skater id in pool: {skater_id!r}")
        if skater_id in seen:
            continue
        seen.add(skater_id)
        ordered.append(skater_id)
    return ordered


def partition_pool(
    pool: Sequence[str],
    max_per_heat: Optional[int] = None,
    seeding: str = "sequential",
) -> List[List[str]]:
    """Split an ordered pool into heats of at most ``max_per_heat`` skaters.

    - sequential: consecutive chunks, sizes balanced (first heats take the
      remainder).
    - snake: seeds dealt 1..k, k..1, 1..k, ... so top seeds are spread over
      heats.
    """
    if not pool:
        return []
    if max_per_heat is None or max_per_heat >= len(pool):
        return [list(pool)]
    if max_per_heat < 1:
        raise ValidationError("max_per_heat must be >= 1")

    heat_count = math.ceil(len(pool) / max_per_heat)
    if seeding == "snake":
        heats: List[List[str]] = [[] for _ in range(heat_count)]
        for i, skater_id in enumerate(pool):
            round_no, pos = divmod(i, heat_count)
            target = pos if round_no % 2 == 0 else heat_count - 1 - pos
            heats[target].append(skater_id)
        return heats
    if seeding != "sequential":
        raise ValidationError(f"unknown seeding policy {seeding!r}")

    base, extra = divmod(len(pool), heat_count)
    heats = []
    start = 0
    for i in range(heat_count):
        size = base + (1 if i < extra else 0)
        heats.append(list(pool[start : start + size]))
        start += size
    return heats


def build_heats(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    phase: str,
    skater_pool: Sequence[str],
    config: PhaseSettings,
    *,
    run_type: str = "single_run",
    skaters_per_jam: int | None = None,
    notifier: Notifier | None = None,
) -> List[Heat]:
    """Create the phase's heats once the pool reaches the threshold.

    Returns the created heats, the already existing heats when the scope has
    been built before, or ``[]`` while the pool is below the threshold.
    """
    with store.scope_lock(contest_id, category_id):
        return build_heats_locked(
            store,
            contest_id,
            category_id,
            phase,
            skater_pool,
            config,
            run_type=run_type,
            skaters_per_jam=skaters_per_jam,
            notifier=notifier,
        )


def build_heats_locked(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    phase: str,
    skater_pool: Sequence[str],
    config: PhaseSettings,
    *,
    run_type: str = "single_run",
    skaters_per_jam: int | None = None,
    notifier: Notifier | None = None,
) -> List[Heat]:
    """``build_heats`` for callers already holding the scope lock."""
    if config.phase != phase:
        raise ValidationError(f"settings for {config.phase!r} given to build {phase!r} heats")

    existing = store.query_heats(contest_id, category_id, phase)
    if existing:
        logger.debug(
            f"Heats already exist for {contest_id}/{category_id}/{phase}: {len(existing)}"
        )
        return existing

    pool = _dedupe(skater_pool)
    if len(pool) < config.auto_heat_threshold:
        logger.debug(
            f"Not building {phase} heats for {contest_id}/{category_id}: "
            f"{len(pool)} of {config.auto_heat_threshold} skaters"
        )
        return []

    groups = partition_pool(pool, config.max_participants_per_heat, config.seeding)
    heats = [
        Heat(
            contest_id=contest_id,
            category_id=category_id,
            phase=phase,
            heat_number=number,
            participants=group,
            runs_per_skater=config.runs_per_skater,
            time_per_run=config.time_per_run,
            run_type=run_type,
            skaters_per_jam=skaters_per_jam if run_type == "jam" else None,
        )
        for number, group in enumerate(groups, start=1)
    ]
    store.add_heats(heats)
    logger.info(
        f"Built {len(heats)} {phase} heats for {contest_id}/{category_id} "
        f"from {len(pool)} skaters"
    )
    for heat in heats:
        safe_notify(notifier, "heats", heat.id)
    return heats


def auto_create_heats(
    store: ContestStore,
    contest_id: str,
    category_id: str,
    phase: str,
    skater_pool: Sequence[str],
    *,
    category: Category | None = None,
    notifier: Notifier | None = None,
) -> List[Heat]:
    """``build_heats`` with the contest's stored settings (registration hook).

    When ``category`` carries a ``max_participants`` cap, only the first
    registrations up to the cap are seeded.
    """
    pool = _dedupe(skater_pool)
    if category is not None:
        if category.id != category_id or category.contest_id != contest_id:
            raise ValidationError(f"category {category.id!r} does not match {contest_id}/{category_id}")
        if category.max_participants is not None and len(pool) > category.max_participants:
            logger.warning(
                f"Category {category.name} capped at {category.max_participants}; "
                f"{len(pool) - category.max_participants} registrations not seeded"
            )
            pool = pool[: category.max_participants]
    settings = store.get_contest_settings(contest_id)
    return build_heats(
        store,
        contest_id,
        category_id,
        phase,
        pool,
        settings.for_phase(phase),
        run_type=settings.run_type,
        skaters_per_jam=settings.skaters_per_jam,
        notifier=notifier,
    )


__all__ = ["partition_pool", "build_heats", "build_heats_locked", "auto_create_heats"]
