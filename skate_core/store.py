"""Persistence and notification collaborators.

The core only talks to its environment through two protocols:

- ``ContestStore``: create/read/update-by-key/query-by-filter for heats,
  scores, rankings, the current-phase pointer and contest settings, plus
  per-heat and per-(contest, category) locks.
- ``Notifier``: fire-and-forget "entity X changed" events.

``InMemoryStore`` is the reference implementation used by tests and by
single-process deployments. It hands out copies so callers never mutate
stored records in place.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import replace
from typing import ContextManager, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

from .errors import ConcurrencyConflictError, InvalidStateError, NotFoundError
from .types import PHASE_ORDER, Heat, Phase, Ranking, Score, utcnow
from .validation import ContestSettings, default_contest_settings

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 5.0

ScoreKey = Tuple[str, str, str, int]
ScopeKey = Tuple[str, str]
RankingKey = Tuple[str, str, str]


class ContestStore(Protocol):
    def get_heat(self, heat_id: str) -> Heat:
        ...

    def save_heat(self, heat: Heat) -> Heat:
        ...

    def add_heats(self, heats: Sequence[Heat]) -> None:
        ...

    def query_heats(
        self, contest_id: str, category_id: str, phase: Optional[str] = None
    ) -> List[Heat]:
        ...

    def upsert_score(
        self,
        heat_id: str,
        skater_id: str,
        judge_id: str,
        run_number: int,
        value: float,
        notes: Optional[str],
    ) -> Score:
        ...

    def query_scores(
        self,
        heat_ids: Iterable[str],
        skater_id: Optional[str] = None,
        judge_id: Optional[str] = None,
    ) -> List[Score]:
        ...

    def finalize_scores(self, heat_id: str) -> int:
        """Lock the heat's scores; any later ``upsert_score`` on it raises InvalidStateError."""
        ...

    def get_rankings(self, contest_id: str, category_id: str, phase: str) -> List[Ranking]:
        ...

    def replace_rankings(
        self, contest_id: str, category_id: str, phase: str, rankings: Sequence[Ranking]
    ) -> None:
        ...

    def get_current_phase(self, contest_id: str, category_id: str) -> Phase:
        ...

    def set_current_phase(self, contest_id: str, category_id: str, phase: Phase) -> None:
        ...

    def get_contest_settings(self, contest_id: str) -> ContestSettings:
        ...

    def set_contest_settings(self, contest_id: str, settings: ContestSettings) -> None:
        ...

    def heat_lock(self, heat_id: str) -> ContextManager[None]:
        ...

    def scope_lock(self, contest_id: str, category_id: str) -> ContextManager[None]:
        ...


class Notifier(Protocol):
    def notify(self, entity_type: str, entity_id: str) -> None:
        ...


class NullNotifier:
    def notify(self, entity_type: str, entity_id: str) -> None:
        return None


class RecordingNotifier:
    """Collects change events in memory (tests, polling UIs)."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def notify(self, entity_type: str, entity_id: str) -> None:
        with self._lock:
            self.events.append((entity_type, entity_id))

    def of_type(self, entity_type: str) -> List[str]:
        with self._lock:
            return [eid for etype, eid in self.events if etype == entity_type]


def safe_notify(notifier: Notifier | None, entity_type: str, entity_id: str) -> None:
    """Publish a change event; a failing notifier never fails the operation."""
    if notifier is None:
        return
    try:
        notifier.notify(entity_type, entity_id)
    except Exception:
        logger.warning(
            f"Notifier failed for {entity_type}:{entity_id}", exc_info=True
        )


class _LockRegistry:
    """Lazily created mutex per key."""

    def __init__(self, timeout: float) -> None:
        self._timeout = timeout
        self._locks: Dict[object, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: object) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: object) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self._timeout):
            raise ConcurrencyConflictError(f"timed out waiting for lock on {key!r}")
        try:
            yield
        finally:
            lock.release()


class InMemoryStore:
    """Thread-safe dictionary-backed ``ContestStore``.

    Contests without explicit settings fall back to
    ``default_contest_settings()``.
    """

    def __init__(self, lock_timeout: float = LOCK_TIMEOUT_SECONDS) -> None:
        self._data_lock = threading.RLock()
        self._heats: Dict[str, Heat] = {}
        self._scores: Dict[ScoreKey, Score] = {}
        self._final_heats: set[str] = set()
        self._rankings: Dict[RankingKey, Tuple[Ranking, ...]] = {}
        self._current_phase: Dict[ScopeKey, Phase] = {}
        self._settings: Dict[str, ContestSettings] = {}
        self._heat_locks = _LockRegistry(lock_timeout)
        self._scope_locks = _LockRegistry(lock_timeout)

    # ---- heats ----

    def get_heat(self, heat_id: str) -> Heat:
        with self._data_lock:
            heat = self._heats.get(heat_id)
            if heat is None:
                raise NotFoundError(f"heat {heat_id!r} not found")
            return deepcopy(heat)

    def save_heat(self, heat: Heat) -> Heat:
        """Compare-and-swap on ``heat.version``; returns the stored copy."""
        with self._data_lock:
            stored = self._heats.get(heat.id)
            if stored is None:
                raise NotFoundError(f"heat {heat.id!r} not found")
            if stored.version != heat.version:
                raise ConcurrencyConflictError(
                    f"heat {heat.id!r} version {heat.version} is stale (current {stored.version})"
                )
            saved = replace(
                deepcopy(heat), version=heat.version + 1, updated_at=utcnow()
            )
            self._heats[heat.id] = saved
            return deepcopy(saved)

    def add_heats(self, heats: Sequence[Heat]) -> None:
        with self._data_lock:
            for heat in heats:
                if heat.id in self._heats:
                    raise InvalidStateError(f"heat {heat.id!r} already exists")
            for heat in heats:
                self._heats[heat.id] = deepcopy(heat)

    def query_heats(
        self, contest_id: str, category_id: str, phase: Optional[str] = None
    ) -> List[Heat]:
        with self._data_lock:
            found = [
                deepcopy(h)
                for h in self._heats.values()
                if h.contest_id == contest_id
                and h.category_id == category_id
                and (phase is None or h.phase == phase)
            ]
        found.sort(key=lambda h: (PHASE_ORDER.index(h.phase), h.heat_number))
        return found

    # ---- scores ----

    def upsert_score(
        self,
        heat_id: str,
        skater_id: str,
        judge_id: str,
        run_number: int,
        value: float,
        notes: Optional[str],
    ) -> Score:
        key: ScoreKey = (heat_id, skater_id, judge_id, run_number)
        with self._data_lock:
            if heat_id in self._final_heats:
                raise InvalidStateError(f"scores of heat {heat_id!r} are final")
            existing = self._scores.get(key)
            if existing is None:
                score = Score(
                    heat_id=heat_id,
                    skater_id=skater_id,
                    judge_id=judge_id,
                    run_number=run_number,
                    value=value,
                    notes=notes,
                )
            else:
                if existing.is_final:
                    raise InvalidStateError(f"score {existing.id!r} is final")
                score = replace(existing, value=value, notes=notes, updated_at=utcnow())
            self._scores[key] = score
            return deepcopy(score)

    def query_scores(
        self,
        heat_ids: Iterable[str],
        skater_id: Optional[str] = None,
        judge_id: Optional[str] = None,
    ) -> List[Score]:
        wanted = set(heat_ids)
        with self._data_lock:
            return [
                deepcopy(s)
                for s in self._scores.values()
                if s.heat_id in wanted
                and (skater_id is None or s.skater_id == skater_id)
                and (judge_id is None or s.judge_id == judge_id)
            ]

    def finalize_scores(self, heat_id: str) -> int:
        """Mark every non-final score of a heat final, atomically.

        The heat is closed to new keys as well.
        """
        now = utcnow()
        count = 0
        with self._data_lock:
            self._final_heats.add(heat_id)
            for key, score in self._scores.items():
                if score.heat_id == heat_id and not score.is_final:
                    self._scores[key] = replace(score, is_final=True, updated_at=now)
                    count += 1
        return count

    # ---- rankings ----

    def get_rankings(self, contest_id: str, category_id: str, phase: str) -> List[Ranking]:
        with self._data_lock:
            return list(self._rankings.get((contest_id, category_id, phase), ()))

    def replace_rankings(
        self, contest_id: str, category_id: str, phase: str, rankings: Sequence[Ranking]
    ) -> None:
        snapshot = tuple(rankings)
        with self._data_lock:
            self._rankings[(contest_id, category_id, phase)] = snapshot

    # ---- contest progress & settings ----

    def get_current_phase(self, contest_id: str, category_id: str) -> Phase:
        with self._data_lock:
            phase = self._current_phase.get((contest_id, category_id))
            if phase is not None:
                return phase
            return self.get_contest_settings(contest_id).phases[0].phase

    def set_current_phase(self, contest_id: str, category_id: str, phase: Phase) -> None:
        with self._data_lock:
            self._current_phase[(contest_id, category_id)] = phase

    def get_contest_settings(self, contest_id: str) -> ContestSettings:
        with self._data_lock:
            settings = self._settings.get(contest_id)
        return settings if settings is not None else default_contest_settings()

    def set_contest_settings(self, contest_id: str, settings: ContestSettings) -> None:
        with self._data_lock:
            self._settings[contest_id] = settings

    # ---- locks ----

    def heat_lock(self, heat_id: str) -> ContextManager[None]:
        return self._heat_locks.hold(heat_id)

    def scope_lock(self, contest_id: str, category_id: str) -> ContextManager[None]:
        return self._scope_locks.hold((contest_id, category_id))


__all__ = [
    "ContestStore",
    "Notifier",
    "NullNotifier",
    "RecordingNotifier",
    "InMemoryStore",
    "LOCK_TIMEOUT_SECONDS",
    "safe_notify",
]
