import threading

import pytest

from skate_core import (
    ConcurrencyConflictError,
    Heat,
    InMemoryStore,
    InvalidStateError,
    JamSlot,
    RecordingNotifier,
    SingleSlot,
    active_skater,
    active_skaters,
    active_slot,
    advance,
    apply_advance,
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


def _heat(participants=("A", "B", "C"), runs=2, heat_number=1, **kwargs) -> Heat:
    return Heat(
        contest_id="c1",
        category_id="pro",
        phase="qualifier",
        heat_number=heat_number,
        participants=list(participants),
        runs_per_skater=runs,
        time_per_run=60,
        **kwargs,
    )


def _stored(store, **kwargs) -> Heat:
    heat = _heat(**kwargs)
    store.add_heats([heat])
    return heat


def test_three_skaters_two_runs_wraps_then_completes():
    store = InMemoryStore()
    heat = _stored(store)

    for _ in range(3):
        outcome = advance(store, heat.id)
    assert outcome.heat.current_skater_index == 0
    assert outcome.heat.current_run == 2
    assert outcome.heat.status == "in_progress"
    assert outcome.heat_completed is False

    for _ in range(3):
        outcome = advance(store, heat.id)
    assert outcome.heat_completed is True
    stored = store.get_heat(heat.id)
    assert stored.status == "completed"
    assert stored.current_skater_index == 0
    assert stored.current_run == 1


@pytest.mark.parametrize(
    "n,runs,index,run",
    [(1, 1, 0, 1), (3, 2, 0, 1), (3, 2, 2, 1), (4, 3, 1, 2), (5, 2, 4, 2)],
)
def test_advances_to_completion_match_remaining_count(n, runs, index, run):
    heat = _heat(
        participants=[f"s{i}" for i in range(n)],
        runs=runs,
        current_skater_index=index,
        current_run=run,
        status="in_progress",
    )
    expected = n * runs - ((run - 1) * n + index)
    assert remaining_advances(heat) == expected

    calls = 0
    while heat.status != "completed":
        heat = apply_advance(heat).heat
        calls += 1
    assert calls == expected


def test_advance_on_completed_heat_fails_and_leaves_state():
    store = InMemoryStore()
    heat = _stored(store, participants=("A",), runs=1)
    advance(store, heat.id)
    before = store.get_heat(heat.id)

    with pytest.raises(InvalidStateError):
        advance(store, heat.id)
    assert store.get_heat(heat.id) == before


def test_start_run_moves_pending_to_in_progress_and_is_idempotent():
    store = InMemoryStore()
    notifier = RecordingNotifier()
    heat = _stored(store)

    first = start_run(store, heat.id, notifier=notifier)
    assert first.state_changed is True
    assert first.heat.status == "in_progress"
    assert first.heat.current_skater_index == 0
    assert first.heat.current_run == 1

    second = start_run(store, heat.id, notifier=notifier)
    assert second.state_changed is False
    assert store.get_heat(heat.id).version == first.heat.version
    assert notifier.of_type("heats") == [heat.id, heat.id]


def test_start_run_on_completed_heat_fails():
    store = InMemoryStore()
    heat = _stored(store, participants=("A",), runs=1)
    advance(store, heat.id)
    with pytest.raises(InvalidStateError):
        start_run(store, heat.id)


def test_advance_on_pending_heat_starts_it():
    store = InMemoryStore()
    heat = _stored(store)
    outcome = advance(store, heat.id)
    assert outcome.heat.status == "in_progress"
    assert outcome.heat.current_skater_index == 1


def test_stale_expected_version_is_rejected():
    store = InMemoryStore()
    heat = _stored(store)
    first = advance(store, heat.id, expected_version=heat.version)
    assert first.heat.version == heat.version + 1

    with pytest.raises(ConcurrencyConflictError):
        advance(store, heat.id, expected_version=heat.version)
    assert store.get_heat(heat.id).current_skater_index == 1


def test_save_heat_rejects_stale_copy():
    store = InMemoryStore()
    heat = _stored(store)
    stale = store.get_heat(heat.id)
    advance(store, heat.id)
    with pytest.raises(ConcurrencyConflictError):
        store.save_heat(stale)


def test_concurrent_advances_never_double_advance():
    store = InMemoryStore()
    heat = _stored(store, participants=("A", "B", "C"), runs=2)
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(10)

    def worker():
        barrier.wait()
        try:
            advance(store, heat.id)
            outcome = "ok"
        except InvalidStateError:
            outcome = "completed"
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 6
    assert results.count("completed") == 4
    final = store.get_heat(heat.id)
    assert final.status == "completed"
    assert final.version == 6


def test_active_and_next_skater_lookups():
    heat = _heat(current_skater_index=2, status="in_progress")
    assert active_skater(heat) == "C"
    assert next_skater(heat) == "A"
    assert active_slot(heat) == SingleSlot(index=2)


def test_completed_heat_has_no_active_skater():
    heat = _heat(status="completed")
    assert active_skater(heat) is None
    assert next_skater(heat) is None
    assert heat_progress(heat) == 1.0


def test_jam_heat_rotates_by_group():
    heat = _heat(
        participants=("A", "B", "C", "D", "E"),
        runs=2,
        run_type="jam",
        skaters_per_jam=2,
    )
    assert active_slot(heat) == JamSlot(indices=(0, 1))
    assert active_skaters(heat) == ["A", "B"]
    assert remaining_advances(heat) == 6

    heat = apply_advance(heat).heat
    assert active_skaters(heat) == ["C", "D"]
    heat = apply_advance(heat).heat
    assert active_skaters(heat) == ["E"]
    assert next_skater(heat) == "A"
    heat = apply_advance(heat).heat
    assert heat.current_run == 2
    assert active_skaters(heat) == ["A", "B"]


def test_participant_states_follow_rotation():
    heat = _heat(current_skater_index=1, current_run=2, status="in_progress")
    states = {s.skater_id: s for s in participant_states(heat)}
    assert states["A"].status == "completed"
    assert states["A"].runs_completed == 2
    assert states["B"].status == "active"
    assert states["B"].runs_completed == 1
    assert states["C"].status == "up_next"


def test_last_skater_has_nobody_up_next():
    heat = _heat(current_skater_index=2, current_run=2, status="in_progress")
    states = participant_states(heat)
    assert [s.status for s in states] == ["completed", "completed", "active"]


def test_heat_progress_counts_finished_runs():
    heat = _heat(current_skater_index=0, current_run=2, status="in_progress")
    assert heat_progress(heat) == pytest.approx(0.5)


def test_find_current_heat_prefers_in_progress_then_lowest_pending():
    store = InMemoryStore()
    h1 = _stored(store, heat_number=1)
    h2 = _stored(store, heat_number=2)
    assert find_current_heat(store, "c1", "pro", "qualifier").id == h1.id

    advance(store, h2.id)
    assert find_current_heat(store, "c1", "pro", "qualifier").id == h2.id
    assert find_current_heat(store, "c1", "pro", "final") is None


def test_timer_helpers():
    assert run_duration(_heat()) == 60
    assert format_clock(65) == "1:05"
    assert format_clock(-3) == "0:00"

    assert timer_alert(45, 60) == "none"
    assert timer_alert(30, 60) == "halftime"
    assert timer_alert(20, 60) == "twenty_seconds"
    assert timer_alert(10, 60) == "ten_seconds"
    assert timer_alert(0, 60) == "time_up"


def test_due_alerts_fire_once_per_threshold():
    assert due_alerts(31, 30, 60) == ["halftime"]
    assert due_alerts(30, 29, 60) == []
    assert due_alerts(21, 20, 60) == ["twenty_seconds"]
    assert due_alerts(40, 5, 60) == ["halftime", "twenty_seconds", "ten_seconds"]
    assert due_alerts(5, 60, 60) == []


def test_short_run_halftime_fires_on_its_own_mark():
    # 30 s run: half-time at 15 s, after the 20 s warning.
    assert due_alerts(21, 20, 30) == ["twenty_seconds"]
    assert due_alerts(16, 15, 30) == ["halftime"]
    assert due_alerts(12, 9, 30) == ["ten_seconds"]
    assert due_alerts(25, 0, 30) == ["twenty_seconds", "halftime", "ten_seconds", "time_up"]
