import pytest

from skate_core import (
    Heat,
    InMemoryStore,
    InvalidStateError,
    NotFoundError,
    RecordingNotifier,
    ValidationError,
    advance,
    finalize_heat_scores,
    get_scores,
    submit_score,
)


def _store_with_heat(runs=2):
    store = InMemoryStore()
    heat = Heat(
        contest_id="c1",
        category_id="pro",
        phase="qualifier",
        heat_number=1,
        participants=["A", "B"],
        runs_per_skater=runs,
        time_per_run=60,
        status="in_progress",
    )
    store.add_heats([heat])
    return store, heat


def test_submit_score_persists_and_notifies():
    store, heat = _store_with_heat()
    notifier = RecordingNotifier()
    score = submit_score(store, heat.id, "A", "judge-1", 1, 7.5, "clean kickflip", notifier=notifier)
    assert score.value == 7.5
    assert score.notes == "clean kickflip"
    assert score.is_final is False
    assert get_scores(store, heat.id) == [score]
    assert notifier.of_type("scores") == [heat.id]


@pytest.mark.parametrize("value", [0.0, 10.0, 5.25])
def test_boundary_values_are_accepted(value):
    store, heat = _store_with_heat()
    assert submit_score(store, heat.id, "A", "j", 1, value).value == value


@pytest.mark.parametrize("value", [-0.1, 10.01, 42, float("nan"), float("inf")])
def test_out_of_range_values_are_rejected_and_not_stored(value):
    store, heat = _store_with_heat()
    with pytest.raises(ValidationError):
        submit_score(store, heat.id, "A", "j", 1, value)
    assert get_scores(store, heat.id) == []


@pytest.mark.parametrize("run_number", [0, 3, -1])
def test_run_number_outside_heat_runs_is_rejected(run_number):
    store, heat = _store_with_heat(runs=2)
    with pytest.raises(ValidationError):
        submit_score(store, heat.id, "A", "j", run_number, 5.0)
    assert get_scores(store, heat.id) == []


def test_skater_outside_heat_is_rejected():
    store, heat = _store_with_heat()
    with pytest.raises(ValidationError):
        submit_score(store, heat.id, "Z", "j", 1, 5.0)


def test_unknown_heat_raises_not_found():
    store, _ = _store_with_heat()
    with pytest.raises(NotFoundError):
        submit_score(store, "missing", "A", "j", 1, 5.0)


def test_resubmission_updates_in_place():
    store, heat = _store_with_heat()
    first = submit_score(store, heat.id, "A", "j", 1, 6.0, "sketchy landing")
    second = submit_score(store, heat.id, "A", "j", 1, 8.0, "re-scored")

    stored = get_scores(store, heat.id)
    assert len(stored) == 1
    assert stored[0].value == 8.0
    assert stored[0].notes == "re-scored"
    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at


def test_get_scores_filters_and_orders_by_run():
    store, heat = _store_with_heat()
    submit_score(store, heat.id, "A", "j1", 2, 7.0)
    submit_score(store, heat.id, "A", "j1", 1, 6.0)
    submit_score(store, heat.id, "A", "j2", 1, 5.0)
    submit_score(store, heat.id, "B", "j1", 1, 9.0)

    pair = get_scores(store, heat.id, skater_id="A", judge_id="j1")
    assert [s.run_number for s in pair] == [1, 2]
    assert len(get_scores(store, heat.id, skater_id="A")) == 3
    assert {s.skater_id for s in get_scores(store, heat.id, judge_id="j1")} == {"A", "B"}


def test_notes_are_private_to_their_judge():
    store, heat = _store_with_heat()
    submit_score(store, heat.id, "A", "j1", 1, 7.0, "my note")
    submit_score(store, heat.id, "A", "j2", 1, 6.0, "other note")

    seen = {s.judge_id: s.notes for s in get_scores(store, heat.id, viewer_judge_id="j1")}
    assert seen == {"j1": "my note", "j2": None}


def test_notes_are_sanitized():
    store, heat = _store_with_heat()
    score = submit_score(store, heat.id, "A", "j", 1, 7.0, "  nice\x00 line\x07  ")
    assert score.notes == "nice line"


def test_finalized_scores_cannot_be_resubmitted():
    store, heat = _store_with_heat(runs=1)
    submit_score(store, heat.id, "A", "j", 1, 7.0)
    with pytest.raises(InvalidStateError):
        finalize_heat_scores(store, heat.id)

    advance(store, heat.id)
    advance(store, heat.id)
    assert finalize_heat_scores(store, heat.id) == 1
    with pytest.raises(InvalidStateError):
        submit_score(store, heat.id, "A", "j", 1, 9.0)
    assert get_scores(store, heat.id)[0].value == 7.0


def test_pending_heat_refuses_scores():
    store = InMemoryStore()
    heat = Heat("c1", "pro", "qualifier", 1, ["A", "B"], 1, 60)
    store.add_heats([heat])
    with pytest.raises(InvalidStateError):
        submit_score(store, heat.id, "A", "j", 1, 7.0)
    assert get_scores(store, heat.id) == []


def test_finalized_heat_refuses_new_score_keys():
    store, heat = _store_with_heat(runs=1)
    submit_score(store, heat.id, "A", "j1", 1, 7.0)
    advance(store, heat.id)
    advance(store, heat.id)
    finalize_heat_scores(store, heat.id)

    with pytest.raises(InvalidStateError):
        submit_score(store, heat.id, "B", "j2", 1, 9.5)
    assert [(s.skater_id, s.judge_id) for s in get_scores(store, heat.id)] == [("A", "j1")]
