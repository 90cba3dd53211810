"""Tests for the active-session execution engine."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from src.training.base import (
    Client,
    PlannedSet,
    SessionStatus,
    WeightUnit,
    WorkoutExercise,
    WorkoutTemplate,
)
from src.training.clock import ManualTicker, manual_ticker_factory
from src.training.config_loader import ScoringConfig
from src.training.errors import PersistenceError, StateError, ValidationError
from src.training.repository import InMemoryRepository
from src.training.session_engine import (
    Cursor,
    EngineState,
    SessionEngine,
    SessionEvent,
    create_session,
)
from src.training.tests.conftest import NOW, fixed_clock


class FailingRepository(InMemoryRepository):
    def save(self, entity) -> None:
        raise PersistenceError("disk full")


class ClientSaveFails(InMemoryRepository):
    def save(self, entity) -> None:
        if isinstance(entity, Client):
            raise PersistenceError("client table locked")
        super().save(entity)


def _skip_through(engine: SessionEngine, sets: int) -> None:
    """Complete ``sets`` sets, skipping every rest that follows."""
    for _ in range(sets):
        assert engine.complete_set()
        if engine.state is EngineState.resting:
            engine.skip_rest()


def _rest_ticker(engine: SessionEngine) -> ManualTicker:
    ticker = engine.rest_ticker
    assert isinstance(ticker, ManualTicker)
    return ticker


def _elapsed_ticker(engine: SessionEngine) -> ManualTicker:
    ticker = engine.elapsed_ticker
    assert isinstance(ticker, ManualTicker)
    return ticker


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestCreateSession:
    def test_mirrors_template(self, male_client: Client, template: WorkoutTemplate) -> None:
        session = create_session(male_client, template, NOW)
        assert session.status is SessionStatus.scheduled
        assert session.client_id == male_client.client_id
        assert [ce.exercise for ce in session.completed_exercises] == [we.exercise for we in template.exercises]
        assert [len(ce.sets) for ce in session.completed_exercises] == [3, 2, 2, 1]

    def test_actuals_start_at_targets(self, male_client: Client, template: WorkoutTemplate) -> None:
        session = create_session(male_client, template, NOW)
        first = session.completed_exercises[0].sets[0]
        assert (first.reps, first.weight, first.weight_unit) == (5, 225, WeightUnit.lbs)
        assert first.target_rest_seconds == 120
        plank = session.completed_exercises[3].sets[0]
        assert plank.weight_unit is WeightUnit.bodyweight

    def test_aggregates_computed_up_front(self, male_client: Client, template: WorkoutTemplate) -> None:
        session = create_session(male_client, template, NOW)
        assert session.total_sets == 8
        assert session.total_reps == 3 * 5 + 2 * 8 + 2 * 8 + 1
        assert session.total_volume == pytest.approx(7055)
        assert session.total_volume == pytest.approx(template.estimated_volume)

    def test_superset_ids_carried_over(self, male_client: Client, template: WorkoutTemplate) -> None:
        session = create_session(male_client, template, NOW)
        ids = [ce.superset_id for ce in session.completed_exercises]
        assert ids[0] is None and ids[3] is None
        assert ids[1] == ids[2] is not None

    def test_missing_client_or_template(self, male_client: Client, template: WorkoutTemplate) -> None:
        with pytest.raises(ValidationError, match="client"):
            create_session(None, template)
        with pytest.raises(ValidationError, match="template"):
            create_session(male_client, None)

    def test_engine_rejects_foreign_session(
        self, male_client: Client, female_client: Client, template: WorkoutTemplate
    ) -> None:
        session = create_session(male_client, template, NOW)
        with pytest.raises(ValidationError, match="belongs to client"):
            SessionEngine(session, female_client, ticker_factory=manual_ticker_factory)


# ---------------------------------------------------------------------------
# Start + no-op transitions
# ---------------------------------------------------------------------------


class TestStart:
    def test_start(self, engine: SessionEngine) -> None:
        assert engine.start()
        assert engine.state is EngineState.in_progress
        assert engine.session.status is SessionStatus.in_progress
        assert engine.session.start_time == NOW
        assert engine.elapsed_ticker.running
        assert not engine.rest_ticker.running
        assert engine.cursor == Cursor(0, 0)

    def test_start_twice_is_noop(self, engine: SessionEngine) -> None:
        engine.start()
        assert not engine.start()
        assert engine.last_noop == "start"
        assert engine.state is EngineState.in_progress

    @pytest.mark.parametrize(
        "operation",
        ["complete_set", "skip_rest", "previous_set", "advance_exercise", "pause", "resume", "finalize"],
    )
    def test_operations_before_start_are_noops(self, engine: SessionEngine, operation: str) -> None:
        assert getattr(engine, operation)() is False
        assert engine.last_noop == operation
        assert engine.state is EngineState.scheduled

    def test_require_state_raises(self, engine: SessionEngine) -> None:
        with pytest.raises(StateError, match="Cannot finalize while session is scheduled"):
            engine.require_state("finalize", EngineState.summary_pending)

    def test_elapsed_clock_syncs_duration(self, engine: SessionEngine) -> None:
        engine.start()
        _elapsed_ticker(engine).advance(30)
        assert engine.elapsed_seconds == 30
        assert engine.session.duration_seconds == 30


# ---------------------------------------------------------------------------
# Set recording
# ---------------------------------------------------------------------------


class TestUpdateSet:
    def test_overwrites_actuals_and_recomputes(self, engine: SessionEngine) -> None:
        engine.start()
        assert engine.update_set(reps=6, weight=235, rpe=8)
        current = engine.current_set
        assert (current.reps, current.weight, current.rpe) == (6, 235, 8)
        assert current.target_reps == 5
        assert current.timestamp == NOW
        assert engine.session.total_volume == pytest.approx(7055 - 5 * 225 + 6 * 235)
        assert engine.session.total_reps == 49

    def test_weight_unit_override(self, engine: SessionEngine) -> None:
        engine.start()
        engine.update_set(reps=5, weight=100, weight_unit=WeightUnit.kg)
        assert engine.current_set.weight_unit is WeightUnit.kg
        assert engine.current_set.target_unit is WeightUnit.lbs

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"reps": -1, "weight": 100}, "reps"),
            ({"reps": 5, "weight": -5}, "weight"),
            ({"reps": 5, "weight": 100, "rpe": 11}, "rpe"),
            ({"reps": 5, "weight": 100, "rpe": 0}, "rpe"),
        ],
    )
    def test_rejects_invalid_values(self, engine: SessionEngine, kwargs: dict, match: str) -> None:
        engine.start()
        with pytest.raises(ValidationError, match=match):
            engine.update_set(**kwargs)
        assert engine.current_set.reps == 5

    def test_noop_when_not_started(self, engine: SessionEngine) -> None:
        assert not engine.update_set(reps=6, weight=235)
        assert engine.session.completed_exercises[0].sets[0].reps == 5


# ---------------------------------------------------------------------------
# Rest timing
# ---------------------------------------------------------------------------


class TestRest:
    def test_complete_set_starts_set_rest(self, engine: SessionEngine) -> None:
        engine.start()
        assert engine.complete_set()
        assert engine.state is EngineState.resting
        assert engine.cursor == Cursor(0, 1)
        assert engine.rest_remaining == 120
        assert engine.last_rest_duration == 120
        assert engine.rest_ticker.running

    def test_rest_expires_after_countdown(self, engine: SessionEngine) -> None:
        engine.start()
        engine.complete_set()
        delivered = _rest_ticker(engine).advance(500)
        assert delivered == 120
        assert engine.state is EngineState.in_progress
        assert not engine.rest_ticker.running
        assert engine.session.completed_exercises[0].sets[0].actual_rest_seconds == 120

    def test_skip_rest_records_actual_rest(self, engine: SessionEngine) -> None:
        engine.start()
        engine.complete_set()
        _rest_ticker(engine).advance(10)
        assert engine.rest_remaining == 110
        assert engine.skip_rest()
        assert engine.state is EngineState.in_progress
        assert engine.rest_remaining == 0
        assert engine.session.completed_exercises[0].sets[0].actual_rest_seconds == 10

    def test_skip_rest_when_not_resting(self, engine: SessionEngine) -> None:
        engine.start()
        assert not engine.skip_rest()
        assert engine.last_noop == "skip_rest"

    def test_complete_set_during_rest_ends_rest(self, engine: SessionEngine) -> None:
        engine.start()
        engine.complete_set()
        _rest_ticker(engine).advance(5)
        assert engine.complete_set()
        assert engine.cursor == Cursor(0, 2)
        assert engine.rest_remaining == 120
        assert engine.session.completed_exercises[0].sets[0].actual_rest_seconds == 5

    def test_rest_durations_across_superset(self, engine: SessionEngine) -> None:
        engine.start()
        _skip_through(engine, 2)
        engine.complete_set()  # last squat set → bench
        assert engine.cursor == Cursor(1, 0)
        assert engine.last_rest_duration == 90
        assert engine.session.completed_exercises[0].was_completed
        engine.skip_rest()

        engine.complete_set()  # bench set 1
        assert engine.last_rest_duration == 60
        engine.skip_rest()

        engine.complete_set()  # last bench set → row, same superset
        assert engine.cursor == Cursor(2, 0)
        assert engine.last_rest_duration == 30
        engine.skip_rest()

        _skip_through(engine, 1)
        engine.complete_set()  # last row set → plank, different group
        assert engine.cursor == Cursor(3, 0)
        assert engine.last_rest_duration == 90

    def test_last_set_goes_to_summary_without_rest(self, engine: SessionEngine) -> None:
        engine.start()
        _skip_through(engine, 7)
        assert engine.is_last_set
        rest_before = engine.last_rest_duration
        assert engine.complete_set()
        assert engine.state is EngineState.summary_pending
        assert engine.last_rest_duration == rest_before
        assert not engine.rest_ticker.running
        assert engine.progress == 1.0
        assert engine.session.completion_rate == 100.0

    def test_zero_rest_finishes_immediately(
        self, male_client: Client, template: WorkoutTemplate, scoring_config: ScoringConfig
    ) -> None:
        quick = replace(
            template,
            exercises=(
                WorkoutExercise(
                    exercise=template.exercises[0].exercise,
                    sets=(PlannedSet(set_number=1, rest_seconds=0), PlannedSet(set_number=2, rest_seconds=0)),
                ),
            ),
        )
        engine = SessionEngine.from_template(
            male_client, quick, NOW, ticker_factory=manual_ticker_factory, config=scoring_config, clock=fixed_clock
        )
        engine.start()
        engine.complete_set()
        assert engine.state is EngineState.in_progress
        assert engine.cursor == Cursor(0, 1)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class TestNavigation:
    def test_previous_set_at_start_is_noop(self, engine: SessionEngine) -> None:
        engine.start()
        assert not engine.previous_set()
        assert engine.cursor == Cursor(0, 0)

    def test_previous_set_ends_rest(self, engine: SessionEngine) -> None:
        engine.start()
        engine.complete_set()
        assert engine.previous_set()
        assert engine.state is EngineState.in_progress
        assert engine.cursor == Cursor(0, 0)
        assert not engine.rest_ticker.running

    def test_previous_set_crosses_exercise_boundary(self, engine: SessionEngine) -> None:
        engine.start()
        _skip_through(engine, 3)
        assert engine.cursor == Cursor(1, 0)
        engine.previous_set()
        assert engine.cursor == Cursor(0, 2)

    def test_previous_set_from_summary(self, engine: SessionEngine) -> None:
        engine.start()
        _skip_through(engine, 8)
        assert engine.state is EngineState.summary_pending
        assert engine.previous_set()
        assert engine.state is EngineState.in_progress
        assert engine.cursor == Cursor(2, 1)

    def test_jump_to_exercise(self, engine: SessionEngine) -> None:
        engine.start()
        assert engine.jump_to_exercise(2)
        assert engine.cursor == Cursor(2, 0)
        assert engine.current_exercise.exercise.title == "Dumbbell Row"

    @pytest.mark.parametrize("index", [-1, 4, 99])
    def test_jump_out_of_range_is_noop(self, engine: SessionEngine, index: int) -> None:
        engine.start()
        assert not engine.jump_to_exercise(index)
        assert engine.cursor == Cursor(0, 0)

    def test_advance_exercise_skips_remaining_sets(self, engine: SessionEngine) -> None:
        engine.start()
        assert engine.advance_exercise()
        assert engine.cursor == Cursor(1, 0)
        assert not engine.session.completed_exercises[0].was_completed
        assert engine.state is EngineState.resting

    def test_progress(self, engine: SessionEngine) -> None:
        engine.start()
        assert engine.progress == 0.0
        _skip_through(engine, 4)
        assert engine.progress == pytest.approx(4 / 8)


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------


class TestPauseResume:
    def test_pause_freezes_timers(self, engine: SessionEngine) -> None:
        engine.start()
        _elapsed_ticker(engine).advance(10)
        engine.complete_set()
        _rest_ticker(engine).advance(20)

        assert engine.pause()
        assert engine.paused
        assert not engine.elapsed_ticker.running
        assert not engine.rest_ticker.running
        assert _elapsed_ticker(engine).advance(30) == 0
        assert engine.elapsed_seconds == 10
        assert engine.rest_remaining == 100
        assert engine.state is EngineState.resting

    def test_resume_rearms_once(self, engine: SessionEngine) -> None:
        engine.start()
        engine.complete_set()
        engine.pause()
        assert engine.resume()
        assert not engine.resume()
        assert engine.last_noop == "resume"
        assert engine.elapsed_ticker.running
        assert engine.rest_ticker.running
        _rest_ticker(engine).advance(120)
        assert engine.state is EngineState.in_progress

    def test_pause_twice_is_noop(self, engine: SessionEngine) -> None:
        engine.start()
        engine.pause()
        assert not engine.pause()

    def test_set_completed_while_paused_does_not_arm_rest(self, engine: SessionEngine) -> None:
        engine.start()
        engine.pause()
        engine.complete_set()
        assert engine.state is EngineState.resting
        assert not engine.rest_ticker.running
        engine.resume()
        assert engine.rest_ticker.running

    def test_reopened_session_starts_paused(
        self, male_client: Client, template: WorkoutTemplate, scoring_config: ScoringConfig
    ) -> None:
        session = create_session(male_client, template, NOW)
        session.status = SessionStatus.in_progress
        session.duration_seconds = 600
        engine = SessionEngine(
            session, male_client, ticker_factory=manual_ticker_factory, config=scoring_config, clock=fixed_clock
        )
        assert engine.state is EngineState.in_progress
        assert engine.paused
        assert engine.elapsed_seconds == 600
        assert not engine.elapsed_ticker.running
        engine.resume()
        _elapsed_ticker(engine).advance(5)
        assert engine.session.duration_seconds == 605


# ---------------------------------------------------------------------------
# Finalize / cancel / save
# ---------------------------------------------------------------------------


class TestFinalize:
    def test_finalize_completes_and_scores(
        self, engine: SessionEngine, male_client: Client, repository: InMemoryRepository
    ) -> None:
        engine.start()
        _elapsed_ticker(engine).advance(1800)
        _skip_through(engine, 8)
        assert engine.finalize()

        session = engine.session
        assert engine.state is EngineState.completed
        assert session.status is SessionStatus.completed
        assert session.end_time == NOW
        assert session.duration_seconds == 1800
        assert not engine.elapsed_ticker.running
        assert male_client.sessions == [session]

        score = male_client.fit_score
        assert score.consistency == pytest.approx(1 / 12 * 100)
        assert score.strength == 100.0  # 7055 ≥ 5000 target
        assert score.body_composition == pytest.approx(86.25)
        assert score.updated_at == NOW

        stored = repository.fetch_sessions_for(male_client.client_id)
        assert [s.session_id for s in stored] == [session.session_id]
        assert repository.fetch_clients()[0].fit_score.consistency == pytest.approx(score.consistency)

    def test_finalize_mid_workout(self, engine: SessionEngine, male_client: Client) -> None:
        engine.start()
        engine.complete_set()
        assert engine.finalize()
        assert engine.session.completion_rate == 0.0
        assert not engine.rest_ticker.running
        assert engine.session.completed_exercises[0].sets[0].actual_rest_seconds == 0

    def test_finalize_twice_is_noop(self, engine: SessionEngine, male_client: Client) -> None:
        engine.start()
        engine.finalize()
        assert not engine.finalize()
        assert male_client.sessions.count(engine.session) == 1

    def test_every_operation_is_noop_after_finalize(self, engine: SessionEngine) -> None:
        engine.start()
        engine.finalize()
        for operation in ("start", "complete_set", "skip_rest", "previous_set", "pause", "resume", "cancel"):
            assert getattr(engine, operation)() is False
        assert not engine.update_set(reps=1, weight=1)
        assert engine.state is EngineState.completed

    def test_failed_save_rolls_back(
        self, male_client: Client, template: WorkoutTemplate, scoring_config: ScoringConfig, fit_score_engine
    ) -> None:
        engine = SessionEngine.from_template(
            male_client,
            template,
            NOW,
            fit_score_engine=fit_score_engine,
            repository=FailingRepository(),
            ticker_factory=manual_ticker_factory,
            config=scoring_config,
            clock=fixed_clock,
        )
        engine.start()
        _skip_through(engine, 8)

        with pytest.raises(PersistenceError, match="disk full"):
            engine.finalize()

        assert engine.state is EngineState.summary_pending
        assert engine.session.status is SessionStatus.in_progress
        assert engine.session.end_time is None
        assert male_client.sessions == []
        assert male_client.fit_score.consistency == 50.0
        assert male_client.fit_score.overall_score == 500.0
        assert engine.elapsed_ticker.running

    def test_failed_client_save_restores_stored_session(
        self, male_client: Client, template: WorkoutTemplate, scoring_config: ScoringConfig, fit_score_engine
    ) -> None:
        repository = ClientSaveFails()
        engine = SessionEngine.from_template(
            male_client,
            template,
            NOW,
            fit_score_engine=fit_score_engine,
            repository=repository,
            ticker_factory=manual_ticker_factory,
            config=scoring_config,
            clock=fixed_clock,
        )
        engine.start()

        with pytest.raises(PersistenceError, match="client table locked"):
            engine.finalize()

        assert engine.session.status is SessionStatus.in_progress
        stored = repository.fetch_sessions_for(male_client.client_id)
        assert [s.status for s in stored] == [SessionStatus.in_progress]
        assert stored[0].end_time is None

    def test_scoring_failure_keeps_previous_score(
        self, male_client: Client, template: WorkoutTemplate, scoring_config: ScoringConfig
    ) -> None:
        broken = MagicMock()
        broken.refresh.side_effect = RuntimeError("boom")
        engine = SessionEngine.from_template(
            male_client,
            template,
            NOW,
            fit_score_engine=broken,
            ticker_factory=manual_ticker_factory,
            config=scoring_config,
            clock=fixed_clock,
        )
        engine.start()
        assert engine.finalize()
        assert engine.state is EngineState.completed
        assert male_client.fit_score.overall_score == 500.0


class TestCancel:
    def test_cancel_from_resting(self, engine: SessionEngine, repository: InMemoryRepository) -> None:
        engine.start()
        engine.complete_set()
        assert engine.cancel()
        assert engine.state is EngineState.cancelled
        assert engine.session.status is SessionStatus.cancelled
        assert not engine.elapsed_ticker.running
        assert not engine.rest_ticker.running
        assert repository.fetch_sessions_for(engine.client.client_id) == []

    def test_cancel_scheduled(self, engine: SessionEngine) -> None:
        assert engine.cancel()
        assert not engine.cancel()
        assert not engine.start()


class TestSave:
    def test_checkpoint_save(self, engine: SessionEngine, repository: InMemoryRepository) -> None:
        engine.start()
        engine.update_set(reps=6, weight=235)
        engine.save()
        stored = repository.fetch_sessions_for(engine.client.client_id)[0]
        assert stored.completed_exercises[0].sets[0].reps == 6
        assert stored is not engine.session

    def test_save_without_repository(self, male_client: Client, template: WorkoutTemplate) -> None:
        engine = SessionEngine.from_template(male_client, template, NOW, ticker_factory=manual_ticker_factory)
        with pytest.raises(PersistenceError, match="No repository"):
            engine.save()


class TestEvents:
    def test_listener_receives_transitions(self, engine: SessionEngine) -> None:
        events: list[SessionEvent] = []
        unsubscribe = engine.subscribe(events.append)
        engine.start()
        engine.complete_set()
        engine.skip_rest()
        unsubscribe()
        engine.complete_set()

        kinds = [e.kind for e in events]
        assert kinds == ["started", "set_completed", "rest_started", "rest_finished"]
        assert events[2].payload["duration"] == 120
        assert events[3].payload["reason"] == "skipped"
        assert events[-1].state is EngineState.in_progress
