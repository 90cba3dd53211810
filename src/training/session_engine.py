"""Active-session execution engine.

Drives a client through a planned workout: a cursor walks the session's
completed exercises and sets, rest countdowns run between sets (short
rests between superset partners), and ``finalize`` closes the session
record and hands it to the FitScore engine.

States::

    scheduled ──start──▶ in_progress ◀──skip_rest / expiry── resting
                              │  ▲                              ▲
                   complete_set│  └──────── previous_set ───────┤
                              ▼                                 │
                         (more sets) ──────────────────────────┘
                              │ last set of last exercise
                              ▼
                       summary_pending ──finalize──▶ completed
    (any non-terminal) ──cancel──▶ cancelled

Invalid transitions never raise.  They return False and record the
operation name in ``last_noop``.

Timers are injected Tickers (see ``clock.py``): an elapsed-session clock
that runs from ``start`` until finalize/cancel, and a rest countdown that
only runs while resting.  Both tick on the caller's thread.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from src.training.base import (
    Client,
    CompletedExercise,
    CompletedSet,
    FitScore,
    Session,
    SessionStatus,
    WeightUnit,
    WorkoutTemplate,
    utc_now,
)
from src.training.clock import Ticker, TickerFactory, manual_ticker_factory
from src.training.config_loader import ScoringConfig, get_scoring_config
from src.training.errors import PersistenceError, StateError, ValidationError
from src.training.fit_score import FitScoreEngine
from src.training.repository import Repository

logger = logging.getLogger("trackerpro.training.session")


class EngineState(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    resting = "resting"
    summary_pending = "summary_pending"
    completed = "completed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EngineState.completed, EngineState.cancelled)


_ACTIVE = (EngineState.in_progress, EngineState.resting, EngineState.summary_pending)
_WORKING = (EngineState.in_progress, EngineState.resting)


@dataclass(frozen=True)
class Cursor:
    exercise_index: int = 0
    set_index: int = 0


@dataclass(frozen=True)
class SessionEvent:
    """Notification published to subscribers after each transition.

    Attributes:
        kind:    'started', 'set_updated', 'set_completed', 'rest_started',
                 'rest_tick', 'rest_finished', 'exercise_advanced',
                 'navigated', 'summary_pending', 'paused', 'resumed',
                 'finalized', 'cancelled', 'saved'.
        state:   Engine state after the transition.
        cursor:  Cursor after the transition.
        payload: Kind-specific details.
    """

    kind: str
    state: EngineState
    cursor: Cursor
    payload: dict[str, Any] = field(default_factory=dict)


SessionListener = Callable[[SessionEvent], None]


def create_session(
    client: Client | None,
    template: WorkoutTemplate | None,
    scheduled_for: datetime | None = None,
) -> Session:
    """Build a scheduled Session from a template.

    One CompletedExercise per WorkoutExercise, in template order, each
    with one CompletedSet per PlannedSet whose actual values start equal
    to the targets.

    Raises:
        ValidationError: If the client or template is missing.
    """
    if client is None:
        raise ValidationError("A client is required to create a session")
    if template is None:
        raise ValidationError("A workout template is required to create a session")

    session = Session(
        client_id=client.client_id,
        template=template,
        scheduled_for=scheduled_for or utc_now(),
        completed_exercises=[CompletedExercise.from_workout_exercise(we) for we in template.exercises],
    )
    session.recompute_aggregates()
    logger.debug(
        "Created session %s for %s from '%s' (%d exercises, %d sets)",
        session.session_id, client.client_id, template.name,
        len(session.completed_exercises), session.total_sets,
    )
    return session


class SessionEngine:
    """State machine over a single Session.

    Usage::

        engine = SessionEngine.from_template(client, template)
        engine.start()
        engine.update_set(reps=8, weight=135, rpe=8)
        engine.complete_set()          # → resting
        engine.skip_rest()             # → in_progress
        ...
        engine.finalize()              # → completed, FitScore refreshed
    """

    def __init__(
        self,
        session: Session,
        client: Client,
        *,
        fit_score_engine: FitScoreEngine | None = None,
        repository: Repository | None = None,
        ticker_factory: TickerFactory | None = None,
        config: ScoringConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if session is None:
            raise ValidationError("A session is required")
        if client is None:
            raise ValidationError("A client is required")
        if session.client_id != client.client_id:
            raise ValidationError(
                f"Session {session.session_id} belongs to client {session.client_id}, "
                f"not {client.client_id}"
            )

        self._session = session
        self._client = client
        self._config = config or get_scoring_config()
        self._fit_score_engine = fit_score_engine or FitScoreEngine(self._config, clock=clock)
        self._repository = repository
        self._clock = clock or utc_now

        factory = ticker_factory or manual_ticker_factory
        self._elapsed_ticker: Ticker = factory("elapsed")
        self._rest_ticker: Ticker = factory("rest")

        self._listeners: list[SessionListener] = []
        self._exercise_index = 0
        self._set_index = 0
        self._paused = False
        self._elapsed_seconds = float(session.duration_seconds)

        self._rest_duration = 0
        self._rest_remaining = 0
        self._rest_elapsed = 0
        self._rest_owner: CompletedSet | None = None
        self.last_rest_duration: int | None = None
        self.last_noop: str | None = None

        if session.status is SessionStatus.completed:
            self._state = EngineState.completed
        elif session.status is SessionStatus.cancelled:
            self._state = EngineState.cancelled
        elif session.status is SessionStatus.in_progress:
            # Reopened mid-workout: timers stay stopped until resume().
            self._state = EngineState.in_progress
            self._paused = True
        else:
            self._state = EngineState.scheduled

    @classmethod
    def from_template(
        cls,
        client: Client | None,
        template: WorkoutTemplate | None,
        scheduled_for: datetime | None = None,
        **kwargs: Any,
    ) -> SessionEngine:
        session = create_session(client, template, scheduled_for)
        return cls(session, client, **kwargs)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def client(self) -> Client:
        return self._client

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def cursor(self) -> Cursor:
        return Cursor(self._exercise_index, self._set_index)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def elapsed_seconds(self) -> float:
        return self._elapsed_seconds

    @property
    def rest_remaining(self) -> int:
        return self._rest_remaining

    @property
    def rest_duration(self) -> int:
        return self._rest_duration

    @property
    def elapsed_ticker(self) -> Ticker:
        return self._elapsed_ticker

    @property
    def rest_ticker(self) -> Ticker:
        return self._rest_ticker

    @property
    def current_exercise(self) -> CompletedExercise | None:
        exercises = self._session.completed_exercises
        if 0 <= self._exercise_index < len(exercises):
            return exercises[self._exercise_index]
        return None

    @property
    def current_set(self) -> CompletedSet | None:
        exercise = self.current_exercise
        if exercise is None or not 0 <= self._set_index < len(exercise.sets):
            return None
        return exercise.sets[self._set_index]

    @property
    def is_last_set(self) -> bool:
        exercises = self._session.completed_exercises
        exercise = self.current_exercise
        return (
            exercise is not None
            and self._exercise_index == len(exercises) - 1
            and self._set_index == len(exercise.sets) - 1
        )

    @property
    def progress(self) -> float:
        """Fraction of all sets the cursor has moved past (0.0–1.0)."""
        if self._state in (EngineState.summary_pending, EngineState.completed):
            return 1.0
        exercises = self._session.completed_exercises
        total = sum(len(ce.sets) for ce in exercises)
        if total == 0:
            return 0.0
        done = sum(len(ce.sets) for ce in exercises[: self._exercise_index]) + self._set_index
        return min(done / total, 1.0)

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: str, **payload: Any) -> None:
        event = SessionEvent(kind=kind, state=self._state, cursor=self.cursor, payload=payload)
        for listener in list(self._listeners):
            listener(event)

    def _noop(self, operation: str) -> bool:
        self.last_noop = operation
        logger.debug(
            "Session %s: %s ignored in state %s at %s",
            self._session.session_id, operation, self._state.value, self.cursor,
        )
        return False

    def _ok(self) -> bool:
        self.last_noop = None
        return True

    def require_state(self, operation: str, *states: EngineState) -> None:
        """Raise StateError unless the engine is in one of ``states``."""
        if self._state not in states:
            raise StateError(operation, self._state.value)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _on_elapsed_tick(self) -> None:
        self._elapsed_seconds += self._elapsed_ticker.interval
        self._session.duration_seconds = self._elapsed_seconds

    def _on_rest_tick(self) -> None:
        if self._state is not EngineState.resting:
            self._rest_ticker.stop()
            return
        self._rest_remaining = max(self._rest_remaining - 1, 0)
        self._rest_elapsed += 1
        self._emit("rest_tick", remaining=self._rest_remaining)
        if self._rest_remaining == 0:
            self._finish_rest("expired")

    def _start_rest(self, duration: int, owner: CompletedSet | None) -> None:
        if self._state is EngineState.resting:
            self._finish_rest("superseded")

        self.last_rest_duration = duration
        self._rest_owner = owner
        self._rest_duration = duration
        self._rest_remaining = duration
        self._rest_elapsed = 0
        self._state = EngineState.resting
        self._emit("rest_started", duration=duration)

        if duration <= 0:
            self._finish_rest("expired")
        elif not self._paused:
            self._rest_ticker.start(self._on_rest_tick)

    def _finish_rest(self, reason: str) -> None:
        self._rest_ticker.stop()
        if self._rest_owner is not None:
            self._rest_owner.actual_rest_seconds = self._rest_elapsed
        self._rest_owner = None
        self._rest_remaining = 0
        if self._state is EngineState.resting:
            self._state = EngineState.in_progress
        self._emit("rest_finished", reason=reason, rested=self._rest_elapsed)

    def _stop_timers(self) -> None:
        self._elapsed_ticker.stop()
        self._rest_ticker.stop()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """scheduled → in_progress; records the start time and arms the clock."""
        if self._state is not EngineState.scheduled:
            return self._noop("start")

        self._session.status = SessionStatus.in_progress
        self._session.start_time = self._clock()
        self._state = EngineState.in_progress
        self._paused = False
        self._elapsed_ticker.start(self._on_elapsed_tick)
        logger.info("Session %s started for client %s", self._session.session_id, self._client.client_id)
        self._emit("started", start_time=self._session.start_time)
        return self._ok()

    def update_set(
        self,
        reps: int,
        weight: float,
        rpe: int | None = None,
        weight_unit: WeightUnit | None = None,
    ) -> bool:
        """Overwrite the actual values of the set at the cursor.

        Raises:
            ValidationError: Negative reps/weight or RPE outside 1–10.
        """
        if reps < 0:
            raise ValidationError(f"reps must be >= 0, got {reps}")
        if weight < 0:
            raise ValidationError(f"weight must be >= 0, got {weight}")
        if rpe is not None and not 1 <= rpe <= 10:
            raise ValidationError(f"rpe must be between 1 and 10, got {rpe}")

        if self._state not in _ACTIVE:
            return self._noop("update_set")
        current = self.current_set
        if current is None:
            return self._noop("update_set")

        current.reps = reps
        current.weight = weight
        current.rpe = rpe
        if weight_unit is not None:
            current.weight_unit = weight_unit
        current.timestamp = self._clock()
        self._session.recompute_aggregates()
        self._emit("set_updated", reps=reps, weight=weight, rpe=rpe)
        return self._ok()

    def complete_set(self) -> bool:
        """Finish the set at the cursor and move on.

        More sets in this exercise: advance the set index and rest for the
        set's target rest.  Last set: mark the exercise completed and
        ``advance_exercise``.  Completing during a rest ends the rest.
        """
        if self._state not in _WORKING:
            return self._noop("complete_set")
        exercise = self.current_exercise
        current = self.current_set
        if exercise is None or current is None:
            return self._noop("complete_set")

        if self._state is EngineState.resting:
            self._finish_rest("superseded")

        current.timestamp = self._clock()
        finished = self.cursor
        self._session.recompute_aggregates()
        self._emit("set_completed", exercise_index=finished.exercise_index, set_index=finished.set_index)

        if self._set_index < len(exercise.sets) - 1:
            self._set_index += 1
            self._start_rest(current.target_rest_seconds, owner=current)
        else:
            exercise.was_completed = True
            self._advance(owner=current)
        return self._ok()

    def advance_exercise(self) -> bool:
        """Move to the next exercise, or to summary_pending after the last one."""
        if self._state not in _WORKING:
            return self._noop("advance_exercise")
        self._advance(owner=None)
        return self._ok()

    def _advance(self, owner: CompletedSet | None) -> None:
        exercises = self._session.completed_exercises
        if self._exercise_index < len(exercises) - 1:
            finished = exercises[self._exercise_index]
            self._exercise_index += 1
            self._set_index = 0
            upcoming = exercises[self._exercise_index]

            execution = self._config.execution
            same_superset = finished.superset_id is not None and upcoming.superset_id == finished.superset_id
            duration = execution.superset_rest_seconds if same_superset else execution.exercise_rest_seconds
            self._emit("exercise_advanced", superset=same_superset)
            self._start_rest(duration, owner=owner)
        else:
            if self._state is EngineState.resting:
                self._finish_rest("superseded")
            self._state = EngineState.summary_pending
            logger.debug("Session %s: all exercises done, awaiting finalize", self._session.session_id)
            self._emit("summary_pending")

    def skip_rest(self) -> bool:
        """resting → in_progress immediately, whatever time remains."""
        if self._state is not EngineState.resting:
            return self._noop("skip_rest")
        self._finish_rest("skipped")
        return self._ok()

    def previous_set(self) -> bool:
        """Step the cursor back one set, crossing into the previous exercise."""
        if self._state not in _ACTIVE:
            return self._noop("previous_set")

        exercises = self._session.completed_exercises
        if self._set_index > 0:
            target = Cursor(self._exercise_index, self._set_index - 1)
        elif self._exercise_index > 0:
            previous = exercises[self._exercise_index - 1]
            target = Cursor(self._exercise_index - 1, max(len(previous.sets) - 1, 0))
        else:
            return self._noop("previous_set")

        self._move_to(target)
        return self._ok()

    def jump_to_exercise(self, index: int) -> bool:
        """Put the cursor on the first set of exercise ``index``."""
        if self._state not in _ACTIVE:
            return self._noop("jump_to_exercise")
        if not 0 <= index < len(self._session.completed_exercises):
            return self._noop("jump_to_exercise")
        self._move_to(Cursor(index, 0))
        return self._ok()

    def _move_to(self, target: Cursor) -> None:
        if self._state is EngineState.resting:
            self._finish_rest("navigated")
        self._exercise_index = target.exercise_index
        self._set_index = target.set_index
        self._state = EngineState.in_progress
        self._emit("navigated")

    def pause(self) -> bool:
        """Stop both timers; cursor, elapsed time and rest remaining are kept."""
        if self._state not in _ACTIVE or self._paused:
            return self._noop("pause")
        self._stop_timers()
        self._paused = True
        self._emit("paused", elapsed=self._elapsed_seconds)
        return self._ok()

    def resume(self) -> bool:
        """Re-arm the timers that should be running; never double-starts."""
        if self._state not in _ACTIVE or not self._paused:
            return self._noop("resume")
        self._paused = False
        self._elapsed_ticker.start(self._on_elapsed_tick)
        if self._state is EngineState.resting and self._rest_remaining > 0:
            self._rest_ticker.start(self._on_rest_tick)
        self._emit("resumed", elapsed=self._elapsed_seconds)
        return self._ok()

    def finalize(self) -> bool:
        """Close the session and refresh the client's FitScore.

        Records the end time and duration, marks the session completed,
        recomputes aggregates, adds it to the client's history, updates the
        FitScore and, when a repository is configured, saves session and
        client.

        Raises:
            PersistenceError: The save failed.  The session, the client's
                history, the FitScore and any stored copy of the session are
                restored to their state before the call, so finalize can be
                retried.
        """
        if self._state not in _ACTIVE:
            return self._noop("finalize")

        previous_state = self._state
        previous_status = self._session.status
        previous_end = self._session.end_time
        was_paused = self._paused
        score_snapshot = dataclasses.replace(self._client.fit_score) if self._client.fit_score else None
        appended = not any(s is self._session for s in self._client.sessions)

        if self._state is EngineState.resting:
            self._finish_rest("finalized")
        self._stop_timers()

        self._session.end_time = self._clock()
        self._session.duration_seconds = self._elapsed_seconds
        self._session.status = SessionStatus.completed
        self._session.recompute_aggregates()
        if appended:
            self._client.sessions.append(self._session)
        self._state = EngineState.completed

        self._refresh_score(score_snapshot)

        if self._repository is not None:
            session_saved = False
            try:
                self._repository.save(self._session)
                session_saved = True
                self._repository.save(self._client)
            except PersistenceError:
                logger.error(
                    "Finalize of session %s failed to persist; keeping it open for retry",
                    self._session.session_id,
                )
                self._session.status = previous_status
                self._session.end_time = previous_end
                if appended:
                    self._client.sessions.remove(self._session)
                self._restore_score(score_snapshot)
                self._state = (
                    EngineState.summary_pending
                    if previous_state is EngineState.summary_pending
                    else EngineState.in_progress
                )
                self._paused = was_paused
                if not was_paused:
                    self._elapsed_ticker.start(self._on_elapsed_tick)
                if session_saved:
                    self._unsave_session()
                raise

        logger.info(
            "Session %s completed: %.0f volume, %d sets, %d reps, %.0f%% complete, %.0fs",
            self._session.session_id, self._session.total_volume, self._session.total_sets,
            self._session.total_reps, self._session.completion_rate, self._session.duration_seconds,
        )
        self._emit(
            "finalized",
            total_volume=self._session.total_volume,
            overall_score=self._client.fit_score.overall_score if self._client.fit_score else None,
        )
        return self._ok()

    def _unsave_session(self) -> None:
        """Overwrite the stored completed session with the rolled-back one.

        The client save failed after the session was stored, so the stored
        copy must not claim the session completed.
        """
        try:
            self._repository.save(self._session)
        except PersistenceError:
            logger.exception(
                "Could not restore stored session %s to %s after a failed finalize",
                self._session.session_id, self._session.status.value,
            )

    def _refresh_score(self, snapshot: FitScore | None) -> None:
        try:
            self._fit_score_engine.refresh(self._client)
        except Exception:
            logger.exception(
                "FitScore update failed for client %s; previous score kept",
                self._client.client_id,
            )
            self._restore_score(snapshot)

    def _restore_score(self, snapshot: FitScore | None) -> None:
        if snapshot is None:
            self._client.fit_score = None
            return
        current = self._client.ensure_fit_score()
        for f in dataclasses.fields(FitScore):
            setattr(current, f.name, getattr(snapshot, f.name))

    def cancel(self) -> bool:
        """Any non-terminal state → cancelled.  Timers stop; nothing is saved."""
        if self._state.is_terminal:
            return self._noop("cancel")
        if self._state is EngineState.resting:
            self._finish_rest("cancelled")
        self._stop_timers()
        self._session.status = SessionStatus.cancelled
        self._session.end_time = self._clock()
        self._session.duration_seconds = self._elapsed_seconds
        self._state = EngineState.cancelled
        logger.info("Session %s cancelled", self._session.session_id)
        self._emit("cancelled")
        return self._ok()

    def save(self) -> None:
        """Persist the session as it stands (explicit checkpoint).

        Raises:
            PersistenceError: No repository is configured or the save failed.
        """
        if self._repository is None:
            raise PersistenceError("No repository configured for this session")
        self._session.recompute_aggregates()
        try:
            self._repository.save(self._session)
        except PersistenceError:
            logger.warning("Checkpoint save failed for session %s", self._session.session_id)
            raise
        self._emit("saved")
