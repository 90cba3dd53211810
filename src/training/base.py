"""Canonical domain model for the TrackerPro training core.

Every engine in this package works on these dataclasses.  Catalog and
template types are frozen: a WorkoutTemplate referenced by a Session is
never edited in place.  Session-side types are mutable and owned by the
SessionEngine while a workout is running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from src.training.config_loader import ScoringConfig, get_scoring_config

logger = logging.getLogger("trackerpro.training")

DEFAULT_REST_SECONDS = 90


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class WeightUnit(str, Enum):
    lbs = "lbs"
    kg = "kg"
    bodyweight = "BW"


class SessionStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.completed, SessionStatus.cancelled)


class Trend(str, Enum):
    improving = "improving"
    maintaining = "maintaining"
    declining = "declining"

    @property
    def symbol(self) -> str:
        return {"improving": "↑", "maintaining": "→", "declining": "↓"}[self.value]


# ---------------------------------------------------------------------------
# Catalog + templates (immutable)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Exercise:
    """A catalog exercise.  Only identity and title matter to the engines.

    Attributes:
        exercise_id:   Stable identity.
        title:         Display name, e.g. "Barbell Back Squat".
        body_part:     Primary body part ("Legs", "Chest", "Core", ...).
        equipment:     Equipment needed.
        exercise_type: "Strength", "Cardio", ...
        level:         "Beginner" / "Intermediate" / "Advanced".
    """

    title: str
    exercise_id: UUID = field(default_factory=uuid4)
    body_part: str = ""
    equipment: str = ""
    exercise_type: str = "Strength"
    level: str = "Intermediate"


@dataclass(frozen=True)
class PlannedSet:
    """One prescribed set inside a WorkoutExercise."""

    set_number: int = 1
    reps: int = 10
    weight: float = 0.0
    weight_unit: WeightUnit = WeightUnit.lbs
    rest_seconds: int = DEFAULT_REST_SECONDS
    rpe: int | None = None


@dataclass(frozen=True)
class WorkoutExercise:
    """An exercise slot in a template.

    Exercises sharing a ``superset_id`` are performed back-to-back with a
    short rest between them.
    """

    exercise: Exercise
    sets: tuple[PlannedSet, ...] = ()
    superset_id: UUID | None = None
    order_index: int = 0
    notes: str = ""


@dataclass(frozen=True)
class WorkoutTemplate:
    """A named, ordered plan of WorkoutExercises."""

    name: str
    exercises: tuple[WorkoutExercise, ...] = ()
    template_id: UUID = field(default_factory=uuid4)
    description: str = ""
    category: str | None = None
    estimated_minutes: int | None = None

    @property
    def exercise_count(self) -> int:
        return len(self.exercises)

    @property
    def total_sets(self) -> int:
        return sum(len(we.sets) for we in self.exercises)

    @property
    def has_superset(self) -> bool:
        return any(we.superset_id is not None for we in self.exercises)

    @property
    def estimated_volume(self) -> int:
        """Rough planned load: Σ weight × reps over every planned set."""
        return sum(int(s.weight * s.reps) for we in self.exercises for s in we.sets)


# ---------------------------------------------------------------------------
# Session performance records (mutable)
# ---------------------------------------------------------------------------


@dataclass
class CompletedSet:
    """Performance record for one set.

    Target fields are captured from the PlannedSet at session creation and
    are never changed afterwards.  Actual fields start equal to the targets.

    Attributes:
        set_number:          1-based set number.
        target_reps:         Prescribed reps.
        target_weight:       Prescribed load.
        target_unit:         Unit of the prescribed load.
        target_rest_seconds: Prescribed rest after this set.
        reps:                Reps actually performed (≥ 0).
        weight:              Load actually used (≥ 0).
        weight_unit:         Unit of the actual load.
        rpe:                 Rate of perceived exertion 1–10, if recorded.
        actual_rest_seconds: Rest actually taken after this set, if measured.
        timestamp:           Last time the set was updated or completed.
    """

    set_number: int
    target_reps: int
    target_weight: float
    target_unit: WeightUnit = WeightUnit.lbs
    target_rest_seconds: int = DEFAULT_REST_SECONDS
    reps: int | None = None
    weight: float | None = None
    weight_unit: WeightUnit | None = None
    rpe: int | None = None
    actual_rest_seconds: int | None = None
    timestamp: datetime | None = None
    notes: str = ""

    def __post_init__(self) -> None:
        if self.reps is None:
            self.reps = self.target_reps
        if self.weight is None:
            self.weight = self.target_weight
        if self.weight_unit is None:
            self.weight_unit = self.target_unit

    @classmethod
    def from_planned(cls, planned: PlannedSet) -> CompletedSet:
        return cls(
            set_number=planned.set_number,
            target_reps=planned.reps,
            target_weight=planned.weight,
            target_unit=planned.weight_unit,
            target_rest_seconds=planned.rest_seconds,
        )

    @property
    def volume(self) -> float:
        return self.weight * self.reps

    @property
    def performance_ratio(self) -> float:
        """Mean of actual/target for reps and weight; zero targets are skipped."""
        ratios = []
        if self.target_reps > 0:
            ratios.append(self.reps / self.target_reps)
        if self.target_weight > 0:
            ratios.append(self.weight / self.target_weight)
        if not ratios:
            return 1.0
        return sum(ratios) / len(ratios)


@dataclass
class CompletedExercise:
    exercise: Exercise
    sets: list[CompletedSet] = field(default_factory=list)
    superset_id: UUID | None = None
    was_completed: bool = False
    notes: str = ""

    @classmethod
    def from_workout_exercise(cls, workout_exercise: WorkoutExercise) -> CompletedExercise:
        return cls(
            exercise=workout_exercise.exercise,
            sets=[CompletedSet.from_planned(ps) for ps in workout_exercise.sets],
            superset_id=workout_exercise.superset_id,
        )

    @property
    def total_volume(self) -> float:
        return sum(s.volume for s in self.sets)

    @property
    def average_rpe(self) -> float:
        rpes = [s.rpe for s in self.sets if s.rpe is not None]
        return sum(rpes) / len(rpes) if rpes else 0.0


@dataclass
class Session:
    """One scheduled or performed training session for a client.

    ``total_volume``, ``total_sets`` and ``total_reps`` are cached values.
    They are only refreshed by ``recompute_aggregates()``, which the
    SessionEngine calls after every user-visible set mutation and at
    finalize.
    """

    client_id: UUID
    template: WorkoutTemplate
    scheduled_for: datetime = field(default_factory=utc_now)
    session_id: UUID = field(default_factory=uuid4)
    status: SessionStatus = SessionStatus.scheduled
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    completed_exercises: list[CompletedExercise] = field(default_factory=list)

    total_volume: float = 0.0
    total_sets: int = 0
    total_reps: int = 0

    session_rpe: int | None = None
    technique_quality: int | None = None
    pre_workout_energy: int | None = None
    post_workout_energy: int | None = None
    focus_level: int | None = None
    body_weight_kg: float | None = None

    trainer_notes: str = ""
    client_feedback: str = ""

    @property
    def all_sets(self) -> list[CompletedSet]:
        return [s for ce in self.completed_exercises for s in ce.sets]

    @property
    def calculated_total_volume(self) -> float:
        return sum(ce.total_volume for ce in self.completed_exercises)

    def recompute_aggregates(self) -> None:
        sets = self.all_sets
        self.total_volume = self.calculated_total_volume
        self.total_reps = sum(s.reps for s in sets)
        self.total_sets = len(sets)

    @property
    def completion_rate(self) -> float:
        planned = len(self.completed_exercises)
        if planned == 0:
            return 0.0
        completed = sum(1 for ce in self.completed_exercises if ce.was_completed)
        return completed / planned * 100

    @property
    def intensity_score(self) -> float:
        return self.intensity()

    def intensity(self, config: ScoringConfig | None = None) -> float:
        """Session intensity on 0-100 using the ``intensity`` section of the scoring config."""
        weights = (config or get_scoring_config()).intensity
        rpe = self.session_rpe if self.session_rpe is not None else weights.default_rpe
        rpe_component = rpe / 10
        volume_component = min(self.total_volume / weights.volume_target, 1.0)
        duration_component = min(self.duration_seconds / weights.duration_target_seconds, 1.0)
        return (
            rpe_component * weights.rpe_weight
            + volume_component * weights.volume_weight
            + duration_component * weights.duration_weight
        ) * 100

    @property
    def average_rest_time(self) -> float:
        sets = self.all_sets
        if not sets:
            return float(DEFAULT_REST_SECONDS)
        total = sum(
            s.actual_rest_seconds if s.actual_rest_seconds is not None else DEFAULT_REST_SECONDS
            for s in sets
        )
        return total / len(sets)


# ---------------------------------------------------------------------------
# Scores + lifestyle logs
# ---------------------------------------------------------------------------

PRIMARY_COMPONENTS = ("strength", "endurance", "mobility", "body_composition", "consistency")
SECONDARY_COMPONENTS = ("nutrition", "recovery", "progression", "technique", "mental")
BALANCE_COMPONENTS = ("upper_body", "lower_body", "core", "muscle_balance")


@dataclass
class FitScore:
    """Composite 0–1000 performance score, one per client.

    All sub-scores live in [0, 100] and start at 50; the overall score
    starts at 500.  Only the scoring engine mutates these fields.
    """

    strength: float = 50.0
    endurance: float = 50.0
    mobility: float = 50.0
    body_composition: float = 50.0
    consistency: float = 50.0

    nutrition: float = 50.0
    recovery: float = 50.0
    progression: float = 50.0
    technique: float = 50.0
    mental: float = 50.0

    upper_body: float = 50.0
    lower_body: float = 50.0
    core: float = 50.0
    muscle_balance: float = 50.0

    overall_score: float = 500.0
    weekly_trend: Trend = Trend.maintaining
    monthly_trend: Trend = Trend.maintaining
    quarterly_trend: Trend = Trend.maintaining

    score_id: UUID = field(default_factory=uuid4)
    updated_at: datetime = field(default_factory=utc_now)

    def components(self) -> dict[str, float]:
        names = PRIMARY_COMPONENTS + SECONDARY_COMPONENTS + BALANCE_COMPONENTS
        return {name: getattr(self, name) for name in names}


@dataclass
class NutritionLog:
    log_date: datetime
    calories: int = 0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fats_g: float = 0.0
    water_l: float = 0.0
    adherence: int = 5  # 1-10, how closely the plan was followed
    notes: str = ""


@dataclass
class LifestyleLog:
    log_date: datetime
    sleep_hours: float = 7.0
    sleep_quality: int = 5  # 1-10
    stress_level: int = 5  # 1-10
    energy_level: int = 5  # 1-10
    hydration_level: int = 5  # 1-10
    steps: int = 0
    notes: str = ""

    @property
    def recovery_score(self) -> float:
        sleep_score = min(self.sleep_hours / 8, 1.0) * self.sleep_quality
        stress_score = 10 - self.stress_level
        return (sleep_score + stress_score + self.hydration_level) / 3 * 10


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@dataclass
class Client:
    """A trainer's client with body measurements and training history.

    Attributes:
        height_cm / current_weight_kg:
            Must be > 0 for BMI-derived metrics; non-positive values make
            those metrics unavailable rather than raising.
        body_fat_pct, muscle_mass_kg, water_pct, bone_mass_kg,
        visceral_fat_level:
            Optional body-composition measurements.
        sessions:  Ordered session history.
        fit_score: At most one FitScore; created at onboarding.
    """

    first_name: str
    last_name: str
    gender: Gender
    date_of_birth: date
    height_cm: float
    current_weight_kg: float
    target_weight_kg: float
    client_id: UUID = field(default_factory=uuid4)
    email: str = ""

    body_fat_pct: float | None = None
    muscle_mass_kg: float | None = None
    water_pct: float | None = None
    bone_mass_kg: float | None = None
    visceral_fat_level: int | None = None

    sessions: list[Session] = field(default_factory=list)
    fit_score: FitScore | None = field(default_factory=FitScore)
    nutrition_logs: list[NutritionLog] = field(default_factory=list)
    lifestyle_logs: list[LifestyleLog] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def age(self, on: date | None = None) -> int:
        today = on or date.today()
        years = today.year - self.date_of_birth.year
        if (today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day):
            years -= 1
        return max(years, 0)

    @property
    def bmi(self) -> float:
        if self.height_cm <= 0 or self.current_weight_kg <= 0:
            return 0.0
        height_m = self.height_cm / 100
        return self.current_weight_kg / (height_m * height_m)

    @property
    def muscle_mass_pct(self) -> float | None:
        if self.muscle_mass_kg is None or self.current_weight_kg <= 0:
            return None
        return self.muscle_mass_kg / self.current_weight_kg * 100

    @property
    def bone_mass_pct(self) -> float | None:
        if self.bone_mass_kg is None or self.current_weight_kg <= 0:
            return None
        return self.bone_mass_kg / self.current_weight_kg * 100

    @property
    def weight_progress(self) -> float:
        """Percent of the way from the starting weight to the target weight.

        The starting weight is the body weight recorded on the first session,
        falling back to the current weight.
        """
        total_change = abs(self.target_weight_kg - self.current_weight_kg)
        start = self.current_weight_kg
        if self.sessions and self.sessions[0].body_weight_kg is not None:
            start = self.sessions[0].body_weight_kg
        current_change = abs(start - self.current_weight_kg)
        return current_change / total_change * 100 if total_change > 0 else 0.0

    def ensure_fit_score(self) -> FitScore:
        if self.fit_score is None:
            self.fit_score = FitScore()
            logger.debug("Created FitScore for client %s", self.client_id)
        return self.fit_score
