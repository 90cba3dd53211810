"""Pydantic records for exchanging training entities with outer layers.

Each record mirrors one dataclass from ``src.training.base``.  Build a
record from an entity with ``XRecord.model_validate(entity)`` and turn it
back with ``record.to_entity()``.  Derived session metrics
(completion rate, intensity, average rest) are exported read-only.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated

from pydantic import Field

from src.models.base import TrackerBase
from src.training.base import (
    Client,
    CompletedExercise,
    CompletedSet,
    Exercise,
    FitScore,
    Gender,
    LifestyleLog,
    NutritionLog,
    PlannedSet,
    Session,
    SessionStatus,
    Trend,
    WeightUnit,
    WorkoutExercise,
    WorkoutTemplate,
)


# ---------- Catalog + templates ----------

class ExerciseRecord(TrackerBase):
    exercise_id: uuid.UUID
    title: str
    body_part: str = ""
    equipment: str = ""
    exercise_type: str = "Strength"
    level: str = "Intermediate"

    def to_entity(self) -> Exercise:
        return Exercise(**self.model_dump())


class PlannedSetRecord(TrackerBase):
    set_number: int = Field(default=1, ge=1)
    reps: int = Field(default=10, ge=0, le=999)
    weight: float = Field(default=0.0, ge=0)
    weight_unit: WeightUnit = WeightUnit.lbs
    rest_seconds: int = Field(default=90, ge=0)
    rpe: int | None = Field(default=None, ge=1, le=10)

    def to_entity(self) -> PlannedSet:
        return PlannedSet(**self.model_dump())


class WorkoutExerciseRecord(TrackerBase):
    exercise: ExerciseRecord
    sets: list[PlannedSetRecord] = Field(default_factory=list)
    superset_id: uuid.UUID | None = None
    order_index: int = 0
    notes: str = ""

    def to_entity(self) -> WorkoutExercise:
        return WorkoutExercise(
            exercise=self.exercise.to_entity(),
            sets=tuple(s.to_entity() for s in self.sets),
            superset_id=self.superset_id,
            order_index=self.order_index,
            notes=self.notes,
        )


class WorkoutTemplateRecord(TrackerBase):
    template_id: uuid.UUID
    name: str
    description: str = ""
    category: str | None = None
    estimated_minutes: int | None = Field(default=None, ge=0)
    exercises: list[WorkoutExerciseRecord] = Field(default_factory=list)

    def to_entity(self) -> WorkoutTemplate:
        return WorkoutTemplate(
            name=self.name,
            exercises=tuple(we.to_entity() for we in self.exercises),
            template_id=self.template_id,
            description=self.description,
            category=self.category,
            estimated_minutes=self.estimated_minutes,
        )


# ---------- Session performance ----------

class CompletedSetRecord(TrackerBase):
    set_number: int = Field(ge=1)
    target_reps: int = Field(ge=0)
    target_weight: float = Field(ge=0)
    target_unit: WeightUnit = WeightUnit.lbs
    target_rest_seconds: int = Field(default=90, ge=0)
    reps: int = Field(ge=0)
    weight: float = Field(ge=0)
    weight_unit: WeightUnit
    rpe: int | None = Field(default=None, ge=1, le=10)
    actual_rest_seconds: int | None = Field(default=None, ge=0)
    timestamp: datetime | None = None
    notes: str = ""

    def to_entity(self) -> CompletedSet:
        return CompletedSet(**self.model_dump())


class CompletedExerciseRecord(TrackerBase):
    exercise: ExerciseRecord
    sets: list[CompletedSetRecord] = Field(default_factory=list)
    superset_id: uuid.UUID | None = None
    was_completed: bool = False
    notes: str = ""

    def to_entity(self) -> CompletedExercise:
        return CompletedExercise(
            exercise=self.exercise.to_entity(),
            sets=[s.to_entity() for s in self.sets],
            superset_id=self.superset_id,
            was_completed=self.was_completed,
            notes=self.notes,
        )


class SessionRecord(TrackerBase):
    session_id: uuid.UUID
    client_id: uuid.UUID
    template: WorkoutTemplateRecord
    scheduled_for: datetime
    status: SessionStatus = SessionStatus.scheduled
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: float = Field(default=0.0, ge=0)
    completed_exercises: list[CompletedExerciseRecord] = Field(default_factory=list)

    total_volume: float = Field(default=0.0, ge=0)
    total_sets: int = Field(default=0, ge=0)
    total_reps: int = Field(default=0, ge=0)

    session_rpe: int | None = Field(default=None, ge=1, le=10)
    technique_quality: int | None = Field(default=None, ge=1, le=10)
    pre_workout_energy: int | None = Field(default=None, ge=1, le=10)
    post_workout_energy: int | None = Field(default=None, ge=1, le=10)
    focus_level: int | None = Field(default=None, ge=1, le=10)
    body_weight_kg: float | None = Field(default=None, gt=0)

    trainer_notes: str = ""
    client_feedback: str = ""

    # Derived, export only
    completion_rate: float = 0.0
    intensity_score: float = 0.0
    average_rest_time: float = 90.0

    def to_entity(self) -> Session:
        return Session(
            client_id=self.client_id,
            template=self.template.to_entity(),
            scheduled_for=self.scheduled_for,
            session_id=self.session_id,
            status=self.status,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_seconds=self.duration_seconds,
            completed_exercises=[ce.to_entity() for ce in self.completed_exercises],
            total_volume=self.total_volume,
            total_sets=self.total_sets,
            total_reps=self.total_reps,
            session_rpe=self.session_rpe,
            technique_quality=self.technique_quality,
            pre_workout_energy=self.pre_workout_energy,
            post_workout_energy=self.post_workout_energy,
            focus_level=self.focus_level,
            body_weight_kg=self.body_weight_kg,
            trainer_notes=self.trainer_notes,
            client_feedback=self.client_feedback,
        )


# ---------- Scores + logs ----------

SubScore = Annotated[float, Field(ge=0, le=100)]


class FitScoreRecord(TrackerBase):
    score_id: uuid.UUID
    strength: SubScore = 50.0
    endurance: SubScore = 50.0
    mobility: SubScore = 50.0
    body_composition: SubScore = 50.0
    consistency: SubScore = 50.0
    nutrition: SubScore = 50.0
    recovery: SubScore = 50.0
    progression: SubScore = 50.0
    technique: SubScore = 50.0
    mental: SubScore = 50.0
    upper_body: SubScore = 50.0
    lower_body: SubScore = 50.0
    core: SubScore = 50.0
    muscle_balance: SubScore = 50.0
    overall_score: float = Field(default=500.0, ge=0, le=1000)
    weekly_trend: Trend = Trend.maintaining
    monthly_trend: Trend = Trend.maintaining
    quarterly_trend: Trend = Trend.maintaining
    updated_at: datetime

    def to_entity(self) -> FitScore:
        return FitScore(**self.model_dump())


class NutritionLogRecord(TrackerBase):
    log_date: datetime
    calories: int = Field(default=0, ge=0)
    protein_g: float = Field(default=0.0, ge=0)
    carbs_g: float = Field(default=0.0, ge=0)
    fats_g: float = Field(default=0.0, ge=0)
    water_l: float = Field(default=0.0, ge=0)
    adherence: int = Field(default=5, ge=1, le=10)
    notes: str = ""

    def to_entity(self) -> NutritionLog:
        return NutritionLog(**self.model_dump())


class LifestyleLogRecord(TrackerBase):
    log_date: datetime
    sleep_hours: float = Field(default=7.0, ge=0, le=24)
    sleep_quality: int = Field(default=5, ge=1, le=10)
    stress_level: int = Field(default=5, ge=1, le=10)
    energy_level: int = Field(default=5, ge=1, le=10)
    hydration_level: int = Field(default=5, ge=1, le=10)
    steps: int = Field(default=0, ge=0)
    notes: str = ""

    def to_entity(self) -> LifestyleLog:
        return LifestyleLog(**self.model_dump())


class ClientRecord(TrackerBase):
    """A client without its session history (sessions are stored separately)."""

    client_id: uuid.UUID
    first_name: str
    last_name: str
    email: str = ""
    gender: Gender
    date_of_birth: date
    height_cm: float = Field(ge=0)
    current_weight_kg: float = Field(ge=0)
    target_weight_kg: float = Field(ge=0)

    body_fat_pct: float | None = Field(default=None, ge=0, le=100)
    muscle_mass_kg: float | None = Field(default=None, ge=0)
    water_pct: float | None = Field(default=None, ge=0, le=100)
    bone_mass_kg: float | None = Field(default=None, ge=0)
    visceral_fat_level: int | None = Field(default=None, ge=0)

    fit_score: FitScoreRecord | None = None
    nutrition_logs: list[NutritionLogRecord] = Field(default_factory=list)
    lifestyle_logs: list[LifestyleLogRecord] = Field(default_factory=list)

    def to_entity(self, sessions: list[Session] | None = None) -> Client:
        return Client(
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            date_of_birth=self.date_of_birth,
            height_cm=self.height_cm,
            current_weight_kg=self.current_weight_kg,
            target_weight_kg=self.target_weight_kg,
            client_id=self.client_id,
            email=self.email,
            body_fat_pct=self.body_fat_pct,
            muscle_mass_kg=self.muscle_mass_kg,
            water_pct=self.water_pct,
            bone_mass_kg=self.bone_mass_kg,
            visceral_fat_level=self.visceral_fat_level,
            sessions=list(sessions or []),
            fit_score=self.fit_score.to_entity() if self.fit_score else None,
            nutrition_logs=[log.to_entity() for log in self.nutrition_logs],
            lifestyle_logs=[log.to_entity() for log in self.lifestyle_logs],
        )
