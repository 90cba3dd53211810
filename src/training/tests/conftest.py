"""Shared fixtures for the training core tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import UUID

import pytest

from src.training.base import (
    Client,
    Exercise,
    Gender,
    PlannedSet,
    Session,
    SessionStatus,
    WeightUnit,
    WorkoutExercise,
    WorkoutTemplate,
)
from src.training.catalog import StaticCatalog
from src.training.clock import manual_ticker_factory
from src.training.config_loader import ScoringConfig, load_scoring_config
from src.training.fit_score import FitScoreEngine
from src.training.repository import InMemoryRepository
from src.training.session_engine import SessionEngine

# Fixed "now" so window and trend maths are deterministic
NOW = datetime(2026, 2, 23, 12, 0, 0, tzinfo=timezone.utc)

TEST_CLIENT_ID = UUID("12345678-1234-5678-1234-567812345678")
SUPERSET_ID = UUID("aaaaaaaa-0000-0000-0000-000000000001")

SQUAT = Exercise(title="Barbell Back Squat", body_part="Legs", equipment="Barbell")
BENCH = Exercise(title="Barbell Bench Press", body_part="Chest", equipment="Barbell")
ROW = Exercise(title="Dumbbell Row", body_part="Back", equipment="Dumbbell")
PLANK = Exercise(title="Plank", body_part="Core", equipment="Bodyweight")


def fixed_clock() -> datetime:
    return NOW


def make_history_session(
    client: Client,
    template: WorkoutTemplate,
    days_ago: float,
    volume: float,
    technique: int | None = None,
    status: SessionStatus = SessionStatus.completed,
) -> Session:
    """A finished session with only the fields the scorer reads filled in."""
    return Session(
        client_id=client.client_id,
        template=template,
        scheduled_for=NOW - timedelta(days=days_ago),
        status=status,
        total_volume=volume,
        technique_quality=technique,
    )


# ---------------------------------------------------------------------------
# Config + collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def scoring_config() -> ScoringConfig:
    """Load the bundled scoring config."""
    return load_scoring_config()


@pytest.fixture
def catalog() -> StaticCatalog:
    return StaticCatalog([SQUAT, BENCH, ROW, PLANK])


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def fit_score_engine(scoring_config: ScoringConfig) -> FitScoreEngine:
    return FitScoreEngine(scoring_config, clock=fixed_clock)


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def male_client() -> Client:
    """180 cm / 81 kg (BMI 25.0), 20% body fat, 32.4 kg muscle (ratio 0.40)."""
    return Client(
        first_name="Marcus",
        last_name="Reed",
        gender=Gender.male,
        date_of_birth=date(1990, 6, 15),
        height_cm=180.0,
        current_weight_kg=81.0,
        target_weight_kg=76.0,
        client_id=TEST_CLIENT_ID,
        body_fat_pct=20.0,
        muscle_mass_kg=32.4,
    )


@pytest.fixture
def female_client() -> Client:
    return Client(
        first_name="Dana",
        last_name="Ortiz",
        gender=Gender.female,
        date_of_birth=date(1995, 3, 2),
        height_cm=165.0,
        current_weight_kg=60.0,
        target_weight_kg=58.0,
        body_fat_pct=25.0,
        muscle_mass_kg=21.6,
    )


@pytest.fixture
def template() -> WorkoutTemplate:
    """Squat 3×5, bench + row superset 2×8 each, then a single plank hold.

    Planned volume: 3·5·225 + 2·8·135 + 2·8·95 + 0 = 7055.
    """
    return WorkoutTemplate(
        name="Full Body A",
        category="Strength",
        estimated_minutes=60,
        exercises=(
            WorkoutExercise(
                exercise=SQUAT,
                sets=tuple(PlannedSet(set_number=i, reps=5, weight=225, rest_seconds=120) for i in (1, 2, 3)),
                order_index=0,
            ),
            WorkoutExercise(
                exercise=BENCH,
                sets=tuple(PlannedSet(set_number=i, reps=8, weight=135, rest_seconds=60) for i in (1, 2)),
                superset_id=SUPERSET_ID,
                order_index=1,
            ),
            WorkoutExercise(
                exercise=ROW,
                sets=tuple(PlannedSet(set_number=i, reps=8, weight=95, rest_seconds=60) for i in (1, 2)),
                superset_id=SUPERSET_ID,
                order_index=2,
            ),
            WorkoutExercise(
                exercise=PLANK,
                sets=(PlannedSet(set_number=1, reps=1, weight=0, weight_unit=WeightUnit.bodyweight, rest_seconds=45),),
                order_index=3,
            ),
        ),
    )


@pytest.fixture
def engine(
    male_client: Client,
    template: WorkoutTemplate,
    scoring_config: ScoringConfig,
    fit_score_engine: FitScoreEngine,
    repository: InMemoryRepository,
) -> SessionEngine:
    """A scheduled session engine on manual tickers with a fixed clock."""
    return SessionEngine.from_template(
        male_client,
        template,
        NOW,
        fit_score_engine=fit_score_engine,
        repository=repository,
        ticker_factory=manual_ticker_factory,
        config=scoring_config,
        clock=fixed_clock,
    )
