"""TrackerPro training core.

Runs a client through a planned workout and turns the resulting history
and body measurements into the TrackerPro FitScore (0–1000).

Core modules:
    base           — Canonical dataclasses (Client, WorkoutTemplate, Session, FitScore, ...)
    errors         — TrainingError hierarchy
    config_loader  — Load/validate/hot-reload scoring_config.yaml
    fit_score      — FitScore sub-scores, overall score, trends and categories
    session_engine — Active-session state machine with rest timers
    clock          — Injectable tick sources (manual and asyncio)
    repository     — Persistence collaborators (in-memory, JSON files)
    catalog        — Exercise catalog lookup
"""

from src.training.base import (
    Client,
    Exercise,
    FitScore,
    Session,
    SessionStatus,
    WorkoutTemplate,
)
from src.training.config_loader import ScoringConfig, get_scoring_config
from src.training.errors import PersistenceError, StateError, TrainingError, ValidationError
from src.training.fit_score import FitScoreEngine
from src.training.session_engine import EngineState, SessionEngine, create_session

__all__ = [
    "Client",
    "Exercise",
    "FitScore",
    "Session",
    "SessionStatus",
    "WorkoutTemplate",
    "ScoringConfig",
    "get_scoring_config",
    "TrainingError",
    "ValidationError",
    "StateError",
    "PersistenceError",
    "FitScoreEngine",
    "EngineState",
    "SessionEngine",
    "create_session",
]
