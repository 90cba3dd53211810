"""TrackerPro runtime — wires settings, scoring config and persistence.

Usage:
    from src.main import create_runtime

    runtime = create_runtime()
    engine = runtime.open_session(client, template)   # inside a running event loop
    engine.start()
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime

from src.config import Settings, get_settings
from src.training.base import Client, WorkoutTemplate
from src.training.clock import asyncio_ticker_factory
from src.training.config_loader import ScoringConfig, get_scoring_config, load_scoring_config
from src.training.fit_score import FitScoreEngine
from src.training.repository import InMemoryRepository, JsonFileRepository, Repository
from src.training.session_engine import SessionEngine

logger = logging.getLogger("trackerpro")


# ---------- Logging ----------

def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


# ---------- Wiring ----------

def build_repository(settings: Settings) -> Repository:
    if settings.data_dir is None:
        logger.info("No data_dir configured; using in-memory repository")
        return InMemoryRepository()
    logger.info("Using JSON repository at %s", settings.data_dir)
    return JsonFileRepository(settings.data_dir)


@dataclass
class TrainerRuntime:
    settings: Settings
    config: ScoringConfig
    repository: Repository
    fit_score_engine: FitScoreEngine

    def open_session(
        self,
        client: Client,
        template: WorkoutTemplate,
        scheduled_for: datetime | None = None,
    ) -> SessionEngine:
        """Create a session from ``template`` driven by real asyncio timers.

        The engine's timers arm on ``start()``, which must run on an event loop.
        They tick every ``execution.tick_seconds`` unless the settings override it.
        """
        interval = self.settings.tick_interval_seconds
        if interval is None:
            interval = self.config.execution.tick_seconds
        return SessionEngine.from_template(
            client,
            template,
            scheduled_for,
            fit_score_engine=self.fit_score_engine,
            repository=self.repository,
            ticker_factory=asyncio_ticker_factory(interval),
            config=self.config,
        )


def create_runtime(settings: Settings | None = None) -> TrainerRuntime:
    settings = settings or get_settings()
    configure_logging(settings)

    config = (
        load_scoring_config(settings.scoring_config_path)
        if settings.scoring_config_path
        else get_scoring_config()
    )
    runtime = TrainerRuntime(
        settings=settings,
        config=config,
        repository=build_repository(settings),
        fit_score_engine=FitScoreEngine(config),
    )
    logger.info(
        "Starting %s v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )
    return runtime
