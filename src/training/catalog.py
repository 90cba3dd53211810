"""Exercise catalog collaborator.

The engines only need exercise identity and title.  Catalog import and
seeding are handled elsewhere; here we only define the lookup interface
and a fixed in-memory implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable
from uuid import UUID

from src.training.base import Exercise

logger = logging.getLogger("trackerpro.training.catalog")


class CatalogProvider(ABC):
    """Read-only exercise lookup."""

    @abstractmethod
    def get(self, exercise_id: UUID) -> Exercise | None:
        """Return the exercise with this id, or None."""

    @abstractmethod
    def find_by_title(self, title: str) -> list[Exercise]:
        """Case-insensitive substring search on exercise titles."""


class StaticCatalog(CatalogProvider):
    """Serves a fixed list of exercises."""

    def __init__(self, exercises: Iterable[Exercise] = ()) -> None:
        self._by_id: dict[UUID, Exercise] = {}
        for exercise in exercises:
            if exercise.exercise_id in self._by_id:
                logger.warning("Duplicate exercise id %s in catalog; keeping first", exercise.exercise_id)
                continue
            self._by_id[exercise.exercise_id] = exercise

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, exercise_id: UUID) -> Exercise | None:
        return self._by_id.get(exercise_id)

    def find_by_title(self, title: str) -> list[Exercise]:
        needle = title.strip().lower()
        if not needle:
            return []
        return sorted(
            (e for e in self._by_id.values() if needle in e.title.lower()),
            key=lambda e: e.title,
        )
