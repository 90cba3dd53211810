"""Repository collaborators: persist and load clients and sessions.

The engines never perform I/O themselves.  They are handed a Repository
and call it only at explicit checkpoints (finalize, save).  Every
implementation raises PersistenceError for any storage failure and never
retries.

    InMemoryRepository — process-local store, deep-copies on the way in
                         and out so callers cannot mutate stored state.
    JsonFileRepository — one JSON document per entity under a data
                         directory, serialized through src.models.training.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import UUID

import pydantic

from src.training.base import Client, Session
from src.training.errors import PersistenceError

logger = logging.getLogger("trackerpro.training.repository")

Entity = Client | Session


class Repository(ABC):
    """Load/save interface for training entities.

    A saved Client carries its FitScore and logs; its sessions are saved
    individually with ``save(session)``.
    """

    @abstractmethod
    def save(self, entity: Entity) -> None:
        """Insert or replace an entity.

        Raises:
            PersistenceError: On any storage failure or unsupported entity.
        """

    @abstractmethod
    def fetch_clients(self) -> list[Client]:
        """Return every client with its sessions attached in date order."""

    @abstractmethod
    def fetch_sessions_for(self, client_id: UUID) -> list[Session]:
        """Return a client's sessions ordered by scheduled date."""

    @abstractmethod
    def delete(self, entity: Entity) -> None:
        """Remove an entity.  Deleting a client also deletes its sessions."""


def _unsupported(entity: object) -> PersistenceError:
    return PersistenceError(f"Unsupported entity type: {type(entity).__name__}")


class InMemoryRepository(Repository):
    def __init__(self) -> None:
        self._clients: dict[UUID, Client] = {}
        self._sessions: dict[UUID, Session] = {}

    def save(self, entity: Entity) -> None:
        if isinstance(entity, Client):
            stored = copy.deepcopy(entity)
            stored.sessions = []
            self._clients[entity.client_id] = stored
        elif isinstance(entity, Session):
            self._sessions[entity.session_id] = copy.deepcopy(entity)
        else:
            raise _unsupported(entity)

    def fetch_clients(self) -> list[Client]:
        clients = []
        for stored in self._clients.values():
            client = copy.deepcopy(stored)
            client.sessions = self.fetch_sessions_for(client.client_id)
            clients.append(client)
        return clients

    def fetch_sessions_for(self, client_id: UUID) -> list[Session]:
        sessions = [copy.deepcopy(s) for s in self._sessions.values() if s.client_id == client_id]
        sessions.sort(key=lambda s: s.scheduled_for)
        return sessions

    def delete(self, entity: Entity) -> None:
        if isinstance(entity, Client):
            self._clients.pop(entity.client_id, None)
            for session_id in [sid for sid, s in self._sessions.items() if s.client_id == entity.client_id]:
                del self._sessions[session_id]
        elif isinstance(entity, Session):
            self._sessions.pop(entity.session_id, None)
        else:
            raise _unsupported(entity)


class JsonFileRepository(Repository):
    """Stores ``clients/<id>.json`` and ``sessions/<id>.json`` under ``root``.

    Writes go to a temporary file first and are then renamed into place,
    so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._clients_dir = self._root / "clients"
        self._sessions_dir = self._root / "sessions"

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, entity: Entity) -> Path:
        if isinstance(entity, Client):
            return self._clients_dir / f"{entity.client_id}.json"
        if isinstance(entity, Session):
            return self._sessions_dir / f"{entity.session_id}.json"
        raise _unsupported(entity)

    def save(self, entity: Entity) -> None:
        from src.models.training import ClientRecord, SessionRecord

        path = self._path_for(entity)
        try:
            record = (
                ClientRecord.model_validate(entity)
                if isinstance(entity, Client)
                else SessionRecord.model_validate(entity)
            )
            payload = record.model_dump_json(indent=2)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(path)
        except (OSError, pydantic.ValidationError) as exc:
            logger.error("Failed to save %s to %s: %s", type(entity).__name__, path, exc)
            raise PersistenceError(f"Could not save {type(entity).__name__} to {path}: {exc}") from exc
        logger.debug("Saved %s", path)

    def fetch_clients(self) -> list[Client]:
        from src.models.training import ClientRecord

        clients = []
        for path in sorted(self._clients_dir.glob("*.json")):
            record = self._read(path, ClientRecord)
            clients.append(record.to_entity(sessions=self.fetch_sessions_for(record.client_id)))
        return clients

    def fetch_sessions_for(self, client_id: UUID) -> list[Session]:
        from src.models.training import SessionRecord

        sessions = []
        for path in self._sessions_dir.glob("*.json"):
            record = self._read(path, SessionRecord)
            if record.client_id == client_id:
                sessions.append(record.to_entity())
        sessions.sort(key=lambda s: s.scheduled_for)
        return sessions

    def _read(self, path: Path, record_type: type[pydantic.BaseModel]):
        try:
            return record_type.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, pydantic.ValidationError) as exc:
            raise PersistenceError(f"Could not load {path}: {exc}") from exc

    def delete(self, entity: Entity) -> None:
        path = self._path_for(entity)
        try:
            if isinstance(entity, Client):
                for session in self.fetch_sessions_for(entity.client_id):
                    self._path_for(session).unlink(missing_ok=True)
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not delete {path}: {exc}") from exc
        logger.debug("Deleted %s", path)
