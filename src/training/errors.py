"""Error taxonomy for the training core."""

from __future__ import annotations


class TrainingError(Exception):
    """Base class for all training-core errors."""


class ValidationError(TrainingError, ValueError):
    """Raised when an entity is missing or a value violates an invariant.

    Raised before any state transition or mutation takes place.
    """


class StateError(TrainingError):
    """An operation is not valid in the current session state.

    The execution engine guards invalid transitions as no-ops and records
    them in ``SessionEngine.last_noop``; this error is only raised by
    ``SessionEngine.require_state`` for callers that want a hard failure.
    """

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while session is {state}")
        self.operation = operation
        self.state = state


class PersistenceError(TrainingError):
    """A repository save/load/delete failed.

    The in-memory state is kept so the caller may retry.
    """
