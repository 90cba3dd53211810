"""Shared Pydantic base model for TrackerPro records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TrackerBase(BaseModel):
    """Base model with shared config for all TrackerPro records.

    ``from_attributes`` lets every record be built straight from the
    training dataclasses with ``Record.model_validate(entity)``.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
