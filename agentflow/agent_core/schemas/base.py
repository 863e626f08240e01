"""Shared pydantic bases for agent runtime records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Mutable runtime record (executions, steps, approvals, memories ...).

    Unknown keys are rejected so that a typo in a repository mapping or a
    provider payload fails loudly at the boundary instead of being dropped.
    Fields can be populated by name or alias.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class FrozenSchema(BaseSchema):
    """Immutable snapshot, used for agent configurations loaded once per run."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)
