"""Persisted build progress: schema models and the locked state store."""

from __future__ import annotations

from .schema import (
    BuildState,
    CustomBuildState,
    CustomMetadata,
    PhaseEntry,
    TemplateBuildState,
    TemplateMetadata,
    create_initial_state,
    is_valid_url,
    parse_build_state,
    phase_index,
    validate_phase_id,
)
from .store import LoadResult, State, StateStore

__all__ = [
    "BuildState",
    "CustomBuildState",
    "CustomMetadata",
    "LoadResult",
    "PhaseEntry",
    "State",
    "StateStore",
    "TemplateBuildState",
    "TemplateMetadata",
    "create_initial_state",
    "is_valid_url",
    "parse_build_state",
    "phase_index",
    "validate_phase_id",
]
