"""Gates that guard forward progress through the build phases."""

from __future__ import annotations

from .gate import (
    AllGatesResult,
    GateResult,
    check_all_gates,
    check_gate,
    complete_phase,
    require_gates,
)
from .predicates import ARTIFACT_CHECKS, check_artifacts
from .site_config import validate_site_config

__all__ = [
    "ARTIFACT_CHECKS",
    "AllGatesResult",
    "GateResult",
    "check_all_gates",
    "check_artifacts",
    "check_gate",
    "complete_phase",
    "require_gates",
    "validate_site_config",
]
