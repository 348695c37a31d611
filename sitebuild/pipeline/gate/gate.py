"""Phase gates: recorded status combined with live artifact verification.

A gate passes only when the state document says a phase is ``completed``
*and* the phase's artifact predicate still finds its outputs on disk.
Completion itself is guarded the same way: ``complete_phase`` re-runs the
predicate and refuses the transition when the artifacts are not there,
whatever artifact map the caller supplies.

``check_gate`` and ``check_all_gates`` are read-only and report problems as
results; ``complete_phase`` raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from sitebuild.config import PHASE_IDS
from sitebuild.exceptions import ArtifactCheckFailedError, GateFailedError, UnknownPhaseError
from sitebuild.pipeline.state import State, StateStore, phase_index

from .predicates import check_artifacts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateResult:
    """Verdict of a single gate."""

    passed: bool
    reason: str | None = None


@dataclass(frozen=True)
class AllGatesResult:
    """Aggregated verdict over a prefix of the phase order."""

    passed: bool
    failures: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.passed:
            return "All gates passed"
        return "Gate failures:\n" + "\n".join(f"  - {f}" for f in self.failures)


def _gate_for_state(project_path: Path, state: State, phase_id: str) -> GateResult:
    status = state.phases[phase_id].status
    if status != "completed":
        return GateResult(False, f'{phase_id} status is "{status}", expected "completed"')
    problem = check_artifacts(project_path, phase_id, state.builder_type)
    if problem:
        return GateResult(False, f"{phase_id} artifacts invalid: {problem}")
    return GateResult(True)


def check_gate(project_path: Path | str, phase_id: str) -> GateResult:
    """Evaluate the gate for ``phase_id``.

    Parameters
    ----------
    project_path : Path | str
        Project directory holding ``build-state.json``.
    phase_id : str
        Phase whose gate is evaluated.

    Returns
    -------
    GateResult
        ``passed=False`` with a reason when the state is missing or invalid,
        the phase id is unknown, the phase is not completed or its
        artifacts fail verification.

    Examples
    --------
    >>> check_gate("/nonexistent", "phase-0").passed
    False
    """
    if phase_id not in PHASE_IDS:
        return GateResult(False, f"Unknown phase: {phase_id}")
    result = StateStore(project_path).load()
    if not result.valid or result.state is None:
        return GateResult(False, result.error)
    return _gate_for_state(Path(project_path), result.state, phase_id)


def check_all_gates(project_path: Path | str, up_to_phase_id: str) -> AllGatesResult:
    """Evaluate every gate up to and including ``up_to_phase_id``.

    All failures are collected; evaluation does not stop at the first one.
    """
    if up_to_phase_id not in PHASE_IDS:
        return AllGatesResult(False, [f"Unknown phase: {up_to_phase_id}"])
    result = StateStore(project_path).load()
    if not result.valid or result.state is None:
        return AllGatesResult(False, [result.error or "state unavailable"])
    failures = []
    for pid in PHASE_IDS[: phase_index(up_to_phase_id) + 1]:
        verdict = _gate_for_state(Path(project_path), result.state, pid)
        if not verdict.passed:
            failures.append(verdict.reason or pid)
    return AllGatesResult(not failures, failures)


def require_gates(project_path: Path | str, up_to_phase_id: str) -> None:
    """Raise ``GateFailedError`` unless every gate up to the target passes."""
    verdict = check_all_gates(project_path, up_to_phase_id)
    if not verdict.passed:
        raise GateFailedError(
            verdict.message,
            reasons=verdict.failures,
            context={"project_path": str(project_path), "phase_id": up_to_phase_id},
        )


def complete_phase(
    project_path: Path | str,
    phase_id: str,
    artifacts: dict[str, str] | None = None,
    *,
    skip_artifact_check: bool = False,
) -> State:
    """Mark ``phase_id`` completed after re-verifying its artifacts.

    Parameters
    ----------
    project_path : Path | str
        Project directory.
    phase_id : str
        Phase to complete.
    artifacts : dict[str, str] | None, optional
        Artifact map recorded on the phase entry. It is informational only
        and never replaces the predicate.
    skip_artifact_check : bool, optional
        Bypass the predicate for pure bookkeeping phases.

    Returns
    -------
    State
        The updated state.

    Raises
    ------
    UnknownPhaseError
        If ``phase_id`` is not a known phase.
    StateNotFoundError, StateInvalidError
        If the state document is missing or invalid.
    ArtifactCheckFailedError
        If the predicate rejects the phase's artifacts.
    """
    if phase_id not in PHASE_IDS:
        raise UnknownPhaseError(f"Unknown phase: {phase_id}", context={"phase_id": phase_id})
    store = StateStore(project_path)
    state = store.require()
    if not skip_artifact_check:
        problem = check_artifacts(Path(project_path), phase_id, state.builder_type)
        if problem:
            raise ArtifactCheckFailedError(
                f"Cannot complete {phase_id}: artifact check failed: {problem}",
                context={"phase_id": phase_id, "project_path": str(project_path)},
            )
    return store.complete(phase_id, artifacts)


__all__ = [
    "AllGatesResult",
    "GateResult",
    "check_all_gates",
    "check_gate",
    "complete_phase",
    "require_gates",
]
