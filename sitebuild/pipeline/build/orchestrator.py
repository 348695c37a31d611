"""Sequential, resumable driver for the build plan.

The orchestrator walks an ordered list of :class:`PhaseStep`. For every
gated step it records ``in_progress`` before the phase function runs and
completes the phase through :func:`complete_phase` afterwards, so a phase
only counts as done once its artifacts pass the gate. The first failure
is persisted, announced together with the exact command that resumes the
build, and raised as :class:`PhaseExecutionFailedError`. There is no
phase-level retry; transient faults are retried inside phases.

Because progress is persisted after every step, a later process can pick
the build up again with :meth:`Orchestrator.resume`, which re-hydrates the
context from the project directory and starts at the first incomplete
gated step. Completed phases before that point are re-gated first, and a
phase whose artifacts have gone missing pulls the start back to itself.
"""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from sitebuild.config import CLI_PROGRAM_NAME
from sitebuild.exceptions import AppError, PhaseExecutionFailedError, UnknownPhaseError
from sitebuild.pipeline.gate import check_gate, complete_phase
from sitebuild.pipeline.state import State, StateStore
from sitebuild.setup.knowledge import KnowledgeStore
from sitebuild.setup.notifier import Notifier, safe_notify

from .context import BuildContext, load_context_from_project
from .phases import PhaseStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumePoint:
    """Where a resumed build starts.

    Attributes
    ----------
    step_id : str
        First step to run.
    reset_gate : str | None
        Gate to pass to ``reset_from`` before running, for explicit
        ``--from`` requests and rewinds over broken gates.
    """

    step_id: str
    reset_gate: str | None = None


def resume_command(project_path: Path | str, step_id: str, program: str = CLI_PROGRAM_NAME) -> str:
    """Return the shell command that resumes ``project_path`` at ``step_id``.

    Examples
    --------
    >>> resume_command("/tmp/acme co", "phase-4")
    "sitebuild resume '/tmp/acme co' --from phase-4"
    """
    return f"{program} resume {shlex.quote(str(project_path))} --from {step_id}"


class Orchestrator:
    """Run a build plan step by step, persisting progress as it goes.

    Parameters
    ----------
    steps : Sequence[PhaseStep]
        The plan, in run order.
    notifier : Notifier | None, optional
        Told about success and failure. Its errors never affect the run.
    knowledge : KnowledgeStore | None, optional
        Receives an error pattern when a phase fails.
    program : str, optional
        Program name used in the printed resume command.
    """

    def __init__(
        self,
        steps: Sequence[PhaseStep],
        *,
        notifier: Notifier | None = None,
        knowledge: KnowledgeStore | None = None,
        program: str = CLI_PROGRAM_NAME,
    ) -> None:
        ids = [step.step_id for step in steps]
        if len(set(ids)) != len(ids):
            raise ValueError("step ids must be unique")
        self.steps = list(steps)
        self.notifier = notifier
        self.knowledge = knowledge
        self.program = program

    def index_of(self, step_id: str) -> int:
        """Return the plan position of ``step_id``.

        Raises
        ------
        UnknownPhaseError
            If no step has that id.
        """
        for i, step in enumerate(self.steps):
            if step.step_id == step_id:
                return i
        raise UnknownPhaseError(f"Unknown phase: {step_id}", context={"phase_id": step_id})

    def _find_step(self, phase: str) -> int:
        for i, step in enumerate(self.steps):
            if step.step_id == phase:
                return i
        for i, step in enumerate(self.steps):
            if step.gate_id == phase:
                return i
        raise UnknownPhaseError(f"Unknown phase: {phase}", context={"phase_id": phase})

    def _rewind_over_ungated(self, index: int) -> int:
        while index > 0 and self.steps[index - 1].gate_id is None:
            index -= 1
        return index

    def determine_resume_point(self, state: State, from_phase: str | None = None) -> ResumePoint:
        """Decide where a resumed build starts.

        Parameters
        ----------
        state : State
            Validated build state.
        from_phase : str | None, optional
            Explicit step id or gate id to restart from.

        Returns
        -------
        ResumePoint
            Without ``from_phase``: the first gated step whose phase is not
            completed, moved back over any ungated sub-steps directly before
            it. When every phase is complete the last step is re-run. With
            ``from_phase``: that step, plus the gate to reset (its own, or
            that of the next gated step for an ungated sub-step).

        Raises
        ------
        UnknownPhaseError
            If ``from_phase`` names no step or gate in the plan.
        """
        if from_phase is not None:
            index = self._find_step(from_phase)
            reset_gate = next(
                (s.gate_id for s in self.steps[index:] if s.gate_id is not None), None
            )
            return ResumePoint(self.steps[index].step_id, reset_gate)

        for i, step in enumerate(self.steps):
            if step.gate_id is None:
                continue
            entry = state.phases.get(step.gate_id)
            if entry is None or entry.status != "completed":
                return ResumePoint(self.steps[self._rewind_over_ungated(i)].step_id)
        return ResumePoint(self.steps[-1].step_id)

    def verify_completed_gates(self, project_path: Path | str, point: ResumePoint) -> ResumePoint:
        """Re-check every gated step before ``point`` and rewind past broken ones.

        A phase recorded as completed can lose its artifacts after the fact.
        All gates before the resume point are evaluated, every failure is
        logged, and the build is rewound to the earliest failing step with
        its gate (and every later one) reset.

        Returns
        -------
        ResumePoint
            ``point`` unchanged when all earlier gates still pass.
        """
        stop = self.index_of(point.step_id)
        failing = []
        for step in self.steps[:stop]:
            if step.gate_id is None:
                continue
            verdict = check_gate(project_path, step.gate_id)
            if not verdict.passed:
                failing.append((step, verdict.reason or step.gate_id))
        if not failing:
            return point
        logger.warning(
            "Gate failures before resume point:\n"
            + "\n".join(f"  - {reason}" for _, reason in failing)
        )
        first = failing[0][0]
        index = self._rewind_over_ungated(self.index_of(first.step_id))
        return ResumePoint(self.steps[index].step_id, first.gate_id)

    def run(self, ctx: BuildContext, start_step: str | None = None) -> BuildContext:
        """Run the plan from ``start_step`` (default: the first step).

        Raises
        ------
        StateLockedError
            If another process is building the same project.
        PhaseExecutionFailedError
            On the first failing step.
        """
        start = self.index_of(start_step) if start_step else 0
        ctx.project_path.mkdir(parents=True, exist_ok=True)
        with StateStore(ctx.project_path).run_lock():
            return self._execute(ctx, start)

    def resume(self, project_path: Path | str, from_phase: str | None = None) -> BuildContext:
        """Continue a persisted build.

        Without ``from_phase`` the recorded resume point is re-checked with
        :meth:`verify_completed_gates` before anything runs.

        Raises
        ------
        StateNotFoundError, StateInvalidError
            If the project has no usable state document.
        UnknownPhaseError
            If ``from_phase`` is not part of the plan.
        PhaseExecutionFailedError
            On the first failing step.
        """
        store = StateStore(project_path)
        with store.run_lock():
            state = store.require()
            point = self.determine_resume_point(state, from_phase)
            if from_phase is None:
                point = self.verify_completed_gates(project_path, point)
            if point.reset_gate is not None:
                store.reset_from(point.reset_gate)
            ctx = load_context_from_project(
                project_path,
                state.metadata.model_dump(by_alias=True, exclude_none=True),
                builder_type=state.builder_type,
                build_id=state.build_id,
            )
            logger.info(f"Resuming {ctx.company_name} from {point.step_id}")
            return self._execute(ctx, self.index_of(point.step_id))

    def _execute(self, ctx: BuildContext, start: int) -> BuildContext:
        started = time.monotonic()
        for step in self.steps[start:]:
            self._run_step(step, ctx)
        elapsed = time.monotonic() - started
        logger.info(f"Build complete for {ctx.company_name} in {elapsed:.0f}s")
        safe_notify(
            self.notifier,
            "Build Complete",
            ctx.deploy_url or "Build complete",
            subtitle=f"{ctx.company_name} ({elapsed:.0f}s)",
        )
        return ctx

    def _run_step(self, step: PhaseStep, ctx: BuildContext) -> None:
        store = StateStore(ctx.project_path)
        logger.info(f"{step.step_id}: {step.label}")
        try:
            if step.gate_id is not None and store.exists():
                store.start(step.gate_id)
            step.fn(ctx)
            if step.gate_id is not None:
                complete_phase(ctx.project_path, step.gate_id, step.artifacts or None)
        except Exception as exc:
            self._fail(step, ctx, store, exc)

    def _fail(self, step: PhaseStep, ctx: BuildContext, store: StateStore, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        if step.gate_id is not None and store.exists():
            try:
                store.fail(step.gate_id, message)
            except AppError as record_error:
                logger.error(f"Could not record failure of {step.gate_id}: {record_error}")
        command = resume_command(ctx.project_path, step.step_id, self.program)
        logger.error(f"{step.step_id} ({step.label}) failed: {message}")
        logger.error(f"Resume with: {command}")
        if self.knowledge is not None:
            try:
                self.knowledge.log_error(
                    message,
                    {"phase": step.step_id, "company": ctx.company_name, "project": str(ctx.project_path)},
                )
            except OSError as log_error:
                logger.warning(f"Could not log error pattern: {log_error}")
        safe_notify(
            self.notifier,
            "Build Failed",
            f"Failed at {step.step_id}: {step.label}",
            subtitle=ctx.company_name,
            success=False,
        )
        raise PhaseExecutionFailedError(
            f"{step.step_id} ({step.label}) failed: {message}",
            phase_id=step.step_id,
            resume_command=command,
            context={"project_path": str(ctx.project_path), "gate_id": step.gate_id},
        ) from exc


__all__ = ["Orchestrator", "ResumePoint", "resume_command"]
