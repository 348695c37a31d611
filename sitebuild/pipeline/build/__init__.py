"""Build phases, step runner and the resumable orchestrator."""

from __future__ import annotations

from .context import BuildContext, load_context_from_project
from .orchestrator import Orchestrator, ResumePoint, resume_command
from .phases import BuildPhases, PhaseStep, default_plan, merge_qa_reports, parse_deploy_output
from .settings import BuildSettings, load_step_commands
from .steps import expand_placeholders, run_command, slugify, validate_env_vars

__all__ = [
    "BuildContext",
    "BuildPhases",
    "BuildSettings",
    "Orchestrator",
    "PhaseStep",
    "ResumePoint",
    "default_plan",
    "expand_placeholders",
    "load_context_from_project",
    "load_step_commands",
    "merge_qa_reports",
    "parse_deploy_output",
    "resume_command",
    "run_command",
    "slugify",
    "validate_env_vars",
]
