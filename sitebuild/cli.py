"""Command-line interface for the site build runner.

Subcommands
-----------
run
    Start a new build for a company.
resume
    Continue a persisted build, optionally from an explicit phase.
status
    Print every phase of a project's build state.
gate
    Inspect and drive the build state by hand (init, check, check-all,
    start, complete, fail, reset, metadata).
knowledge
    Summarise the cross-build knowledge store.

Every command returns exit code 0 on success and 1 on failure. Failures
are logged through the error taxonomy in :mod:`sitebuild.exceptions`; a
failed build also prints the command that resumes it.

Examples
--------
>>> # In shell
>>> sitebuild run --company "Acme Plumbing" --dest ~/Projects
>>> sitebuild resume ~/Projects/acme-plumbing --from phase-6b
>>> sitebuild gate check-all ~/Projects/acme-plumbing phase-8
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any

from sitebuild import __version__
from sitebuild.config import BUILDER_TYPES, CLI_PROGRAM_NAME, LOG_DIR, LOG_FILENAME_BUILD_RUNNER, LOG_FORMAT
from sitebuild.exceptions import AppError, PhaseExecutionFailedError
from sitebuild.pipeline.build import (
    BuildContext,
    BuildPhases,
    BuildSettings,
    Orchestrator,
    default_plan,
    slugify,
)
from sitebuild.pipeline.gate import check_all_gates, check_gate, complete_phase
from sitebuild.pipeline.state import StateStore
from sitebuild.setup.console_helpers import print_error_panel, rprint
from sitebuild.setup.knowledge import KnowledgeStore
from sitebuild.setup.notifier import create_notifier
from sitebuild.setup.status import print_status

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", enable_file: bool = True) -> None:
    """Install a console handler and, optionally, the runner log file.

    Parameters
    ----------
    level : str, optional
        Logging level name. Unknown names fall back to ``INFO``.
    enable_file : bool, optional
        Also append to ``logs/sitebuild.log``. A log directory that cannot
        be created only disables the file handler.
    """
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if enable_file:
        try:
            LOG_DIR.mkdir(exist_ok=True)
            handlers.insert(0, logging.FileHandler(LOG_DIR / LOG_FILENAME_BUILD_RUNNER, mode="a"))
        except OSError as exc:
            logging.getLogger(__name__).warning(f"File logging disabled: {exc}")
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog=CLI_PROGRAM_NAME, description="Resumable, gated website build runner."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=os.getenv("SITEBUILD_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Start a new build")
    run_p.add_argument("--company", required=True, help="Company name")
    run_p.add_argument("--record-id", help="Upstream record id")
    run_p.add_argument("--dest", type=Path, help="Parent directory for the project")
    run_p.add_argument("--builder", choices=BUILDER_TYPES, default="template")

    resume_p = sub.add_parser("resume", help="Resume a persisted build")
    resume_p.add_argument("project", type=Path)
    resume_p.add_argument("--from", dest="from_phase", help="Step or phase id to restart from")

    status_p = sub.add_parser("status", help="Show the build state")
    status_p.add_argument("project", type=Path)

    gate_p = sub.add_parser("gate", help="Inspect or update the build state")
    gate_sub = gate_p.add_subparsers(dest="gate_command", required=True)

    init_p = gate_sub.add_parser("init", help="Create a fresh state document")
    init_p.add_argument("project", type=Path)
    init_p.add_argument("--build-id", required=True)
    init_p.add_argument("--builder", choices=BUILDER_TYPES, default="template")
    init_p.add_argument("--company")

    for name, help_text in (
        ("check", "Check one phase gate"),
        ("check-all", "Check every gate up to and including a phase"),
        ("start", "Mark a phase in progress"),
    ):
        p = gate_sub.add_parser(name, help=help_text)
        p.add_argument("project", type=Path)
        p.add_argument("phase")

    complete_p = gate_sub.add_parser("complete", help="Complete a phase after checking artifacts")
    complete_p.add_argument("project", type=Path)
    complete_p.add_argument("phase")
    complete_p.add_argument("--artifacts", help="JSON object of artifact names to paths")
    complete_p.add_argument("--skip-artifact-check", action="store_true")

    fail_p = gate_sub.add_parser("fail", help="Mark a phase failed")
    fail_p.add_argument("project", type=Path)
    fail_p.add_argument("phase")
    fail_p.add_argument("--message", required=True)

    reset_p = gate_sub.add_parser("reset", help="Reset a phase to pending")
    reset_p.add_argument("project", type=Path)
    reset_p.add_argument("phase")
    reset_p.add_argument(
        "--cascade", action="store_true", help="Also reset every later phase"
    )

    meta_p = gate_sub.add_parser("metadata", help="Update state metadata")
    meta_p.add_argument("project", type=Path)
    meta_p.add_argument("pairs", nargs="+", metavar="KEY=VALUE")

    knowledge_p = sub.add_parser("knowledge", help="Cross-build knowledge")
    knowledge_sub = knowledge_p.add_subparsers(dest="knowledge_command", required=True)
    knowledge_sub.add_parser("stats", help="Summarise logged builds")

    return parser.parse_args(argv)


def build_orchestrator(settings: BuildSettings) -> Orchestrator:
    knowledge = KnowledgeStore(settings.knowledge_dir)
    return Orchestrator(
        default_plan(BuildPhases(settings, knowledge)),
        notifier=create_notifier(settings.notifier),
        knowledge=knowledge,
    )


def _cmd_run(args: argparse.Namespace) -> int:
    settings = BuildSettings.from_env()
    dest = args.dest.expanduser() if args.dest else settings.output_base_dir
    project_path = (dest / slugify(args.company)).resolve()
    ctx = BuildContext(
        project_path=project_path,
        company_name=args.company,
        record_id=args.record_id,
        builder_type=args.builder,
    )
    logger.info(f"Building {args.company} in {project_path}")
    build_orchestrator(settings).run(ctx)
    return 0


def _cmd_resume(args: argparse.Namespace) -> int:
    project_path = args.project.expanduser().resolve()
    settings = BuildSettings.from_env(project_path)
    build_orchestrator(settings).resume(project_path, args.from_phase)
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    return 0 if print_status(args.project).valid else 1


def _parse_pairs(pairs: list[str]) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        patch[key] = value or None
    return patch


def _cmd_gate(args: argparse.Namespace) -> int:
    store = StateStore(args.project)
    command = args.gate_command
    if command == "init":
        metadata = {"companyName": args.company} if args.company else None
        store.init(args.build_id, args.builder, metadata)
        rprint(f"Initialised {store.state_path}")
    elif command == "check":
        result = check_gate(args.project, args.phase)
        rprint("PASS" if result.passed else f"FAIL: {result.reason}")
        return 0 if result.passed else 1
    elif command == "check-all":
        result = check_all_gates(args.project, args.phase)
        rprint(f"All gates passed up to {args.phase}" if result.passed else result.message)
        return 0 if result.passed else 1
    elif command == "start":
        store.start(args.phase)
    elif command == "complete":
        artifacts = json.loads(args.artifacts) if args.artifacts else None
        if artifacts is not None and not isinstance(artifacts, dict):
            raise ValueError("--artifacts must be a JSON object")
        complete_phase(
            args.project, args.phase, artifacts, skip_artifact_check=args.skip_artifact_check
        )
    elif command == "fail":
        store.fail(args.phase, args.message)
    elif command == "reset":
        if args.cascade:
            store.reset_from(args.phase)
        else:
            store.reset(args.phase)
    elif command == "metadata":
        store.update_metadata(_parse_pairs(args.pairs))
    return 0


def _cmd_knowledge(args: argparse.Namespace) -> int:
    stats = KnowledgeStore(BuildSettings.from_env().knowledge_dir).build_stats()
    rprint("Build Stats:")
    rprint(f"  Total: {stats['total']}")
    rprint(f"  Success: {stats['success']}")
    rprint(f"  Failed: {stats['failed']}")
    return 0


COMMANDS = {
    "run": _cmd_run,
    "resume": _cmd_resume,
    "status": _cmd_status,
    "gate": _cmd_gate,
    "knowledge": _cmd_knowledge,
}


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``sitebuild`` and ``python -m sitebuild``."""
    args = parse_arguments(argv)
    configure_logging(args.log_level, enable_file=not os.getenv("DISABLE_FILE_LOGS"))
    try:
        return COMMANDS[args.command](args)
    except PhaseExecutionFailedError as exc:
        print_error_panel(exc.message, exc.resume_command)
        return 1
    except AppError as exc:
        logger.error(f"{exc.code}: {exc.message}")
        logger.debug(f"Error details: {exc.to_dict()}")
        return 1
    except ValueError as exc:
        logger.error(f"Invalid input: {exc}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


__all__ = ["configure_logging", "main", "parse_arguments"]
