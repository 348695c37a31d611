"""Runtime settings for the build orchestrator.

``BuildSettings`` gathers the external step commands and timeouts from the
environment after loading optional ``.env`` files. Step commands live in a
JSON file named by ``SITEBUILD_STEPS_FILE`` that maps a step id to an argv
list, for example::

    {
      "phase-1": ["node", "scripts/fetch-airtable.mjs", "--out", "{project}"],
      "phase-7": ["npm", "run", "build"]
    }

``{project}``, ``{company}``, ``{slug}`` and ``{record_id}`` placeholders
are expanded when a step runs.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

import sitebuild.config as _project_config
from sitebuild.config import (
    BUILD_STEP_TIMEOUT_SECONDS,
    DEFAULT_KNOWLEDGE_DIR,
    DEFAULT_OUTPUT_BASE_DIR,
    DEFAULT_STEP_TIMEOUT_SECONDS,
)
from sitebuild.exceptions import ConfigurationError

NOTIFIER_KINDS: tuple[str, ...] = ("log", "macos", "none")


def _get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {value}")
    return value


def load_step_commands(path: Path) -> dict[str, list[str]]:
    """Read and validate a step command file.

    Raises
    ------
    ConfigurationError
        If the file is missing, not JSON, or not a mapping of step id to a
        non-empty list of strings.
    """
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Steps file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read steps file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Steps file {path} must contain a JSON object")
    commands: dict[str, list[str]] = {}
    for step_id, argv in data.items():
        if (
            not isinstance(argv, list)
            or not argv
            or not all(isinstance(arg, str) for arg in argv)
        ):
            raise ConfigurationError(
                f"Step {step_id!r} in {path} must be a non-empty list of strings"
            )
        commands[str(step_id)] = list(argv)
    return commands


@dataclass(frozen=True)
class BuildSettings:
    """Validated orchestrator settings.

    Attributes
    ----------
    step_commands : dict[str, list[str]]
        argv per step id.
    step_timeout : int
        Seconds allowed for an ordinary step command.
    build_timeout : int
        Seconds allowed for the site build steps.
    knowledge_dir : Path
        Root of the cross-build knowledge store.
    notifier : str
        One of ``"log"``, ``"macos"`` or ``"none"``.
    output_base_dir : Path
        Parent directory for new projects.
    """

    step_commands: dict[str, list[str]] = field(default_factory=dict)
    step_timeout: int = DEFAULT_STEP_TIMEOUT_SECONDS
    build_timeout: int = BUILD_STEP_TIMEOUT_SECONDS
    knowledge_dir: Path = DEFAULT_KNOWLEDGE_DIR
    notifier: str = "log"
    output_base_dir: Path = DEFAULT_OUTPUT_BASE_DIR

    @classmethod
    def from_env(cls, project_path: Path | str | None = None) -> "BuildSettings":
        """Build settings from ``.env`` files and the process environment.

        Raises
        ------
        ConfigurationError
            If a value is malformed or the steps file is unreadable.
        """
        env_files = [Path(_project_config.PROJECT_ROOT) / ".env"]
        if project_path is not None:
            env_files.insert(0, Path(project_path) / ".env")
        for env_path in env_files:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        steps_file = os.getenv("SITEBUILD_STEPS_FILE", "").strip()
        commands = load_step_commands(Path(steps_file).expanduser()) if steps_file else {}

        notifier = os.getenv("SITEBUILD_NOTIFIER", "log").strip().lower() or "log"
        if notifier not in NOTIFIER_KINDS:
            raise ConfigurationError(
                f"SITEBUILD_NOTIFIER must be one of {', '.join(NOTIFIER_KINDS)}, got {notifier!r}"
            )
        knowledge_dir = os.getenv("SITEBUILD_KNOWLEDGE_DIR", "").strip()
        output_dir = os.getenv("SITEBUILD_OUTPUT_DIR", "").strip()
        return cls(
            step_commands=commands,
            step_timeout=_get_env_int("SITEBUILD_STEP_TIMEOUT", DEFAULT_STEP_TIMEOUT_SECONDS),
            build_timeout=_get_env_int("SITEBUILD_BUILD_TIMEOUT", BUILD_STEP_TIMEOUT_SECONDS),
            knowledge_dir=Path(knowledge_dir).expanduser() if knowledge_dir else DEFAULT_KNOWLEDGE_DIR,
            notifier=notifier,
            output_base_dir=Path(output_dir).expanduser() if output_dir else DEFAULT_OUTPUT_BASE_DIR,
        )

    def command_for(self, step_id: str) -> list[str] | None:
        argv = self.step_commands.get(step_id)
        return list(argv) if argv else None


__all__ = ["BuildSettings", "NOTIFIER_KINDS", "load_step_commands"]
