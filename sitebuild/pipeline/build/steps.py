"""Helpers for running external step commands.

Most build phases delegate their real work to external tools (data
fetchers, scaffolders, ``npm run build``, deploy CLIs). Those tools are
configured per step as argv lists; this module expands placeholders in
them, runs them with a timeout and maps process failures onto the
project's error taxonomy.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from sitebuild.config import DEFAULT_STEP_TIMEOUT_SECONDS, REQUIRED_ENV_VARS
from sitebuild.exceptions import ConfigurationError, ExternalServiceError, TimeoutExceededError

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Return a lowercase, hyphen-separated directory name.

    Examples
    --------
    >>> slugify("Joe's Plumbing & Co.")
    'joe-s-plumbing-co'
    """
    return _SLUG_RE.sub("-", text.lower()).strip("-")


def validate_env_vars(required: Iterable[str] = REQUIRED_ENV_VARS) -> list[str]:
    """Return the names in ``required`` that are unset or empty."""
    return [name for name in required if not os.environ.get(name)]


def expand_placeholders(argv: Sequence[str], values: Mapping[str, str]) -> list[str]:
    """Substitute ``{name}`` placeholders in every argument.

    Unknown placeholders are left untouched so literal braces in arguments
    survive.

    Examples
    --------
    >>> expand_placeholders(["fetch", "--out", "{project}"], {"project": "/p"})
    ['fetch', '--out', '/p']
    """
    expanded = []
    for arg in argv:
        for name, value in values.items():
            arg = arg.replace("{" + name + "}", value)
        expanded.append(arg)
    return expanded


def run_command(
    argv: Sequence[str],
    *,
    cwd: Path | str | None = None,
    timeout: float = DEFAULT_STEP_TIMEOUT_SECONDS,
    env: Mapping[str, str] | None = None,
    capture_output: bool = False,
) -> str:
    """Run ``argv`` to completion and return its stdout.

    Parameters
    ----------
    argv : Sequence[str]
        Command and arguments. No shell is involved.
    cwd : Path | str | None, optional
        Working directory.
    timeout : float, optional
        Seconds before the process is killed.
    env : Mapping[str, str] | None, optional
        Extra environment variables layered over ``os.environ``.
    capture_output : bool, optional
        Capture stdout instead of inheriting the terminal. The captured text
        is returned; otherwise an empty string is returned.

    Raises
    ------
    ConfigurationError
        If ``argv`` is empty or the executable cannot be found.
    TimeoutExceededError
        If the process outlives ``timeout``.
    ExternalServiceError
        If the process exits non-zero.
    """
    if not argv:
        raise ConfigurationError("Empty step command")
    merged_env = {**os.environ, **(env or {})}
    logger.info(f"Running: {' '.join(argv)}")
    try:
        completed = subprocess.run(
            list(argv),
            cwd=cwd,
            env=merged_env,
            timeout=timeout,
            check=True,
            text=True,
            stdout=subprocess.PIPE if capture_output else None,
        )
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Command not found: {argv[0]}", context={"argv": list(argv)}
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise TimeoutExceededError(
            f"{argv[0]} timed out after {timeout}s", context={"argv": list(argv)}
        ) from exc
    except subprocess.CalledProcessError as exc:
        raise ExternalServiceError(
            f"{argv[0]} exited with status {exc.returncode}",
            context={"argv": list(argv), "returncode": exc.returncode},
            transient=False,
        ) from exc
    return completed.stdout or ""


__all__ = ["expand_placeholders", "run_command", "slugify", "validate_env_vars"]
