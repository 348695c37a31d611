"""Configuration loader for the image generation client.

``FalConfig`` reads the generation service key and the tuning knobs for
polling, pacing and retries from the environment, after loading an
optional ``.env`` file from the project directory (and the runner's own
root). Values are validated once at construction time.

Examples
--------
>>> import os
>>> os.environ["FAL_KEY"] = "unit-test"
>>> cfg = FalConfig()
>>> cfg.max_polls
30
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

import sitebuild.config as _project_config
from sitebuild.config import (
    CIRCUIT_BREAKER_THRESHOLD,
    EXECUTOR_BACKOFF_BASE_SECONDS,
    EXECUTOR_BACKOFF_JITTER_SECONDS,
    EXECUTOR_MAX_ATTEMPTS,
    FAL_MAX_POLLS,
    FAL_MODEL,
    FAL_POLL_INTERVAL_SECONDS,
    FAL_QUEUE_URL,
    FAL_REQUEST_TIMEOUT_SECONDS,
    FAL_TARGET_RPM,
)
from sitebuild.exceptions import ConfigurationError


class FalConfig:
    r"""Validated settings for the queued image generation service.

    Attributes
    ----------
    api_key : str
        Service key sent as ``Authorization: Key <api_key>``.
    model : str
        Model identifier recorded in the generation manifest.
    queue_url : str
        Queue submission endpoint.
    max_polls : int
        Status polls before a queued request is abandoned.
    poll_interval : float
        Seconds between status polls.
    request_timeout : int
        Total timeout (seconds) for each HTTP request.
    target_rpm : int
        Submission pacing for ``aiolimiter``.
    max_attempts : int
        Attempts per image, including the first.
    backoff_base : float
        Base delay (seconds) of the exponential backoff.
    backoff_jitter : float
        Upper bound (seconds) of the random jitter added to each delay.
    breaker_threshold : int
        Consecutive failures that trip the circuit breaker.
    """

    def __init__(self, project_path: Path | str | None = None) -> None:
        """Load settings from ``.env`` files and the process environment.

        Parameters
        ----------
        project_path : Path | str | None, optional
            Build project whose ``.env`` is loaded first, when present.

        Raises
        ------
        ConfigurationError
            If ``FAL_KEY`` is missing or a numeric setting is malformed.
        """
        env_files = [Path(_project_config.PROJECT_ROOT) / ".env"]
        if project_path is not None:
            env_files.insert(0, Path(project_path) / ".env")
        for env_path in env_files:
            if env_path.exists():
                # Values already in the environment win over file content.
                load_dotenv(env_path, override=False)

        self.api_key: str = os.getenv("FAL_KEY", "").strip()
        if not self.api_key:
            raise ConfigurationError(
                "FAL_KEY environment variable is required for image generation"
            )
        self.model: str = FAL_MODEL
        self.queue_url: str = os.getenv("FAL_QUEUE_URL", FAL_QUEUE_URL).rstrip("/")
        try:
            self.max_polls = int(os.getenv("FAL_MAX_POLLS", FAL_MAX_POLLS))
            self.poll_interval = float(
                os.getenv("FAL_POLL_INTERVAL", FAL_POLL_INTERVAL_SECONDS)
            )
            self.request_timeout = int(
                os.getenv("FAL_REQUEST_TIMEOUT", FAL_REQUEST_TIMEOUT_SECONDS)
            )
            self.target_rpm = int(os.getenv("FAL_TARGET_RPM", FAL_TARGET_RPM))
            self.max_attempts = int(os.getenv("FAL_MAX_ATTEMPTS", EXECUTOR_MAX_ATTEMPTS))
            self.backoff_base = float(
                os.getenv("FAL_BACKOFF_BASE", EXECUTOR_BACKOFF_BASE_SECONDS)
            )
            self.backoff_jitter = float(
                os.getenv("FAL_BACKOFF_JITTER", EXECUTOR_BACKOFF_JITTER_SECONDS)
            )
        except ValueError as exc:
            raise ConfigurationError(f"Malformed image generation setting: {exc}") from exc
        self.breaker_threshold: int = CIRCUIT_BREAKER_THRESHOLD
        if self.max_polls < 1 or self.max_attempts < 1:
            raise ConfigurationError("FAL_MAX_POLLS and FAL_MAX_ATTEMPTS must be >= 1")
