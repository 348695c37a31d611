"""Bulk AI image generation for a build project.

This package owns the only concurrent part of the pipeline. Prompts are
read from the project's ``IMAGE-PROMPTS.md``, mapped to output files, and
handed to :class:`ResilientExecutor`, which runs them all at once against
the queued generation service through :class:`FalClient` with per-task
retries, a shared circuit breaker and an incrementally rewritten manifest.

Modules exported
----------------
FalConfig
    Environment/``.env`` backed service settings.
FalClient
    aiohttp client: submit, poll, download.
ResilientExecutor, CircuitBreaker, retry_async
    Batch execution primitives.
ManifestWriter, ExecutionStats
    Progress snapshots and aggregate counts.
generate_missing_images
    The image phase entry point.
"""

from __future__ import annotations

from .client import FalClient
from .config import FalConfig
from .executor import CircuitBreaker, ResilientExecutor, backoff_delay, is_satisfied, retry_async
from .manifest import ExecutionStats, ManifestWriter
from .prompts import (
    GenerationTask,
    PromptSpec,
    build_generation_tasks,
    load_image_prompts,
    parse_image_prompts,
    resolve_output_relpath,
)
from .runner import ensure_service_image_folders, generate_missing_images

__all__ = [
    "CircuitBreaker",
    "ExecutionStats",
    "FalClient",
    "FalConfig",
    "GenerationTask",
    "ManifestWriter",
    "PromptSpec",
    "ResilientExecutor",
    "backoff_delay",
    "build_generation_tasks",
    "ensure_service_image_folders",
    "generate_missing_images",
    "is_satisfied",
    "load_image_prompts",
    "parse_image_prompts",
    "resolve_output_relpath",
    "retry_async",
]
