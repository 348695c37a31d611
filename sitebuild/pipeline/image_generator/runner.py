"""Image generation phase: prompts in, images and manifest out."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

import aiohttp

from sitebuild.config import (
    CIRCUIT_BREAKER_THRESHOLD,
    EXECUTOR_BACKOFF_BASE_SECONDS,
    EXECUTOR_BACKOFF_JITTER_SECONDS,
    EXECUTOR_MAX_ATTEMPTS,
    FAL_MODEL,
    FAL_QUEUE_URL,
    IMAGES_DIR_RELPATH,
    SERVICE_IMAGE_FOLDERS,
)

from .client import FalClient
from .config import FalConfig
from .executor import ResilientExecutor
from .manifest import ExecutionStats, ManifestWriter
from .prompts import build_generation_tasks, load_image_prompts

logger = logging.getLogger(__name__)


def ensure_service_image_folders(project_path: Path | str, services: list[dict[str, Any]]) -> None:
    """Create the per-service placement folders the site template expects.

    Every service gets ``card``, ``hero``, ``content`` and ``gallery``
    folders. Folders left behind by the template's default services are
    removed, unless no service has a slug at all.
    """
    base = Path(project_path) / IMAGES_DIR_RELPATH / "services"
    active = {service["slug"] for service in services if service.get("slug")}
    for slug in active:
        for placement in SERVICE_IMAGE_FOLDERS:
            (base / slug / placement).mkdir(parents=True, exist_ok=True)
    if not active or not base.is_dir():
        return
    for folder in base.iterdir():
        if folder.is_dir() and folder.name not in active:
            shutil.rmtree(folder)
            logger.info(f"Removed template service folder: services/{folder.name}/")


async def generate_missing_images(
    project_path: Path | str,
    services: list[dict[str, Any]],
    *,
    config: Any = None,
    client: FalClient | None = None,
) -> ExecutionStats:
    """Generate every image named in ``IMAGE-PROMPTS.md`` that is missing.

    Parameters
    ----------
    project_path : Path | str
        Build project directory.
    services : list[dict[str, Any]]
        Ordered services (each with a ``slug``); ``service-N`` prompt slots
        refer to them by position.
    config : Any, optional
        Settings object; defaults to :class:`FalConfig` for the project.
    client : FalClient | None, optional
        Pre-built client, mainly for tests.

    Returns
    -------
    ExecutionStats
        Batch outcome. Failures are reported, not raised.

    Raises
    ------
    FileNotFoundError
        If the project has no ``IMAGE-PROMPTS.md``.
    ConfigurationError
        If no ``FAL_KEY`` is configured.
    """
    project = Path(project_path)
    prompts = load_image_prompts(project)
    cfg = config if config is not None else FalConfig(project)
    fal = client or FalClient(cfg)
    ensure_service_image_folders(project, services)
    tasks = build_generation_tasks(project, prompts, services)
    manifest = ManifestWriter.for_project(
        project,
        model=getattr(cfg, "model", FAL_MODEL),
        endpoint=getattr(cfg, "queue_url", FAL_QUEUE_URL),
    )
    async with aiohttp.ClientSession() as session:
        executor = ResilientExecutor(
            lambda task: fal.generate(session, task),
            manifest,
            max_attempts=getattr(cfg, "max_attempts", EXECUTOR_MAX_ATTEMPTS),
            backoff_base=getattr(cfg, "backoff_base", EXECUTOR_BACKOFF_BASE_SECONDS),
            backoff_jitter=getattr(cfg, "backoff_jitter", EXECUTOR_BACKOFF_JITTER_SECONDS),
            breaker_threshold=getattr(cfg, "breaker_threshold", CIRCUIT_BREAKER_THRESHOLD),
        )
        return await executor.run(tasks)


__all__ = ["ensure_service_image_folders", "generate_missing_images"]
