"""Batch progress manifest (``generated-images-manifest.json``).

The manifest is rewritten in full, atomically, each time a task settles, so
an interrupted batch leaves a consistent snapshot of genuine progress.
``stats.total`` always equals ``generated + skipped + failed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sitebuild.config import FAL_MODEL, FAL_QUEUE_URL, IMAGE_MANIFEST_FILENAME, IMAGE_PROMPTS_FILENAME
from sitebuild.pipeline.state.schema import utc_timestamp
from sitebuild.setup.fs_utils import atomic_write_json


@dataclass
class ExecutionStats:
    """Aggregate outcome of a batch.

    ``failed`` includes tasks skipped by the open circuit breaker;
    ``breaker_skipped`` counts those separately.
    """

    generated: int = 0
    skipped: int = 0
    failed: int = 0
    breaker_skipped: int = 0
    circuit_broken: bool = False
    files: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.generated + self.skipped + self.failed

    def as_dict(self) -> dict[str, int]:
        return {
            "generated": self.generated,
            "skipped": self.skipped,
            "failed": self.failed,
            "total": self.total,
        }


class ManifestWriter:
    """Write full manifest snapshots to a fixed path."""

    def __init__(
        self,
        path: Path,
        *,
        model: str = FAL_MODEL,
        endpoint: str = FAL_QUEUE_URL,
        prompt_source: str = IMAGE_PROMPTS_FILENAME,
    ) -> None:
        self.path = Path(path)
        self.model = model
        self.endpoint = endpoint
        self.prompt_source = prompt_source
        self.writes = 0

    @classmethod
    def for_project(cls, project_path: Path | str, **kwargs: Any) -> "ManifestWriter":
        return cls(Path(project_path) / IMAGE_MANIFEST_FILENAME, **kwargs)

    def snapshot(self, stats: ExecutionStats) -> dict[str, Any]:
        document: dict[str, Any] = {
            "model": self.model,
            "endpoint": self.endpoint,
            "generatedAt": utc_timestamp(),
            "promptSource": self.prompt_source,
            "stats": stats.as_dict(),
            "files": list(stats.files),
        }
        if stats.failures:
            document["failures"] = dict(stats.failures)
        return document

    def write(self, stats: ExecutionStats) -> None:
        atomic_write_json(self.path, self.snapshot(stats))
        self.writes += 1


__all__ = ["ExecutionStats", "ManifestWriter"]
