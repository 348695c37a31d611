"""Cross-build knowledge store.

A small directory of JSON files that outlives individual projects:

- ``builds/<buildId>.json``: one record per finished or failed build;
- ``errors/error-patterns.json``: the most recent phase failures;
- ``successes/design-decisions.json``: design directions chosen per niche.

Later builds read these to summarise outcomes and to reuse design choices
that worked for the same niche. Every write is atomic.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sitebuild.config import (
    DEFAULT_KNOWLEDGE_DIR,
    KNOWLEDGE_DESIGN_DECISION_LIMIT,
    KNOWLEDGE_ERROR_LIMIT,
)
from sitebuild.pipeline.state.schema import utc_timestamp
from sitebuild.setup.fs_utils import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Append-mostly JSON records under a root directory.

    Parameters
    ----------
    root : Path | str, optional
        Store location. Defaults to ``~/.sitebuild/knowledge``.
    """

    def __init__(self, root: Path | str = DEFAULT_KNOWLEDGE_DIR) -> None:
        self.root = Path(root)

    @property
    def builds_dir(self) -> Path:
        return self.root / "builds"

    @property
    def error_patterns_path(self) -> Path:
        return self.root / "errors" / "error-patterns.json"

    @property
    def design_decisions_path(self) -> Path:
        return self.root / "successes" / "design-decisions.json"

    def _read_list(self, path: Path) -> list[Any]:
        # A corrupt history file is restarted rather than blocking the build.
        if not path.is_file():
            return []
        try:
            data = read_json(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable knowledge file {path}: {exc}")
            return []
        return data if isinstance(data, list) else []

    def _append_capped(self, path: Path, entry: dict[str, Any], limit: int) -> list[Any]:
        entries = self._read_list(path)
        entries.append(entry)
        entries = entries[-limit:]
        atomic_write_json(path, entries)
        return entries

    def log_build(self, state: Any, status: str, qa_results: Any = None) -> Path:
        """Record the outcome of a build.

        Parameters
        ----------
        state : BuildState
            Validated state of the finished (or failed) build.
        status : str
            ``"success"`` or a failure label.
        qa_results : Any, optional
            Merged QA results to keep alongside the record.

        Returns
        -------
        Path
            The written record.
        """
        document = state.to_document()
        metadata = document.get("metadata") or {}
        record = {
            "buildId": document["buildId"],
            "builderType": document["builderType"],
            "companyName": metadata.get("companyName") or "unknown",
            "niche": metadata.get("niche") or "unknown",
            "startedAt": document["startedAt"],
            "completedAt": utc_timestamp(),
            "status": status,
            "phases": document["phases"],
            "qaResults": qa_results,
            "deployUrl": metadata.get("deployUrl"),
            "repoUrl": metadata.get("repoUrl"),
        }
        path = self.builds_dir / f"{document['buildId']}.json"
        atomic_write_json(path, record)
        logger.info(f"Build logged: {path}")
        return path

    def log_error(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Append an error pattern, keeping the most recent entries only."""
        self._append_capped(
            self.error_patterns_path,
            {"timestamp": utc_timestamp(), "error": message, "context": context or {}},
            KNOWLEDGE_ERROR_LIMIT,
        )

    def log_design_decision(
        self,
        niche: str | None,
        direction: str | None,
        fonts: dict[str, Any] | None = None,
        colors: dict[str, Any] | None = None,
    ) -> None:
        """Append a design decision for ``niche``, keeping the most recent ones."""
        self._append_capped(
            self.design_decisions_path,
            {
                "timestamp": utc_timestamp(),
                "niche": niche or "unknown",
                "direction": direction or "unknown",
                "fonts": fonts or {},
                "colors": colors or {},
            },
            KNOWLEDGE_DESIGN_DECISION_LIMIT,
        )
        logger.info(f"Design decision logged for niche: {niche or 'unknown'}")

    def error_patterns(self) -> list[dict[str, Any]]:
        return self._read_list(self.error_patterns_path)

    def design_decisions(self, niche: str | None = None) -> list[dict[str, Any]]:
        """Return logged design decisions, optionally only those for ``niche``."""
        decisions = self._read_list(self.design_decisions_path)
        if niche is None:
            return decisions
        return [d for d in decisions if isinstance(d, dict) and d.get("niche") == niche]

    def build_stats(self) -> dict[str, Any]:
        """Summarise every logged build.

        Returns
        -------
        dict[str, Any]
            ``total``, ``success`` and ``failed`` counts plus the parsed
            ``builds``. Unreadable records are skipped.
        """
        builds = []
        if self.builds_dir.is_dir():
            for path in sorted(self.builds_dir.glob("*.json")):
                try:
                    record = read_json(path)
                except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
                    logger.warning(f"Skipping unreadable build record {path}: {exc}")
                    continue
                if isinstance(record, dict):
                    builds.append(record)
        success = sum(1 for b in builds if b.get("status") == "success")
        return {
            "total": len(builds),
            "success": success,
            "failed": len(builds) - success,
            "builds": builds,
        }


__all__ = ["KnowledgeStore"]
