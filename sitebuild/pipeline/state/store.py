"""Durable persistence for the per-project build state document.

``StateStore`` owns ``build-state.json`` inside one project directory. Reads
are side-effect free and report a missing document and an invalid document
as distinct conditions. Every mutation is a whole-document
read-modify-write: it runs under an exclusive advisory lock on a sidecar
file, re-validates the result against the schema and replaces the document
atomically, so a crash leaves either the previous or the new version.

A second, non-blocking lock (``run_lock``) is held by the orchestrator for
the duration of a run so that two build processes never drive the same
project concurrently.

Examples
--------
>>> from pathlib import Path
>>> store = StateStore(Path("/tmp/acme"))
>>> store.init("b-1", "template", {"companyName": "Acme"})  # doctest: +SKIP
>>> store.start("phase-0")  # doctest: +SKIP
>>> store.load().state.phases["phase-0"].status  # doctest: +SKIP
'in_progress'
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sitebuild.config import PHASE_IDS, RUN_LOCK_FILENAME, STATE_FILENAME
from sitebuild.exceptions import StateInvalidError, StateNotFoundError
from sitebuild.setup.fs_utils import atomic_write_json, locked_file, try_lock

from .schema import (
    BuilderType,
    CustomBuildState,
    TemplateBuildState,
    create_initial_state,
    normalize_metadata_keys,
    parse_build_state,
    phase_index,
    utc_timestamp,
    validate_phase_id,
)

logger = logging.getLogger(__name__)

State = TemplateBuildState | CustomBuildState


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into a single ``loc: msg`` line list."""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


@dataclass(frozen=True)
class LoadResult:
    """Outcome of reading the state document.

    Attributes
    ----------
    exists : bool
        Whether ``build-state.json`` is present.
    valid : bool
        Whether the document parsed and passed schema validation.
    state : State | None
        The parsed state when valid.
    error : str | None
        Human-readable reason when not valid.
    """

    exists: bool
    valid: bool
    state: State | None = None
    error: str | None = None


class StateStore:
    """Read and mutate ``build-state.json`` for a single project directory."""

    def __init__(self, project_path: Path | str) -> None:
        self.project_path = Path(project_path)
        self.state_path = self.project_path / STATE_FILENAME

    def exists(self) -> bool:
        return self.state_path.is_file()

    def load(self) -> LoadResult:
        """Read and validate the state document without raising.

        Returns
        -------
        LoadResult
            ``exists=False`` when the file is absent; ``valid=False`` with an
            ``error`` when it is unreadable, not JSON or off-schema.
        """
        if not self.state_path.is_file():
            return LoadResult(
                exists=False,
                valid=False,
                error=f"{STATE_FILENAME} not found in {self.project_path}",
            )
        try:
            document = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return LoadResult(
                exists=True, valid=False, error=f"{STATE_FILENAME} is not valid JSON: {exc}"
            )
        try:
            state = parse_build_state(document)
        except ValidationError as exc:
            return LoadResult(
                exists=True,
                valid=False,
                error=f"Invalid {STATE_FILENAME}: {format_validation_error(exc)}",
            )
        return LoadResult(exists=True, valid=True, state=state)

    def require(self) -> State:
        """Return the validated state or raise.

        Raises
        ------
        StateNotFoundError
            If the document does not exist.
        StateInvalidError
            If the document is present but invalid.
        """
        result = self.load()
        if not result.exists:
            raise StateNotFoundError(
                result.error or "state not found",
                context={"project_path": str(self.project_path)},
            )
        if not result.valid or result.state is None:
            raise StateInvalidError(
                result.error or "state invalid",
                context={"project_path": str(self.project_path)},
            )
        return result.state

    def init(
        self,
        build_id: str,
        builder_type: BuilderType = "template",
        metadata: dict[str, Any] | None = None,
    ) -> State:
        """Write a fresh document with every phase pending.

        Any existing document is overwritten. The project directory is
        created when missing.
        """
        try:
            state = create_initial_state(
                str(self.project_path), build_id, builder_type, metadata
            )
        except ValidationError as exc:
            raise StateInvalidError(
                f"Cannot initialise {STATE_FILENAME}: {format_validation_error(exc)}",
                context={"project_path": str(self.project_path)},
            ) from exc
        self.project_path.mkdir(parents=True, exist_ok=True)
        with locked_file(self.state_path):
            atomic_write_json(self.state_path, state.to_document())
        logger.info(f"Initialised build state {build_id} in {self.project_path}")
        return state

    def _mutate(self, apply: Callable[[dict[str, Any]], None]) -> State:
        # No lock sidecar (or project directory) for a project without state.
        self.require()
        with locked_file(self.state_path):
            document = self.require().to_document()
            apply(document)
            try:
                state = parse_build_state(document)
            except ValidationError as exc:
                raise StateInvalidError(
                    f"Refusing to write invalid {STATE_FILENAME}: "
                    f"{format_validation_error(exc)}",
                    context={"project_path": str(self.project_path)},
                ) from exc
            atomic_write_json(self.state_path, state.to_document())
        return state

    def _set_phase(self, phase_id: str, entry: dict[str, Any]) -> State:
        validate_phase_id(phase_id)

        def apply(document: dict[str, Any]) -> None:
            document["phases"][phase_id] = entry

        return self._mutate(apply)

    def start(self, phase_id: str) -> State:
        """Mark ``phase_id`` as in progress."""
        state = self._set_phase(phase_id, {"status": "in_progress"})
        logger.info(f"{phase_id} started")
        return state

    def complete(self, phase_id: str, artifacts: dict[str, str] | None = None) -> State:
        """Mark ``phase_id`` as completed with a timestamp and artifact map.

        This is the raw bookkeeping transition; callers that want the
        artifact predicate re-checked go through
        :func:`sitebuild.pipeline.gate.complete_phase`.
        """
        state = self._set_phase(
            phase_id,
            {
                "status": "completed",
                "completedAt": utc_timestamp(),
                "artifacts": {str(k): str(v) for k, v in (artifacts or {}).items()},
            },
        )
        logger.info(f"{phase_id} completed")
        return state

    def fail(self, phase_id: str, message: str) -> State:
        """Mark ``phase_id`` as failed with ``message``."""
        state = self._set_phase(
            phase_id, {"status": "failed", "error": str(message) or "unknown error"}
        )
        logger.warning(f"{phase_id} failed: {message}")
        return state

    def reset(self, phase_id: str) -> State:
        """Set exactly ``phase_id`` back to pending."""
        return self._set_phase(phase_id, {"status": "pending"})

    def reset_from(self, phase_id: str) -> list[str]:
        """Set ``phase_id`` and every later phase back to pending.

        Returns
        -------
        list[str]
            The reset phase ids in canonical order.
        """
        start = phase_index(phase_id)
        reset_ids = list(PHASE_IDS[start:])

        def apply(document: dict[str, Any]) -> None:
            for pid in reset_ids:
                document["phases"][pid] = {"status": "pending"}

        self._mutate(apply)
        logger.info(f"Reset phases: {', '.join(reset_ids)}")
        return reset_ids

    def update_metadata(self, patch: dict[str, Any]) -> State:
        """Merge ``patch`` into the metadata object and re-validate.

        Keys may be given in snake_case or their camelCase on-disk form. A
        ``None`` value removes the key. Unknown keys and malformed URLs
        raise ``StateInvalidError`` and leave the document untouched.
        """

        def apply(document: dict[str, Any]) -> None:
            merged = dict(document.get("metadata") or {})
            for key, value in normalize_metadata_keys(
                document["builderType"], patch
            ).items():
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
            document["metadata"] = merged

        return self._mutate(apply)

    @contextlib.contextmanager
    def run_lock(self) -> Iterator[None]:
        """Hold the project-wide run lock.

        Raises
        ------
        StateLockedError
            If another process is already running a build for this project.
        """
        with try_lock(self.project_path / RUN_LOCK_FILENAME):
            yield


__all__ = ["LoadResult", "State", "StateStore", "format_validation_error"]
