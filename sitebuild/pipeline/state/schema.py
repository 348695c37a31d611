"""Schema for the per-project build state document.

The build state is a single JSON document (``build-state.json``) stored in
the project root. Keys are camelCase on disk and snake_case on the models.
Every read goes through these models, so a document that drifts from the
schema is reported as invalid rather than silently defaulted.

The document is a discriminated union over ``builderType``: template builds
carry a ``templateVersion`` in their metadata, custom builds do not.
Metadata field sets are closed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from sitebuild.config import PHASE_IDS
from sitebuild.exceptions import UnknownPhaseError

PhaseStatus = Literal["pending", "in_progress", "completed", "failed"]
BuilderType = Literal["template", "custom"]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


def is_valid_url(value: str) -> bool:
    """Return True if ``value`` parses as an absolute http(s) URL."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_timestamp(value: str) -> str:
    try:
        datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"not an ISO-8601 timestamp: {value!r}") from exc
    return value


def validate_phase_id(phase_id: str) -> str:
    """Return ``phase_id`` unchanged or raise ``UnknownPhaseError``."""
    if phase_id not in PHASE_IDS:
        raise UnknownPhaseError(
            f"Unknown phase: {phase_id}", context={"phase_id": phase_id}
        )
    return phase_id


def phase_index(phase_id: str) -> int:
    """Return the canonical position of ``phase_id``."""
    return PHASE_IDS.index(validate_phase_id(phase_id))


class PhaseEntry(BaseModel):
    """Recorded progress for one phase.

    ``completedAt`` and ``artifacts`` exist only on completed phases and
    ``error`` exists only on failed phases.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    status: PhaseStatus = "pending"
    completed_at: str | None = Field(default=None, alias="completedAt")
    artifacts: dict[str, str] | None = None
    error: str | None = None

    @field_validator("completed_at")
    @classmethod
    def _completed_at_is_timestamp(cls, value: str | None) -> str | None:
        return None if value is None else _check_timestamp(value)

    @model_validator(mode="after")
    def _fields_match_status(self) -> "PhaseEntry":
        completed = self.status == "completed"
        if completed != (self.completed_at is not None):
            raise ValueError("completedAt must be present exactly when completed")
        if self.artifacts is not None and not completed:
            raise ValueError("artifacts are only allowed on completed phases")
        if (self.status == "failed") != (self.error is not None):
            raise ValueError("error must be present exactly when failed")
        return self


class _MetadataBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    company_name: str | None = Field(default=None, alias="companyName")
    niche: str | None = None
    deploy_url: str | None = Field(default=None, alias="deployUrl")
    repo_url: str | None = Field(default=None, alias="repoUrl")

    @field_validator("deploy_url", "repo_url")
    @classmethod
    def _url_fields(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_url(value):
            raise ValueError(f"invalid URL: {value!r}")
        return value


class TemplateMetadata(_MetadataBase):
    """Metadata for builds cloned from the site template."""

    template_version: str | None = Field(default=None, alias="templateVersion")


class CustomMetadata(_MetadataBase):
    """Metadata for fully custom builds."""


class _BuildStateBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    build_id: str = Field(alias="buildId", min_length=1)
    started_at: str = Field(alias="startedAt")
    project_path: str = Field(alias="projectPath", min_length=1)
    phases: dict[str, PhaseEntry]

    @field_validator("started_at")
    @classmethod
    def _started_at_is_timestamp(cls, value: str) -> str:
        return _check_timestamp(value)

    @model_validator(mode="after")
    def _phase_set_is_fixed(self) -> "_BuildStateBase":
        missing = [pid for pid in PHASE_IDS if pid not in self.phases]
        extra = sorted(set(self.phases) - set(PHASE_IDS))
        if missing or extra:
            raise ValueError(f"phase set mismatch: missing={missing} unexpected={extra}")
        self.phases = {pid: self.phases[pid] for pid in PHASE_IDS}
        return self

    def to_document(self) -> dict[str, Any]:
        """Return the on-disk (camelCase) representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def first_incomplete_phase(self) -> str | None:
        """Return the first phase (canonical order) that is not completed."""
        for pid in PHASE_IDS:
            if self.phases[pid].status != "completed":
                return pid
        return None


class TemplateBuildState(_BuildStateBase):
    builder_type: Literal["template"] = Field(alias="builderType")
    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)


class CustomBuildState(_BuildStateBase):
    builder_type: Literal["custom"] = Field(alias="builderType")
    metadata: CustomMetadata = Field(default_factory=CustomMetadata)


BuildState = Annotated[
    Union[TemplateBuildState, CustomBuildState], Field(discriminator="builder_type")
]

_BUILD_STATE_ADAPTER: TypeAdapter[Any] = TypeAdapter(BuildState)

METADATA_MODELS: dict[str, type[_MetadataBase]] = {
    "template": TemplateMetadata,
    "custom": CustomMetadata,
}


def parse_build_state(document: Any) -> TemplateBuildState | CustomBuildState:
    """Validate an on-disk document and return the matching model.

    Raises
    ------
    pydantic.ValidationError
        If the document does not match the schema.
    """
    return _BUILD_STATE_ADAPTER.validate_python(document)


def normalize_metadata_keys(builder_type: str, patch: dict[str, Any]) -> dict[str, Any]:
    """Map snake_case metadata keys in ``patch`` to their on-disk aliases.

    Unknown keys pass through untouched so that schema validation rejects
    them.
    """
    fields = METADATA_MODELS[builder_type].model_fields
    out: dict[str, Any] = {}
    for key, value in patch.items():
        field = fields.get(key)
        out[field.alias if field is not None and field.alias else key] = value
    return out


def create_initial_state(
    project_path: str,
    build_id: str,
    builder_type: BuilderType = "template",
    metadata: dict[str, Any] | None = None,
) -> TemplateBuildState | CustomBuildState:
    """Build a fresh state with every phase pending.

    Examples
    --------
    >>> state = create_initial_state("/tmp/acme", "b-1")
    >>> state.phases["phase-0"].status
    'pending'
    """
    document = {
        "buildId": build_id,
        "builderType": builder_type,
        "startedAt": utc_timestamp(),
        "projectPath": project_path,
        "metadata": normalize_metadata_keys(builder_type, dict(metadata or {})),
        "phases": {pid: {"status": "pending"} for pid in PHASE_IDS},
    }
    return parse_build_state(document)


__all__ = [
    "BuildState",
    "CustomBuildState",
    "CustomMetadata",
    "PhaseEntry",
    "TemplateBuildState",
    "TemplateMetadata",
    "create_initial_state",
    "is_valid_url",
    "normalize_metadata_keys",
    "parse_build_state",
    "phase_index",
    "utc_timestamp",
    "validate_phase_id",
]
