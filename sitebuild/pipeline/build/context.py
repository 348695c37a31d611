"""Mutable context threaded through every build phase.

``BuildContext`` is created by the CLI for a fresh run and re-hydrated from
the project directory on resume, so phases never need to know whether they
are running for the first time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sitebuild.config import (
    CLIENT_CONFIG_FILENAME,
    CONTENT_GENERATED_FILENAME,
    DESIGN_TOKENS_FILENAME,
)
from sitebuild.exceptions import DataValidationError
from sitebuild.setup.fs_utils import read_json

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """Everything a phase function may read or update.

    Attributes
    ----------
    project_path : Path
        Build project directory.
    company_name : str
        Client business name, used for the directory slug and notifications.
    record_id : str | None
        Upstream CRM record id, when known.
    builder_type : str
        ``"template"`` or ``"custom"``.
    client_config, design_tokens, content_generated : dict | None
        Phase outputs loaded into memory once their files exist.
    deploy_url, repo_url : str | None
        Set by the deploy phases.
    build_id : str | None
        Identifier of the build state document.
    """

    project_path: Path
    company_name: str
    record_id: str | None = None
    builder_type: str = "template"
    client_config: dict[str, Any] | None = None
    design_tokens: dict[str, Any] | None = None
    content_generated: dict[str, Any] | None = None
    deploy_url: str | None = None
    repo_url: str | None = None
    build_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.project_path = Path(self.project_path)

    @property
    def services(self) -> list[dict[str, Any]]:
        """Ordered service entries, preferring generated content."""
        for source in (self.content_generated, self.client_config):
            services = (source or {}).get("services")
            if isinstance(services, list) and services:
                return [s for s in services if isinstance(s, dict)]
        return []

    @property
    def niche(self) -> str | None:
        value = (self.client_config or {}).get("niche")
        return value if isinstance(value, str) and value else None


def _load_optional_json(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = read_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DataValidationError(
            f"Could not read {path.name}: {exc}", context={"path": str(path)}
        ) from exc
    if not isinstance(data, dict):
        raise DataValidationError(
            f"{path.name} must contain a JSON object", context={"path": str(path)}
        )
    return data


def load_context_from_project(
    project_path: Path | str,
    metadata: dict[str, Any] | None = None,
    *,
    builder_type: str = "template",
    build_id: str | None = None,
) -> BuildContext:
    """Rebuild a :class:`BuildContext` from files already in the project.

    Parameters
    ----------
    project_path : Path | str
        Project directory.
    metadata : dict[str, Any] | None, optional
        State metadata in on-disk (camelCase) form; fills in the company
        name and deploy URLs when the JSON artifacts do not.
    builder_type : str, optional
        Builder type recorded in the state document.
    build_id : str | None, optional
        Build identifier recorded in the state document.

    Raises
    ------
    DataValidationError
        If one of the artifact files exists but is not a JSON object.
    """
    project = Path(project_path)
    meta = metadata or {}
    client_config = _load_optional_json(project / CLIENT_CONFIG_FILENAME)
    design_tokens = _load_optional_json(project / DESIGN_TOKENS_FILENAME)
    content = _load_optional_json(project / CONTENT_GENERATED_FILENAME)

    company = (client_config or {}).get("companyName") or meta.get("companyName")
    if not company:
        company = project.name
        logger.warning(f"No company name recorded; using directory name {company!r}")

    ctx = BuildContext(
        project_path=project,
        company_name=str(company),
        record_id=(client_config or {}).get("recordId"),
        builder_type=builder_type,
        client_config=client_config,
        design_tokens=design_tokens,
        content_generated=content,
        deploy_url=meta.get("deployUrl"),
        repo_url=meta.get("repoUrl"),
        build_id=build_id,
    )
    logger.info(
        f"Context loaded for {ctx.company_name}: client config "
        f"{'yes' if client_config else 'no'}, design tokens "
        f"{'yes' if design_tokens else 'no'}, content {'yes' if content else 'no'}"
    )
    return ctx


__all__ = ["BuildContext", "load_context_from_project"]
