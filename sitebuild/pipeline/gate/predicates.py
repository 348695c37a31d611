"""Artifact predicates: live, re-checkable evidence that a phase did its work.

Each predicate is a pure read-only function ``(project_path, builder_type)
-> str | None``. ``None`` means the phase's artifacts look right; a string
is the reason they do not. Predicates never trust recorded status, they
inspect the files on disk, so a gate can be re-evaluated at any time.

Phases without a registered predicate (``phase-0``, ``phase-2``, the fast
build/deploy pair, the full build and the learn phase) pass on recorded
status alone.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from pathlib import Path

from sitebuild.config import (
    CLIENT_CONFIG_FILENAME,
    CUSTOM_IMAGE_MANIFEST_FILENAME,
    FAL_MODEL,
    IMAGE_EXTENSIONS,
    IMAGE_MANIFEST_FILENAME,
    IMAGE_PROMPTS_FILENAME,
    IMAGES_DIR_RELPATH,
    PAGE_REGISTRY_FILENAME,
    PLACEHOLDER_MAX_BYTES,
    QA_AGENT_REPORTS,
    QA_MERGED_RESULTS_FILENAME,
    QA_SCREENSHOT_MANIFEST_RELPATH,
    REQUIRED_IMAGE_FOLDERS,
    SERVICE_IMAGE_VARIANTS,
    SITE_CONFIG_RELPATH,
    STATE_FILENAME,
)
from sitebuild.pipeline.state.schema import is_valid_url

from .site_config import validate_site_config

ArtifactPredicate = Callable[[Path, str], "str | None"]

_SERVICE_SLUG_RE = re.compile(r"""slug:\s*["']([^"']+)["']""")


def _image_files(directory: Path) -> list[Path]:
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def is_placeholder_image(path: Path) -> bool:
    """Return True if ``path`` is smaller than the placeholder threshold."""
    return path.stat().st_size < PLACEHOLDER_MAX_BYTES


def service_slugs(site_config_text: str) -> list[str]:
    """Return every ``slug: "..."`` value declared in the site config."""
    return _SERVICE_SLUG_RE.findall(site_config_text)


def _require_files(project_path: Path, *relpaths: str) -> str | None:
    for rel in relpaths:
        if not (project_path / rel).exists():
            return f"{rel} does not exist"
    return None


def check_data_gathering(project_path: Path, builder_type: str) -> str | None:
    return _require_files(project_path, CLIENT_CONFIG_FILENAME)


def check_scaffold(project_path: Path, builder_type: str) -> str | None:
    return _require_files(
        project_path,
        SITE_CONFIG_RELPATH,
        "package.json",
        "BUILD-LOG.md",
        "BUSINESS-CONTEXT.md",
    )


def check_content(project_path: Path, builder_type: str) -> str | None:
    """Template builds must have a populated, structurally valid site config."""
    if builder_type != "template":
        if not (project_path / "src" / "content").is_dir():
            return "src/content/ directory does not exist"
        return _require_files(project_path, PAGE_REGISTRY_FILENAME)
    config_path = project_path / SITE_CONFIG_RELPATH
    if not config_path.exists():
        return f"{SITE_CONFIG_RELPATH} does not exist"
    errors = validate_site_config(project_path)
    if errors:
        return f"Config validation failed: {errors[0]}"
    return None


def check_theme(project_path: Path, builder_type: str) -> str | None:
    if builder_type == "template":
        return _require_files(project_path, "src/styles/global.css")
    return _require_files(project_path, PAGE_REGISTRY_FILENAME)


def _check_image_folders(images_base: Path) -> str | None:
    for folder in REQUIRED_IMAGE_FOLDERS:
        directory = images_base / folder
        if not directory.is_dir():
            return f"Missing required image folder: {folder}/"
        files = _image_files(directory)
        if not files:
            return f"Image folder empty: {folder}/"
        if all(is_placeholder_image(f) for f in files):
            return f"All images in {folder}/ are placeholders (< {PLACEHOLDER_MAX_BYTES} bytes)"
    return None


def _check_service_images(project_path: Path, images_base: Path) -> str | None:
    config_path = project_path / SITE_CONFIG_RELPATH
    if not config_path.exists():
        return None
    for slug in service_slugs(config_path.read_text(encoding="utf-8")):
        for variant in SERVICE_IMAGE_VARIANTS:
            directory = images_base / "services" / slug / variant
            label = f"services/{slug}/{variant}/"
            if not directory.is_dir():
                return f"Missing service image folder: {label}"
            files = _image_files(directory)
            if not files:
                return f"No image in {label}"
            if all(is_placeholder_image(f) for f in files):
                return f"Placeholder stub in {label} needs generation"
    return None


def _check_generation_manifest(project_path: Path) -> str | None:
    manifest_path = project_path / IMAGE_MANIFEST_FILENAME
    if not manifest_path.exists():
        return f"{IMAGE_MANIFEST_FILENAME} does not exist"
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        return f"{IMAGE_MANIFEST_FILENAME} is invalid JSON: {exc}"
    if not isinstance(manifest, dict):
        return f"{IMAGE_MANIFEST_FILENAME} is not a JSON object"
    if manifest.get("model") != FAL_MODEL:
        return f'Wrong image model used: "{manifest.get("model")}". Required: "{FAL_MODEL}"'
    if manifest.get("promptSource") != IMAGE_PROMPTS_FILENAME:
        source = manifest.get("promptSource") or "missing"
        return f'Images were not generated from {IMAGE_PROMPTS_FILENAME} (promptSource: "{source}")'
    return None


def check_images(project_path: Path, builder_type: str) -> str | None:
    """Verify generated imagery is real, complete and traceable to its prompts."""
    if builder_type != "template":
        return _require_files(project_path, CUSTOM_IMAGE_MANIFEST_FILENAME)
    images_ts = project_path / "src" / "images.ts"
    if not images_ts.exists():
        return "src/images.ts does not exist"
    if "import.meta.glob" not in images_ts.read_text(encoding="utf-8"):
        return "src/images.ts does not use import.meta.glob()"
    images_base = project_path / IMAGES_DIR_RELPATH
    for check in (
        lambda: _check_image_folders(images_base),
        lambda: _check_service_images(project_path, images_base),
        lambda: _require_files(project_path, IMAGE_PROMPTS_FILENAME),
        lambda: _check_generation_manifest(project_path),
    ):
        reason = check()
        if reason:
            return reason
    return None


def check_deploy(project_path: Path, builder_type: str) -> str | None:
    """Require a valid ``deployUrl`` recorded in the state metadata."""
    state_path = project_path / STATE_FILENAME
    if not state_path.exists():
        return f"{STATE_FILENAME} does not exist"
    try:
        state = json.loads(state_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        return f"Cannot read {STATE_FILENAME}: {exc}"
    deploy_url = (state.get("metadata") or {}).get("deployUrl")
    if not deploy_url:
        return f"deployUrl not set in {STATE_FILENAME} metadata"
    if not is_valid_url(str(deploy_url)):
        return f'deployUrl "{deploy_url}" is not a valid URL'
    return None


def check_qa(project_path: Path, builder_type: str) -> str | None:
    """Require every QA agent report, screenshots and the merged results."""
    for filename, agent in QA_AGENT_REPORTS.items():
        report_path = project_path / filename
        if not report_path.exists():
            return f"{filename} does not exist ({agent} agent did not run)"
        try:
            report = json.loads(report_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            return f"{filename} is invalid JSON: {exc}"
        if not isinstance(report, dict) or not isinstance(report.get("passed"), bool):
            return f'{filename} missing "passed" field'
        if report.get("agent") != agent:
            return f'{filename} has agent="{report.get("agent")}", expected "{agent}"'

    manifest_path = project_path / QA_SCREENSHOT_MANIFEST_RELPATH
    if not manifest_path.exists():
        return f"{QA_SCREENSHOT_MANIFEST_RELPATH} does not exist"
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        return f"{QA_SCREENSHOT_MANIFEST_RELPATH} is invalid JSON: {exc}"
    screenshots = manifest.get("screenshots") if isinstance(manifest, dict) else None
    if not screenshots:
        return "Screenshot manifest has no entries"
    if not any(isinstance(s, dict) and s.get("status") == "ok" for s in screenshots):
        return "No successful screenshots in manifest"
    return _require_files(project_path, QA_MERGED_RESULTS_FILENAME)


ARTIFACT_CHECKS: dict[str, ArtifactPredicate] = {
    "phase-1": check_data_gathering,
    "phase-3": check_scaffold,
    "phase-4": check_content,
    "phase-5": check_theme,
    "phase-6": check_images,
    "phase-8": check_deploy,
    "phase-9": check_qa,
}


def check_artifacts(project_path: Path, phase_id: str, builder_type: str) -> str | None:
    """Run the registered predicate for ``phase_id``; phases without one pass."""
    predicate = ARTIFACT_CHECKS.get(phase_id)
    if predicate is None:
        return None
    try:
        return predicate(Path(project_path), builder_type)
    except OSError as exc:
        return f"Cannot inspect artifacts: {exc}"


__all__ = [
    "ARTIFACT_CHECKS",
    "ArtifactPredicate",
    "check_artifacts",
    "is_placeholder_image",
    "service_slugs",
]
