"""Tests for phase gates, aggregated checks and verified completion."""

from pathlib import Path

import pytest

from sitebuild.config import FAL_MODEL, PHASE_IDS
from sitebuild.exceptions import ArtifactCheckFailedError, GateFailedError, UnknownPhaseError
from sitebuild.pipeline.gate import (
    check_all_gates,
    check_artifacts,
    check_gate,
    complete_phase,
    require_gates,
)
from sitebuild.pipeline.state import StateStore


@pytest.fixture
def project(tmp_path: Path) -> Path:
    StateStore(tmp_path).init("b-1", "template", {"companyName": "Acme"})
    return tmp_path


def test_gate_fails_on_pending_status(project: Path):
    result = check_gate(project, "phase-0")
    assert not result.passed
    assert result.reason == 'phase-0 status is "pending", expected "completed"'


def test_gate_without_state_document(tmp_path: Path):
    result = check_gate(tmp_path, "phase-0")
    assert not result.passed
    assert "not found" in result.reason


def test_unknown_phase_gate(project: Path):
    assert check_gate(project, "phase-42").reason == "Unknown phase: phase-42"
    with pytest.raises(UnknownPhaseError):
        complete_phase(project, "phase-42")


def test_completion_blocked_until_client_config_exists(project: Path, write_json):
    with pytest.raises(ArtifactCheckFailedError, match="client-config.json does not exist"):
        complete_phase(project, "phase-1", {"clientConfig": "client-config.json"})
    assert StateStore(project).require().phases["phase-1"].status == "pending"

    write_json(project / "client-config.json", {"companyName": "Acme"})
    state = complete_phase(project, "phase-1", {"clientConfig": "client-config.json"})
    assert state.phases["phase-1"].status == "completed"
    assert state.phases["phase-1"].artifacts == {"clientConfig": "client-config.json"}
    assert check_gate(project, "phase-1").passed


def test_gate_rechecks_artifacts_after_completion(project: Path, write_json):
    config = write_json(project / "client-config.json", {})
    complete_phase(project, "phase-1")
    config.unlink()
    result = check_gate(project, "phase-1")
    assert not result.passed
    assert result.reason == "phase-1 artifacts invalid: client-config.json does not exist"


def test_check_all_gates_collects_every_failure(project: Path):
    complete_phase(project, "phase-0")
    result = check_all_gates(project, "phase-2")
    assert not result.passed
    assert result.failures == [
        'phase-1 status is "pending", expected "completed"',
        'phase-2 status is "pending", expected "completed"',
    ]
    assert result.message.startswith("Gate failures:\n  - phase-1")
    with pytest.raises(GateFailedError) as excinfo:
        require_gates(project, "phase-2")
    assert len(excinfo.value.reasons) == 2


def test_check_all_gates_passes_for_completed_prefix(project: Path, write_json):
    write_json(project / "client-config.json", {})
    for pid in ("phase-0", "phase-1", "phase-2"):
        complete_phase(project, pid)
    assert check_all_gates(project, "phase-2").passed
    require_gates(project, "phase-2")


def test_check_all_gates_uses_run_order(project: Path):
    result = check_all_gates(project, "phase-7b")
    checked = [reason.split(" ")[0] for reason in result.failures]
    assert checked == list(PHASE_IDS[: PHASE_IDS.index("phase-7b") + 1])


def test_content_gate_rejects_template_defaults(project: Path, site_config_text: str):
    config = project / "src" / "site.config.ts"
    config.parent.mkdir(parents=True)
    config.write_text(site_config_text, encoding="utf-8")
    problem = check_artifacts(project, "phase-4", "template")
    assert problem == 'Config validation failed: Template default still present: "Your Tagline Here"'
    config.write_text('export const siteConfig = { name: "Acme" };\n', encoding="utf-8")
    assert check_artifacts(project, "phase-4", "template") == (
        "Config validation failed: Could not extract SiteConfig object from src/site.config.ts"
    )


def test_custom_content_gate(tmp_path: Path, write_json):
    assert check_artifacts(tmp_path, "phase-4", "custom") == "src/content/ directory does not exist"
    (tmp_path / "src" / "content").mkdir(parents=True)
    write_json(tmp_path / "page-registry.json", {"pages": []})
    assert check_artifacts(tmp_path, "phase-4", "custom") is None


def test_deploy_gate_reads_state_metadata(project: Path):
    assert "deployUrl not set" in check_artifacts(project, "phase-8", "template")
    StateStore(project).update_metadata({"deployUrl": "https://acme.netlify.app"})
    assert check_artifacts(project, "phase-8", "template") is None


def _write_image(path: Path, size: int = 2048) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\xff" * size)


def test_images_gate(tmp_path: Path, write_json):
    images_ts = tmp_path / "src" / "images.ts"
    images_ts.parent.mkdir(parents=True)
    images_ts.write_text("const all = import.meta.glob('./assets/images/**');\n", encoding="utf-8")
    base = tmp_path / "src" / "assets" / "images"
    for folder in ("home-hero", "inner-hero"):
        _write_image(base / folder / f"{folder}.jpg")
    _write_image(base / "gallery" / "stub.jpg", size=10)
    assert "placeholders" in check_artifacts(tmp_path, "phase-6", "template")

    _write_image(base / "gallery" / "g1.jpg")
    assert check_artifacts(tmp_path, "phase-6", "template") == "IMAGE-PROMPTS.md does not exist"

    (tmp_path / "IMAGE-PROMPTS.md").write_text("### home-hero (hero)\n```\nx\n```\n", encoding="utf-8")
    write_json(
        tmp_path / "generated-images-manifest.json",
        {"model": "other-model", "promptSource": "IMAGE-PROMPTS.md"},
    )
    assert "Wrong image model" in check_artifacts(tmp_path, "phase-6", "template")

    write_json(
        tmp_path / "generated-images-manifest.json",
        {"model": FAL_MODEL, "promptSource": "IMAGE-PROMPTS.md"},
    )
    assert check_artifacts(tmp_path, "phase-6", "template") is None


def test_images_gate_checks_service_variants(tmp_path: Path, write_json):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "images.ts").write_text("import.meta.glob('x')", encoding="utf-8")
    (tmp_path / "src" / "site.config.ts").write_text('  slug: "pipes",\n', encoding="utf-8")
    base = tmp_path / "src" / "assets" / "images"
    for folder in ("home-hero", "inner-hero", "gallery"):
        _write_image(base / folder / "a.jpg")
    assert check_artifacts(tmp_path, "phase-6", "template") == (
        "Missing service image folder: services/pipes/card/"
    )
    for variant in ("card", "hero", "content"):
        _write_image(base / "services" / "pipes" / variant / f"pipes-{variant}.jpg")
    assert check_artifacts(tmp_path, "phase-6", "template") == "IMAGE-PROMPTS.md does not exist"


def test_qa_gate(tmp_path: Path, write_json):
    assert "seo-qa-results.json does not exist" in check_artifacts(tmp_path, "phase-9", "template")
    write_json(tmp_path / "seo-qa-results.json", {"passed": True, "agent": "seo-qa"})
    write_json(tmp_path / "design-review.json", {"passed": True, "agent": "wrong"})
    assert 'expected "design-reviewer"' in check_artifacts(tmp_path, "phase-9", "template")
    write_json(tmp_path / "design-review.json", {"passed": False, "agent": "design-reviewer"})
    write_json(tmp_path / "image-qa-results.json", {"passed": True, "agent": "image-qa"})
    write_json(tmp_path / "qa-screenshots" / "manifest.json", {"screenshots": [{"status": "error"}]})
    assert check_artifacts(tmp_path, "phase-9", "template") == "No successful screenshots in manifest"
    write_json(tmp_path / "qa-screenshots" / "manifest.json", {"screenshots": [{"status": "ok"}]})
    assert check_artifacts(tmp_path, "phase-9", "template") == "qa-results.json does not exist"
    write_json(tmp_path / "qa-results.json", {"passed": False})
    assert check_artifacts(tmp_path, "phase-9", "template") is None


def test_skip_artifact_check_bypasses_predicate(project: Path):
    state = complete_phase(project, "phase-1", skip_artifact_check=True)
    assert state.phases["phase-1"].status == "completed"
