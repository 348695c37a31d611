"""Tests for the ``sitebuild`` command-line interface."""

import json
import logging
from pathlib import Path

import pytest

from sitebuild.cli import main, parse_arguments
from sitebuild.pipeline.state import StateStore

ENV_NAMES = (
    "FAL_KEY",
    "AIRTABLE_TOKEN",
    "SITEBUILD_STEPS_FILE",
    "SITEBUILD_NOTIFIER",
    "SITEBUILD_KNOWLEDGE_DIR",
    "SITEBUILD_OUTPUT_DIR",
    "SITEBUILD_STEP_TIMEOUT",
    "SITEBUILD_BUILD_TIMEOUT",
)


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Keep each CLI run away from real env files and the home directory."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("DISABLE_FILE_LOGS", "1")
    monkeypatch.setenv("SITEBUILD_NOTIFIER", "none")
    monkeypatch.setenv("SITEBUILD_KNOWLEDGE_DIR", str(tmp_path / "kb"))
    monkeypatch.setattr("sitebuild.config.PROJECT_ROOT", tmp_path / "runner")
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_parse_arguments_resume():
    args = parse_arguments(["resume", "/tmp/acme", "--from", "phase-6b"])
    assert args.command == "resume"
    assert args.project == Path("/tmp/acme")
    assert args.from_phase == "phase-6b"


def test_parse_arguments_requires_command():
    with pytest.raises(SystemExit):
        parse_arguments([])


def test_gate_lifecycle(tmp_path: Path, capsys):
    project = str(tmp_path / "acme")
    assert main(["gate", "init", project, "--build-id", "b-1", "--company", "Acme"]) == 0
    assert main(["gate", "check", project, "phase-0"]) == 1
    assert 'phase-0 status is "pending"' in capsys.readouterr().out

    assert main(["gate", "start", project, "phase-0"]) == 0
    assert main(["gate", "complete", project, "phase-0", "--artifacts", '{"log": "BUILD-LOG.md"}']) == 0
    assert main(["gate", "check", project, "phase-0"]) == 0
    assert "PASS" in capsys.readouterr().out

    state = StateStore(project).require()
    assert state.phases["phase-0"].artifacts == {"log": "BUILD-LOG.md"}
    assert state.metadata.company_name == "Acme"


def test_gate_complete_rejected_without_artifacts(tmp_path: Path):
    project = str(tmp_path / "acme")
    main(["gate", "init", project, "--build-id", "b-1"])
    assert main(["gate", "complete", project, "phase-1"]) == 1
    assert StateStore(project).require().phases["phase-1"].status == "pending"
    assert main(["gate", "complete", project, "phase-1", "--skip-artifact-check"]) == 0
    assert StateStore(project).require().phases["phase-1"].status == "completed"


def test_gate_check_all_lists_failures(tmp_path: Path, capsys):
    project = str(tmp_path / "acme")
    main(["gate", "init", project, "--build-id", "b-1"])
    main(["gate", "complete", project, "phase-0"])
    capsys.readouterr()
    assert main(["gate", "check-all", project, "phase-2"]) == 1
    out = capsys.readouterr().out
    assert "Gate failures:" in out
    assert "phase-1" in out and "phase-2" in out
    assert main(["gate", "check-all", project, "phase-0"]) == 0


def test_gate_fail_reset_and_metadata(tmp_path: Path):
    project = str(tmp_path / "acme")
    main(["gate", "init", project, "--build-id", "b-1"])
    assert main(["gate", "fail", project, "phase-3", "--message", "npm exploded"]) == 0
    assert StateStore(project).require().phases["phase-3"].error == "npm exploded"
    assert main(["gate", "reset", project, "phase-3"]) == 0
    assert StateStore(project).require().phases["phase-3"].status == "pending"

    assert main(["gate", "metadata", project, "deployUrl=https://acme.example.app", "niche=roofing"]) == 0
    meta = StateStore(project).require().metadata
    assert (meta.deploy_url, meta.niche) == ("https://acme.example.app", "roofing")
    assert main(["gate", "metadata", project, "niche="]) == 0
    assert StateStore(project).require().metadata.niche is None
    assert main(["gate", "metadata", project, "deployUrl=not-a-url"]) == 1
    assert main(["gate", "metadata", project, "oops"]) == 1


def test_gate_unknown_phase(tmp_path: Path):
    project = str(tmp_path / "acme")
    main(["gate", "init", project, "--build-id", "b-1"])
    assert main(["gate", "start", project, "phase-99"]) == 1
    assert main(["gate", "check", project, "phase-99"]) == 1


def test_gate_complete_rejects_non_object_artifacts(tmp_path: Path):
    project = str(tmp_path / "acme")
    main(["gate", "init", project, "--build-id", "b-1"])
    assert main(["gate", "complete", project, "phase-0", "--artifacts", "[1]"]) == 1
    assert main(["gate", "complete", project, "phase-0", "--artifacts", "{bad"]) == 1


def test_status_command(tmp_path: Path, capsys):
    project = str(tmp_path / "acme")
    assert main(["status", project]) == 1
    main(["gate", "init", project, "--build-id", "b-1", "--company", "Acme"])
    capsys.readouterr()
    assert main(["status", project]) == 0
    assert "Company: Acme" in capsys.readouterr().out


def test_resume_without_state(tmp_path: Path):
    (tmp_path / "empty").mkdir()
    assert main(["resume", str(tmp_path / "empty")]) == 1


def test_run_fails_at_health_check(tmp_path: Path, capsys):
    code = main(["run", "--company", "Acme Plumbing", "--dest", str(tmp_path / "out")])
    assert code == 1
    out = capsys.readouterr().out
    assert "Build failed" in out
    assert "Resume with" in out
    assert (tmp_path / "out" / "acme-plumbing").is_dir()
    assert not (tmp_path / "out" / "acme-plumbing" / "build-state.json").exists()
    patterns = json.loads((tmp_path / "kb" / "errors" / "error-patterns.json").read_text(encoding="utf-8"))
    assert patterns[-1]["context"]["phase"] == "phase-0"


def test_knowledge_stats(tmp_path: Path, capsys):
    builds = tmp_path / "kb" / "builds"
    builds.mkdir(parents=True)
    (builds / "b-1.json").write_text(json.dumps({"status": "success"}), encoding="utf-8")
    (builds / "b-2.json").write_text(json.dumps({"status": "failed"}), encoding="utf-8")
    assert main(["knowledge", "stats"]) == 0
    out = capsys.readouterr().out
    assert "Total: 2" in out
    assert "Success: 1" in out
    assert "Failed: 1" in out
