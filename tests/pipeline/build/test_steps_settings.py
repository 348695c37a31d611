"""Tests for step command helpers and orchestrator settings."""

import json
import sys
from pathlib import Path

import pytest

from sitebuild.config import BUILD_STEP_TIMEOUT_SECONDS, DEFAULT_STEP_TIMEOUT_SECONDS
from sitebuild.exceptions import (
    ConfigurationError,
    DataValidationError,
    ExternalServiceError,
    TimeoutExceededError,
)
from sitebuild.pipeline.build import (
    BuildContext,
    BuildSettings,
    expand_placeholders,
    load_context_from_project,
    load_step_commands,
    run_command,
    slugify,
    validate_env_vars,
)

SETTINGS_ENV = (
    "SITEBUILD_STEPS_FILE",
    "SITEBUILD_NOTIFIER",
    "SITEBUILD_KNOWLEDGE_DIR",
    "SITEBUILD_OUTPUT_DIR",
    "SITEBUILD_STEP_TIMEOUT",
    "SITEBUILD_BUILD_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in SETTINGS_ENV:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setattr("sitebuild.config.PROJECT_ROOT", tmp_path / "runner")
    return monkeypatch


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Acme Plumbing", "acme-plumbing"),
        ("Joe's Plumbing & Co.", "joe-s-plumbing-co"),
        ("  --Déjà Vu Decor-- ", "d-j-vu-decor"),
    ],
)
def test_slugify(name, expected):
    assert slugify(name) == expected


def test_expand_placeholders_leaves_unknown_tokens():
    argv = expand_placeholders(["run", "{project}/x", "{unknown}", "{company}"], {"project": "/p", "company": "Acme"})
    assert argv == ["run", "/p/x", "{unknown}", "Acme"]


def test_validate_env_vars(monkeypatch):
    monkeypatch.setenv("SB_TEST_PRESENT", "1")
    monkeypatch.setenv("SB_TEST_EMPTY", "")
    monkeypatch.delenv("SB_TEST_ABSENT", raising=False)
    assert validate_env_vars(["SB_TEST_PRESENT", "SB_TEST_EMPTY", "SB_TEST_ABSENT"]) == [
        "SB_TEST_EMPTY",
        "SB_TEST_ABSENT",
    ]


def test_run_command_captures_stdout(tmp_path: Path):
    out = run_command(
        [sys.executable, "-c", "import os; print(os.environ['SB_GREETING'])"],
        cwd=tmp_path,
        env={"SB_GREETING": "hello"},
        capture_output=True,
    )
    assert out.strip() == "hello"


def test_run_command_non_zero_exit():
    with pytest.raises(ExternalServiceError) as excinfo:
        run_command([sys.executable, "-c", "raise SystemExit(3)"])
    assert excinfo.value.context["returncode"] == 3
    assert excinfo.value.transient is False


def test_run_command_timeout():
    with pytest.raises(TimeoutExceededError):
        run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.5)


def test_run_command_missing_executable():
    with pytest.raises(ConfigurationError, match="Command not found"):
        run_command(["definitely-not-a-real-binary-sitebuild"])
    with pytest.raises(ConfigurationError):
        run_command([])


def test_settings_defaults(clean_env):
    settings = BuildSettings.from_env()
    assert settings.step_commands == {}
    assert settings.step_timeout == DEFAULT_STEP_TIMEOUT_SECONDS
    assert settings.build_timeout == BUILD_STEP_TIMEOUT_SECONDS
    assert settings.notifier == "log"
    assert settings.command_for("phase-1") is None


def test_settings_from_env(clean_env, tmp_path: Path):
    steps = tmp_path / "steps.json"
    steps.write_text(json.dumps({"phase-7": ["npm", "run", "build"]}), encoding="utf-8")
    clean_env.setenv("SITEBUILD_STEPS_FILE", str(steps))
    clean_env.setenv("SITEBUILD_NOTIFIER", "None")
    clean_env.setenv("SITEBUILD_KNOWLEDGE_DIR", str(tmp_path / "kb"))
    clean_env.setenv("SITEBUILD_STEP_TIMEOUT", "45")
    settings = BuildSettings.from_env()
    assert settings.command_for("phase-7") == ["npm", "run", "build"]
    assert settings.notifier == "none"
    assert settings.knowledge_dir == tmp_path / "kb"
    assert settings.step_timeout == 45


def test_settings_read_project_dotenv(clean_env, tmp_path: Path):
    project = tmp_path / "proj"
    project.mkdir()
    (project / ".env").write_text("SITEBUILD_BUILD_TIMEOUT=1200\n", encoding="utf-8")
    assert BuildSettings.from_env(project).build_timeout == 1200


@pytest.mark.parametrize(
    "name,value",
    [("SITEBUILD_STEP_TIMEOUT", "soon"), ("SITEBUILD_BUILD_TIMEOUT", "0"), ("SITEBUILD_NOTIFIER", "pager")],
)
def test_settings_reject_bad_values(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ConfigurationError):
        BuildSettings.from_env()


@pytest.mark.parametrize(
    "content",
    ["not json", json.dumps(["a"]), json.dumps({"phase-1": []}), json.dumps({"phase-1": "npm run"})],
)
def test_load_step_commands_rejects_bad_files(tmp_path: Path, content):
    path = tmp_path / "steps.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_step_commands(path)


def test_load_step_commands_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_step_commands(tmp_path / "nope.json")


def test_load_context_prefers_artifacts(tmp_path: Path, write_json):
    write_json(tmp_path / "client-config.json", {"companyName": "Acme", "recordId": "rec1", "niche": "roofing"})
    write_json(tmp_path / "content-generated.json", {"services": [{"slug": "a"}, "junk"]})
    ctx = load_context_from_project(
        tmp_path, {"companyName": "Other", "deployUrl": "https://acme.example.app"}, build_id="b-9"
    )
    assert ctx.company_name == "Acme"
    assert ctx.record_id == "rec1"
    assert ctx.niche == "roofing"
    assert ctx.services == [{"slug": "a"}]
    assert ctx.deploy_url == "https://acme.example.app"
    assert ctx.build_id == "b-9"


def test_load_context_falls_back_to_directory_name(tmp_path: Path):
    project = tmp_path / "fallback-co"
    project.mkdir()
    ctx = load_context_from_project(project)
    assert ctx.company_name == "fallback-co"
    assert ctx.services == []


def test_load_context_rejects_corrupt_artifact(tmp_path: Path):
    (tmp_path / "design-tokens.json").write_text("{oops", encoding="utf-8")
    with pytest.raises(DataValidationError):
        load_context_from_project(tmp_path)


def test_build_context_coerces_path():
    assert isinstance(BuildContext(project_path="relative/dir", company_name="x").project_path, Path)
