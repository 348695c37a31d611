"""Phase functions and the default step plan.

Each phase is a plain callable ``fn(context) -> None``. Phases may update
the context, call external step commands and write files; they never mark
their own completion. The orchestrator does that afterwards through the
gate, which re-checks the files each phase was supposed to produce.

External work (data fetch, scaffolding, site builds, deploys, QA agents)
is configured per step id as an argv list in :class:`BuildSettings`. The
image phase and the content injection are implemented here.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sitebuild.config import (
    CLIENT_CONFIG_FILENAME,
    CONTENT_GENERATED_FILENAME,
    DESIGN_TOKENS_FILENAME,
    QA_AGENT_REPORTS,
    QA_MERGED_RESULTS_FILENAME,
    REQUIRED_ENV_VARS,
)
from sitebuild.exceptions import AppError, ConfigurationError, DataValidationError
from sitebuild.pipeline.config_writer import ConfigDocument, inject_content, inject_reviews
from sitebuild.pipeline.image_generator import ensure_service_image_folders, generate_missing_images
from sitebuild.pipeline.state import StateStore
from sitebuild.setup.fs_utils import atomic_write_json, atomic_write_text, read_json
from sitebuild.setup.knowledge import KnowledgeStore

from .context import BuildContext
from .settings import BuildSettings
from .steps import expand_placeholders, run_command, slugify, validate_env_vars

logger = logging.getLogger(__name__)

PhaseFn = Callable[[BuildContext], None]
ImageGenerator = Callable[..., Awaitable[Any]]

REVIEWS_JSON_FILENAME = "reviews.json"
REVIEWS_MD_FILENAME = "REVIEWS.md"

_URL_RE = re.compile(r"https?://[^\s\"'<>]+")


@dataclass(frozen=True)
class PhaseStep:
    """One entry in the run plan.

    Attributes
    ----------
    step_id : str
        Identifier shown to users and accepted by ``resume --from``.
    gate_id : str | None
        Persisted phase this step completes, or None for ungated sub-steps.
    label : str
        Human-readable name.
    fn : PhaseFn
        The phase function.
    artifacts : dict[str, str]
        Informational artifact map recorded on completion.
    """

    step_id: str
    gate_id: str | None
    label: str
    fn: PhaseFn
    artifacts: dict[str, str] = field(default_factory=dict)


def parse_deploy_output(stdout: str) -> tuple[str | None, str | None]:
    """Extract the deploy and repository URLs printed by a deploy command.

    A JSON object with ``deployUrl``/``repoUrl`` on the last non-empty line
    wins. Otherwise the last URL in the output is taken as the deploy URL.

    Examples
    --------
    >>> parse_deploy_output('pushing\\n{"deployUrl": "https://a.app", "repoUrl": "https://gh/a"}')
    ('https://a.app', 'https://gh/a')
    >>> parse_deploy_output("Live at https://b.app\\n")
    ('https://b.app', None)
    """
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if lines and lines[-1].startswith("{"):
        try:
            data = json.loads(lines[-1])
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and data.get("deployUrl"):
            repo = data.get("repoUrl")
            return str(data["deployUrl"]), str(repo) if repo else None
    urls = _URL_RE.findall(stdout)
    return (urls[-1].rstrip(".,;)"), None) if urls else (None, None)


def merge_qa_reports(project_path: Path) -> dict[str, Any] | None:
    """Combine the QA agent reports into ``qa-results.json``.

    Returns None, writing nothing, while any agent report is missing or
    unreadable; the QA gate then names the missing report.
    """
    reports: dict[str, Any] = {}
    for filename, agent in QA_AGENT_REPORTS.items():
        path = project_path / filename
        if not path.is_file():
            return None
        try:
            reports[agent] = read_json(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"Cannot merge {filename}: {exc}")
            return None
    merged = {
        "passed": all(isinstance(r, dict) and r.get("passed") is True for r in reports.values()),
        "agents": reports,
    }
    atomic_write_json(project_path / QA_MERGED_RESULTS_FILENAME, merged)
    return merged


def _load_json_object(path: Path) -> dict[str, Any]:
    try:
        data = read_json(path)
    except FileNotFoundError as exc:
        raise DataValidationError(f"{path.name} was not produced", context={"path": str(path)}) from exc
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DataValidationError(f"{path.name} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DataValidationError(f"{path.name} must contain a JSON object")
    return data


class BuildPhases:
    """The phase functions of a template or custom build.

    Parameters
    ----------
    settings : BuildSettings
        Step commands and timeouts.
    knowledge : KnowledgeStore | None, optional
        Cross-build store written by the learn phase.
    image_generator : ImageGenerator, optional
        Coroutine function used by the image phase; defaults to
        :func:`generate_missing_images`.
    """

    def __init__(
        self,
        settings: BuildSettings,
        knowledge: KnowledgeStore | None = None,
        image_generator: ImageGenerator = generate_missing_images,
    ) -> None:
        self.settings = settings
        self.knowledge = knowledge
        self.image_generator = image_generator

    def _run_step(
        self,
        step_id: str,
        ctx: BuildContext,
        *,
        required: bool = True,
        timeout: int | None = None,
        capture_output: bool = False,
    ) -> str | None:
        argv = self.settings.command_for(step_id)
        if argv is None:
            if required:
                raise ConfigurationError(
                    f"No command configured for {step_id}; add it to SITEBUILD_STEPS_FILE",
                    context={"step_id": step_id},
                )
            logger.info(f"{step_id}: no command configured, skipping")
            return None
        argv = expand_placeholders(
            argv,
            {
                "project": str(ctx.project_path),
                "company": ctx.company_name,
                "slug": slugify(ctx.company_name),
                "record_id": ctx.record_id or "",
            },
        )
        cwd = ctx.project_path if ctx.project_path.is_dir() else None
        return run_command(
            argv,
            cwd=cwd,
            timeout=timeout or self.settings.step_timeout,
            capture_output=capture_output,
        )

    def health_check(self, ctx: BuildContext) -> None:
        """Validate the environment and start a fresh state document."""
        missing = validate_env_vars(REQUIRED_ENV_VARS)
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                context={"missing": missing},
            )
        ctx.project_path.mkdir(parents=True, exist_ok=True)
        build_id = f"build-{int(time.time() * 1000)}"
        StateStore(ctx.project_path).init(
            build_id, ctx.builder_type, {"companyName": ctx.company_name}
        )
        ctx.build_id = build_id

    def fetch_data(self, ctx: BuildContext) -> None:
        self._run_step("phase-1", ctx)
        ctx.client_config = _load_json_object(ctx.project_path / CLIENT_CONFIG_FILENAME)
        niche = ctx.client_config.get("niche")
        if niche:
            StateStore(ctx.project_path).update_metadata({"niche": str(niche)})

    def collect_reviews(self, ctx: BuildContext) -> None:
        """Fetch reviews; failure leaves a placeholder instead of stopping the build."""
        try:
            self._run_step("phase-1.5", ctx, required=False)
        except AppError as exc:
            logger.warning(f"Review collection failed (non-blocking): {exc}")
            reviews_md = ctx.project_path / REVIEWS_MD_FILENAME
            if not reviews_md.exists():
                atomic_write_text(
                    reviews_md,
                    "# Reviews\n\nNo reviews found online. "
                    "Review collection encountered an error.\n",
                )

    def design_direction(self, ctx: BuildContext) -> None:
        self._run_step("phase-2", ctx)
        ctx.design_tokens = _load_json_object(ctx.project_path / DESIGN_TOKENS_FILENAME)
        logger.info(f"Design direction: {ctx.design_tokens.get('direction', 'unknown')}")

    def scaffold(self, ctx: BuildContext) -> None:
        self._run_step("phase-3", ctx, timeout=self.settings.build_timeout)

    def generate_content(self, ctx: BuildContext) -> None:
        """Produce content, then write it and any reviews into the site config."""
        self._run_step("phase-4", ctx)
        content = _load_json_object(ctx.project_path / CONTENT_GENERATED_FILENAME)
        ctx.content_generated = content
        if ctx.builder_type == "template":
            doc = inject_content(ConfigDocument.read(ctx.project_path), content)
            reviews_path = ctx.project_path / REVIEWS_JSON_FILENAME
            if reviews_path.is_file():
                inject_reviews(doc, _load_json_object(reviews_path))
            doc.write()
            logger.info("Content injected into site.config.ts")
        ensure_service_image_folders(ctx.project_path, ctx.services)

    def download_fonts(self, ctx: BuildContext) -> None:
        self._run_step("phase-4.5", ctx, required=False)

    def theme(self, ctx: BuildContext) -> None:
        self._run_step("phase-5", ctx)

    def download_client_images(self, ctx: BuildContext) -> None:
        try:
            self._run_step("phase-6a", ctx, required=False)
        except AppError as exc:
            logger.warning(f"Client image download had issues: {exc}")

    def fast_build(self, ctx: BuildContext) -> None:
        self._run_step("phase-7a", ctx, timeout=self.settings.build_timeout)

    def _deploy(self, step_id: str, ctx: BuildContext) -> None:
        stdout = self._run_step(
            step_id, ctx, timeout=self.settings.build_timeout, capture_output=True
        )
        deploy_url, repo_url = parse_deploy_output(stdout or "")
        if not deploy_url:
            raise DataValidationError(f"{step_id} command did not report a deploy URL")
        patch = {"deployUrl": deploy_url}
        if repo_url:
            patch["repoUrl"] = repo_url
        StateStore(ctx.project_path).update_metadata(patch)
        ctx.deploy_url = deploy_url
        ctx.repo_url = repo_url or ctx.repo_url
        logger.info(f"Live URL: {deploy_url}")

    def fast_deploy(self, ctx: BuildContext) -> None:
        self._deploy("phase-7b", ctx)

    def generate_images(self, ctx: BuildContext) -> None:
        stats = asyncio.run(self.image_generator(ctx.project_path, ctx.services))
        logger.info(f"Image batch finished: {stats.as_dict()}")

    def full_build(self, ctx: BuildContext) -> None:
        self._run_step("phase-7", ctx, timeout=self.settings.build_timeout)

    def deploy(self, ctx: BuildContext) -> None:
        self._deploy("phase-8", ctx)

    def qa(self, ctx: BuildContext) -> None:
        self._run_step("phase-9", ctx, timeout=self.settings.build_timeout)
        merged = merge_qa_reports(ctx.project_path)
        if merged is not None:
            logger.info(f"QA {'passed' if merged['passed'] else 'reported issues'}")

    def learn(self, ctx: BuildContext) -> None:
        """Record the design decision and the build in the knowledge store."""
        logger.info(f"Build complete for {ctx.company_name}")
        logger.info(f"Deploy URL: {ctx.deploy_url or 'not deployed'}")
        if self.knowledge is None:
            return
        if ctx.design_tokens:
            self.knowledge.log_design_decision(
                ctx.niche,
                ctx.design_tokens.get("direction"),
                ctx.design_tokens.get("fonts"),
                ctx.design_tokens.get("colors"),
            )
        qa_path = ctx.project_path / QA_MERGED_RESULTS_FILENAME
        qa_results = _load_json_object(qa_path) if qa_path.is_file() else None
        self.knowledge.log_build(StateStore(ctx.project_path).require(), "success", qa_results)


def default_plan(phases: BuildPhases) -> list[PhaseStep]:
    """Return the template build plan in run order."""
    return [
        PhaseStep("phase-0", "phase-0", "Health Check", phases.health_check),
        PhaseStep(
            "phase-1",
            "phase-1",
            "Data Gathering",
            phases.fetch_data,
            {"clientConfig": CLIENT_CONFIG_FILENAME},
        ),
        PhaseStep("phase-1.5", None, "Review Collection", phases.collect_reviews),
        PhaseStep(
            "phase-2",
            "phase-2",
            "Design Direction",
            phases.design_direction,
            {"designTokens": DESIGN_TOKENS_FILENAME},
        ),
        PhaseStep("phase-3", "phase-3", "Project Scaffold", phases.scaffold),
        PhaseStep(
            "phase-4",
            "phase-4",
            "Content/Config",
            phases.generate_content,
            {"content": CONTENT_GENERATED_FILENAME},
        ),
        PhaseStep("phase-4.5", None, "Download Fonts", phases.download_fonts),
        PhaseStep("phase-5", "phase-5", "Theme/Locations", phases.theme),
        PhaseStep("phase-6a", None, "Download Client Images", phases.download_client_images),
        PhaseStep("phase-7a", "phase-7a", "Fast Build", phases.fast_build),
        PhaseStep("phase-7b", "phase-7b", "Fast Deploy", phases.fast_deploy),
        PhaseStep("phase-6b", "phase-6", "Generate Images", phases.generate_images),
        PhaseStep("phase-7", "phase-7", "Full Build", phases.full_build),
        PhaseStep("phase-8", "phase-8", "Deploy (final)", phases.deploy),
        PhaseStep("phase-9", "phase-9", "QA Verification", phases.qa),
        PhaseStep("phase-10", "phase-10", "Learn", phases.learn),
    ]


__all__ = [
    "BuildPhases",
    "PhaseFn",
    "PhaseStep",
    "default_plan",
    "merge_qa_reports",
    "parse_deploy_output",
]
