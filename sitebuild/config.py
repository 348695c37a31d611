"""Global configuration constants for the site build runner.

Defines the canonical phase table, filenames written into a project
directory, executor thresholds and logging defaults used across the
pipeline and setup utilities.
"""

from __future__ import annotations

from pathlib import Path

# Project directories
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
LOG_DIR: Path = PROJECT_ROOT / "logs"

# Logging
LOG_FILENAME_BUILD_RUNNER: str = "sitebuild.log"
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Build state document
STATE_FILENAME: str = "build-state.json"
STATE_LOCK_SUFFIX: str = ".lock"
RUN_LOCK_FILENAME: str = ".sitebuild-run.lock"

# Canonical phase ids, in run order. Resetting and resuming both follow
# this order.
PHASE_IDS: tuple[str, ...] = (
    "phase-0",
    "phase-1",
    "phase-2",
    "phase-3",
    "phase-4",
    "phase-5",
    "phase-7a",
    "phase-7b",
    "phase-6",
    "phase-7",
    "phase-8",
    "phase-9",
    "phase-10",
)

PHASE_NAMES: dict[str, str] = {
    "phase-0": "Health Check",
    "phase-1": "Data Gathering",
    "phase-2": "Design Direction",
    "phase-3": "Project Scaffold",
    "phase-4": "Content/Config",
    "phase-5": "Theme/Locations",
    "phase-7a": "Fast Build",
    "phase-7b": "Fast Deploy",
    "phase-6": "Images",
    "phase-7": "Full Build",
    "phase-8": "Deploy (final)",
    "phase-9": "QA Verification",
    "phase-10": "Learn",
}

BUILDER_TYPES: tuple[str, ...] = ("template", "custom")

# Project artifacts
CLIENT_CONFIG_FILENAME: str = "client-config.json"
DESIGN_TOKENS_FILENAME: str = "design-tokens.json"
CONTENT_GENERATED_FILENAME: str = "content-generated.json"
SITE_CONFIG_RELPATH: str = "src/site.config.ts"
IMAGE_PROMPTS_FILENAME: str = "IMAGE-PROMPTS.md"
IMAGE_MANIFEST_FILENAME: str = "generated-images-manifest.json"
CUSTOM_IMAGE_MANIFEST_FILENAME: str = "image-manifest.json"
PAGE_REGISTRY_FILENAME: str = "page-registry.json"
IMAGES_DIR_RELPATH: str = "src/assets/images"

# Leftover template tokens that must not survive content generation
TEMPLATE_DEFAULTS: tuple[str, ...] = (
    "Your Business Name",
    "Owner Name",
    "Your Tagline Here",
    "(012) 345-6789",
    "0123456789",
    "27123456789",
    "info@yourbusiness.com",
    "123 Main Street",
    "PLACEHOLDER",
    "TODO:",
    "REPLACE_ME",
    "info@example.com",
)

REQUIRED_IMAGE_FOLDERS: tuple[str, ...] = ("home-hero", "inner-hero", "gallery")
SERVICE_IMAGE_VARIANTS: tuple[str, ...] = ("card", "hero", "content")
SERVICE_IMAGE_FOLDERS: tuple[str, ...] = SERVICE_IMAGE_VARIANTS + ("gallery",)
IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".webp", ".avif")

# QA reports expected from phase-9 agents: filename -> agent name
QA_AGENT_REPORTS: dict[str, str] = {
    "seo-qa-results.json": "seo-qa",
    "design-review.json": "design-reviewer",
    "image-qa-results.json": "image-qa",
}
QA_SCREENSHOT_MANIFEST_RELPATH: str = "qa-screenshots/manifest.json"
QA_MERGED_RESULTS_FILENAME: str = "qa-results.json"

# Image generation
FAL_MODEL: str = "fal-ai/nano-banana-pro"
FAL_QUEUE_URL: str = f"https://queue.fal.run/{FAL_MODEL}"
FAL_NEGATIVE_PROMPT: str = (
    "text, words, letters, logos, watermark, signature, label, signage, blurry, "
    "low quality, cartoon, illustration, painting, drawing, face, portrait, "
    "selfie, person looking at camera"
)
IMAGE_SIZES: dict[str, tuple[int, int]] = {
    "card": (1024, 768),
    "hero": (1920, 823),
    "content": (1200, 800),
    "og": (1200, 630),
    "about": (1024, 768),
    "square": (1024, 1024),
}
PLACEHOLDER_MAX_BYTES: int = 1024
FAL_MAX_POLLS: int = 30
FAL_POLL_INTERVAL_SECONDS: float = 10.0
FAL_REQUEST_TIMEOUT_SECONDS: int = 120
FAL_TARGET_RPM: int = 60
FAL_DOWNLOAD_CHUNK_BYTES: int = 64 * 1024

# Resilient executor
EXECUTOR_MAX_ATTEMPTS: int = 3
EXECUTOR_BACKOFF_BASE_SECONDS: float = 1.0
EXECUTOR_BACKOFF_JITTER_SECONDS: float = 0.5
CIRCUIT_BREAKER_THRESHOLD: int = 2

# External step commands
DEFAULT_STEP_TIMEOUT_SECONDS: int = 120
BUILD_STEP_TIMEOUT_SECONDS: int = 300
REQUIRED_ENV_VARS: tuple[str, ...] = ("FAL_KEY", "AIRTABLE_TOKEN")

# Knowledge store
DEFAULT_KNOWLEDGE_DIR: Path = Path.home() / ".sitebuild" / "knowledge"
KNOWLEDGE_ERROR_LIMIT: int = 100
KNOWLEDGE_DESIGN_DECISION_LIMIT: int = 50

# CLI
CLI_PROGRAM_NAME: str = "sitebuild"
DEFAULT_OUTPUT_BASE_DIR: Path = Path.home() / "Projects"
