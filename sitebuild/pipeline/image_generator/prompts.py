"""Image prompt parsing and slot-to-file mapping.

Prompts live in the project's ``IMAGE-PROMPTS.md`` as level-3 headings
followed by a fenced block::

    ### home-hero (hero, 1920x823)
    ```
    Wide shot of a freshly tiled bathroom ...
    ```

The heading names the slot and a size label; an explicit ``WxH`` is used
when the label is not a known preset. Slots map to fixed locations under
``src/assets/images`` so that the site template's ``import.meta.glob``
picks them up.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sitebuild.config import IMAGE_PROMPTS_FILENAME, IMAGE_SIZES, IMAGES_DIR_RELPATH

logger = logging.getLogger(__name__)

_PROMPT_RE = re.compile(
    r"###\s+(\S+)\s+\(([^,)]+)(?:,\s*(\d+x\d+))?\)\s*\n+```[^\n]*\n([\s\S]*?)```"
)
_SERVICE_SLOT_RE = re.compile(r"^service-(\d+)(-hero|-content)?$")

# Brand and page slots, relative to the images directory. ``None`` marks
# paths relative to the project root instead.
_BRAND_PATHS: dict[str, tuple[str | None, str]] = {
    "inner-hero": (IMAGES_DIR_RELPATH, "inner-hero/inner-hero.jpg"),
    "hero-alt": (IMAGES_DIR_RELPATH, "inner-hero/inner-hero.jpg"),
    "service-areas": (IMAGES_DIR_RELPATH, "service-areas/service-areas.jpg"),
    "areas": (IMAGES_DIR_RELPATH, "service-areas/service-areas.jpg"),
    "home-hero": (IMAGES_DIR_RELPATH, "home-hero/home-hero.jpg"),
    "about": (IMAGES_DIR_RELPATH, "inner-hero/about.jpg"),
    "about-hero": (IMAGES_DIR_RELPATH, "inner-hero/about-hero.jpg"),
    "contact-hero": (IMAGES_DIR_RELPATH, "inner-hero/contact-hero.jpg"),
    "og-image": (None, "public/og-image.jpg"),
}


@dataclass(frozen=True)
class PromptSpec:
    """One parsed prompt block."""

    slot: str
    prompt: str
    width: int
    height: int
    size_label: str


@dataclass(frozen=True)
class GenerationTask:
    """A single image to produce.

    Attributes
    ----------
    slot : str
        Prompt slot name.
    filename : str
        Output path relative to the project, used in the manifest.
    output : Path
        Absolute output path.
    prompt : str
        Generation prompt.
    width, height : int
        Requested image size in pixels.
    """

    slot: str
    filename: str
    output: Path
    prompt: str
    width: int = 1024
    height: int = 768


def parse_image_prompts(text: str) -> dict[str, PromptSpec]:
    """Parse ``IMAGE-PROMPTS.md`` content into prompt specs keyed by slot.

    Size resolution prefers a known size label, then explicit ``WxH``
    dimensions, then the card preset.

    Examples
    --------
    >>> text = "### home-hero (hero)\\n```\\nA sunny street\\n```\\n"
    >>> parse_image_prompts(text)["home-hero"].width
    1920
    """
    prompts: dict[str, PromptSpec] = {}
    for match in _PROMPT_RE.finditer(text.replace("\r\n", "\n")):
        slot = match.group(1).strip()
        label = match.group(2).strip().lower()
        size = IMAGE_SIZES.get(label)
        if size is None and match.group(3):
            w, h = (int(n) for n in match.group(3).split("x"))
            if w and h:
                size = (w, h)
        width, height = size or IMAGE_SIZES["card"]
        prompts[slot] = PromptSpec(slot, match.group(4).strip(), width, height, label)
    return prompts


def load_image_prompts(project_path: Path | str) -> dict[str, PromptSpec]:
    """Read and parse the project's prompt file.

    Raises
    ------
    FileNotFoundError
        If ``IMAGE-PROMPTS.md`` is missing.
    """
    path = Path(project_path) / IMAGE_PROMPTS_FILENAME
    if not path.is_file():
        raise FileNotFoundError(f"{IMAGE_PROMPTS_FILENAME} not found at {path}")
    prompts = parse_image_prompts(path.read_text(encoding="utf-8"))
    logger.info(f"Parsed {len(prompts)} image prompts from {IMAGE_PROMPTS_FILENAME}")
    return prompts


def resolve_output_relpath(slot: str, services: list[dict[str, Any]]) -> str | None:
    """Map a prompt slot to an output path relative to the project root.

    ``service-N`` slots map to the N-th service's card image and
    ``service-N-hero`` / ``service-N-content`` to its other variants.
    Returns ``None`` for a service slot without a matching service.
    Unknown slots land in ``generated/``.
    """
    service_match = _SERVICE_SLOT_RE.match(slot)
    if service_match:
        idx = int(service_match.group(1)) - 1
        variant = (service_match.group(2) or "-card")[1:]
        if idx < 0 or idx >= len(services) or not services[idx].get("slug"):
            return None
        slug = services[idx]["slug"]
        return f"{IMAGES_DIR_RELPATH}/services/{slug}/{variant}/{slug}-{variant}.jpg"
    brand = _BRAND_PATHS.get(slot)
    if brand is not None:
        base, rel = brand
        return f"{base}/{rel}" if base else rel
    return f"{IMAGES_DIR_RELPATH}/generated/{slot}.jpg"


def build_generation_tasks(
    project_path: Path | str,
    prompts: dict[str, PromptSpec],
    services: list[dict[str, Any]],
) -> list[GenerationTask]:
    """Turn parsed prompts into tasks, skipping slots that cannot be mapped."""
    root = Path(project_path)
    tasks = []
    for slot, spec in prompts.items():
        rel = resolve_output_relpath(slot, services)
        if rel is None:
            logger.warning(f'Slot "{slot}" could not be mapped to a file path; skipping')
            continue
        tasks.append(
            GenerationTask(
                slot=slot,
                filename=rel,
                output=root / rel,
                prompt=spec.prompt,
                width=spec.width,
                height=spec.height,
            )
        )
    return tasks


__all__ = [
    "GenerationTask",
    "PromptSpec",
    "build_generation_tasks",
    "load_image_prompts",
    "parse_image_prompts",
    "resolve_output_relpath",
]
