"""Structural validation of a populated ``src/site.config.ts``.

The template's site config is a TypeScript module whose single export,
``export const site: SiteConfig = {...}``, holds the whole site as an
object literal. After content injection that literal must describe a real
business: a plausible name, phone numbers and email, between one and six
services with URL-safe slugs, a usable navigation and SEO titles of a
sensible length.

The literal is converted to JSON (keys quoted, single-quoted strings
re-quoted, trailing commas dropped) and validated with the pydantic models
below. Literals that still do not parse as JSON (template strings, inline
expressions) are left to the template-default scan; only an export that
cannot be found at all is an error.

Examples
--------
>>> validate_site_config_text('export const site = {};')
['Could not extract SiteConfig object from src/site.config.ts']
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from sitebuild.config import SITE_CONFIG_RELPATH, TEMPLATE_DEFAULTS
from sitebuild.pipeline.state.schema import is_valid_url

logger = logging.getLogger(__name__)

_EXPORT_RE = re.compile(
    r"export\s+const\s+site\s*:\s*SiteConfig\s*=\s*(\{.*\})\s*;?\s*$", re.DOTALL | re.MULTILINE
)
_TOKEN_RE = re.compile(
    r"""(?P<double>"(?:[^"\\]|\\.)*")"""
    r"""|(?P<single>'(?:[^'\\]|\\.)*')"""
    r"""|(?P<key>[A-Za-z_$][\w$]*)(?=\s*:)"""
    r"""|(?P<comma>,(?=\s*[}\]]))"""
)

Text = Annotated[str, Field(min_length=1)]
HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]
Digits = Annotated[str, Field(pattern=r"^\d{9,15}$")]
MetaTitle = Annotated[str, Field(min_length=10, max_length=70)]


class NavItem(BaseModel):
    label: Text
    href: Annotated[str, Field(pattern=r"^/")]


class Badge(BaseModel):
    icon: Text
    label: Text


class Faq(BaseModel):
    question: Annotated[str, Field(min_length=10)]
    answer: Annotated[str, Field(min_length=10)]


class CoverItem(BaseModel):
    title: str
    description: str


class WhyChooseItem(BaseModel):
    bold: str
    text: str


class Service(BaseModel):
    title: Text
    slug: Annotated[str, Field(min_length=1, pattern=r"^[a-z0-9-]+$")]
    description: Annotated[str, Field(min_length=10)]
    short_description: Annotated[str, Field(min_length=5, alias="shortDescription")]
    features: Annotated[list[str], Field(min_length=1)]
    faqs: Annotated[list[Faq], Field(min_length=1)]
    hero_subtitle: Annotated[str, Field(min_length=5, alias="heroSubtitle")]
    long_description: Annotated[str, Field(min_length=20, alias="longDescription")]
    what_we_cover: Annotated[list[CoverItem], Field(min_length=1, alias="whatWeCover")]
    why_choose_us: Annotated[list[WhyChooseItem], Field(min_length=1, alias="whyChooseUs")]


class Coords(BaseModel):
    lat: float
    lng: float


class Address(BaseModel):
    street: Text
    city: Annotated[str, Field(min_length=2)]
    region: Annotated[str, Field(min_length=2)]
    postal_code: Annotated[str, Field(min_length=1, alias="postalCode")]
    country: Literal["ZA"]
    coords: Coords


class Theme(BaseModel):
    primary: HexColor
    primary_light: HexColor = Field(alias="primaryLight")
    accent: HexColor
    accent_light: HexColor = Field(alias="accentLight")
    background: HexColor
    surface: HexColor
    text: HexColor
    muted: HexColor
    display_font: Annotated[str, Field(min_length=2, alias="displayFont")]
    body_font: Annotated[str, Field(min_length=2, alias="bodyFont")]
    accent_font: str | None = Field(default=None, alias="accentFont")


class WhyChooseCard(BaseModel):
    icon: str
    title: Annotated[str, Field(min_length=2)]
    description: Annotated[str, Field(min_length=10)]


class Homepage(BaseModel):
    title: str
    meta_title: MetaTitle = Field(alias="metaTitle")
    meta_description: Annotated[str, Field(min_length=50, max_length=160, alias="metaDescription")]
    hero_title: Annotated[str, Field(min_length=10, alias="heroTitle")]
    hero_subtitle: Annotated[str, Field(min_length=10, alias="heroSubtitle")]
    why_choose_title: Annotated[str, Field(min_length=3, alias="whyChooseTitle")]
    why_choose_subtitle: Annotated[str, Field(min_length=5, alias="whyChooseSubtitle")]
    why_choose_cards: Annotated[list[WhyChooseCard], Field(min_length=3, alias="whyChooseCards")]
    faqs: Annotated[list[Faq], Field(min_length=1)]


class Stat(BaseModel):
    value: str
    label: str


class About(BaseModel):
    meta_title: MetaTitle = Field(alias="metaTitle")
    meta_description: Annotated[str, Field(min_length=30, max_length=160, alias="metaDescription")]
    hero_title: Annotated[str, Field(min_length=3, alias="heroTitle")]
    hero_subtitle: Annotated[str, Field(min_length=5, alias="heroSubtitle")]
    heading: Annotated[str, Field(min_length=3)]
    paragraphs: Annotated[list[Annotated[str, Field(min_length=20)]], Field(min_length=1)]
    badge: Annotated[str, Field(min_length=2)]
    stats: Annotated[list[Stat], Field(min_length=2)]


class HoursEntry(BaseModel):
    label: str
    days: str
    hours: str


class Hours(BaseModel):
    standard: HoursEntry
    emergency: HoursEntry


class Contact(BaseModel):
    meta_title: MetaTitle = Field(alias="metaTitle")
    meta_description: Annotated[str, Field(min_length=30, max_length=160, alias="metaDescription")]
    hero_title: Annotated[str, Field(min_length=3, alias="heroTitle")]
    hero_subtitle: Annotated[str, Field(min_length=5, alias="heroSubtitle")]
    hours: Hours
    faqs: Annotated[list[Faq], Field(min_length=1)]


class ReviewItem(BaseModel):
    name: str
    text: str
    rating: float


class Reviews(BaseModel):
    meta_title: Annotated[str, Field(min_length=5, alias="metaTitle")]
    meta_description: Annotated[str, Field(min_length=10, alias="metaDescription")]
    average_rating: Annotated[float, Field(ge=0, le=5, alias="averageRating")]
    total_reviews: Annotated[float, Field(ge=0, alias="totalReviews")]
    source_summary: str = Field(alias="sourceSummary")
    items: list[ReviewItem]


class ServicesPage(BaseModel):
    meta_title: Annotated[str, Field(min_length=5, alias="metaTitle")]
    meta_description: Annotated[str, Field(min_length=10, alias="metaDescription")]
    hero_title: Annotated[str, Field(min_length=3, alias="heroTitle")]
    hero_subtitle: Annotated[str, Field(min_length=5, alias="heroSubtitle")]


class Legal(BaseModel):
    registrations: Annotated[list[str], Field(min_length=1)]
    services_list: Annotated[list[str], Field(min_length=1, alias="servicesList")]


class SiteConfig(BaseModel):
    """The populated site as declared by ``export const site: SiteConfig``.

    Unknown keys are ignored; every listed key is required.
    """

    name: Annotated[str, Field(min_length=2)]
    tagline: Annotated[str, Field(min_length=3)]
    description: Annotated[str, Field(min_length=10)]
    founding_year: Annotated[str, Field(pattern=r"^\d{4}$", alias="foundingYear")]
    founder: Annotated[str, Field(min_length=2)]
    url: str

    phone: Annotated[str, Field(min_length=8)]
    phone_raw: Digits = Field(alias="phoneRaw")
    whatsapp: Digits
    email: Annotated[str, Field(pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")]

    address: Address
    theme: Theme

    nav: Annotated[list[NavItem], Field(min_length=3)]
    badges: Annotated[list[Badge], Field(min_length=1)]
    services: Annotated[list[Service], Field(min_length=1, max_length=6)]

    homepage: Homepage
    about: About
    contact: Contact
    reviews: Reviews
    services_page: ServicesPage = Field(alias="servicesPage")
    legal: Legal

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not (is_valid_url(value) or value.startswith("https://")):
            raise ValueError(f"not a valid URL: {value!r}")
        return value


def ts_literal_to_json(literal: str) -> str:
    """Rewrite a plain TypeScript object literal as JSON text.

    Identifier keys are quoted, single-quoted strings become double-quoted
    and trailing commas are removed. String contents are never touched.
    """

    def convert(match: re.Match[str]) -> str:
        if match.group("key"):
            return f'"{match.group("key")}"'
        if match.group("single"):
            inner = match.group("single")[1:-1].replace("\\'", "'")
            return json.dumps(inner, ensure_ascii=False)
        if match.group("comma"):
            return ""
        return match.group(0)

    return _TOKEN_RE.sub(convert, literal)


def _format_issue(item: dict[str, Any]) -> str:
    loc = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
    return f"{loc}: {item.get('msg')}"


def validate_site_config_text(text: str) -> list[str]:
    """Return every problem found in the site config source ``text``.

    Template defaults are reported first, then schema violations as
    ``path.to.field: message``. An empty list means the config is valid.
    """
    errors = [
        f'Template default still present: "{token}"' for token in TEMPLATE_DEFAULTS if token in text
    ]
    match = _EXPORT_RE.search(text)
    if match is None:
        errors.append(f"Could not extract SiteConfig object from {SITE_CONFIG_RELPATH}")
        return errors
    try:
        document = json.loads(ts_literal_to_json(match.group(1)))
    except json.JSONDecodeError as exc:
        logger.debug(f"Site config literal is not plain data, skipping schema check: {exc}")
        return errors
    try:
        SiteConfig.model_validate(document)
    except ValidationError as exc:
        errors.extend(_format_issue(item) for item in exc.errors())
    return errors


def validate_site_config(project_path: Path | str) -> list[str]:
    """Validate ``src/site.config.ts`` inside ``project_path``."""
    config_path = Path(project_path) / SITE_CONFIG_RELPATH
    if not config_path.exists():
        return [f"{SITE_CONFIG_RELPATH} does not exist"]
    return validate_site_config_text(config_path.read_text(encoding="utf-8"))


__all__ = ["SiteConfig", "ts_literal_to_json", "validate_site_config", "validate_site_config_text"]
