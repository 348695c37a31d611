"""Tests for structural validation of the populated site config."""

import copy
from pathlib import Path

import pytest

from sitebuild.pipeline.config_writer import serialize_to_ts
from sitebuild.pipeline.gate import check_artifacts, validate_site_config
from sitebuild.pipeline.gate.site_config import ts_literal_to_json, validate_site_config_text

FAQ = {"question": "Do you offer call-outs?", "answer": "Yes, seven days a week."}

SERVICE = {
    "title": "Blocked Drains",
    "slug": "blocked-drains",
    "description": "Fast clearing of blocked drains and sewers.",
    "shortDescription": "Drains cleared.",
    "features": ["CCTV inspection"],
    "faqs": [FAQ],
    "heroSubtitle": "Flowing again today",
    "longDescription": "We clear kitchen, bathroom and main sewer blockages.",
    "whatWeCover": [{"title": "Kitchens", "description": "Grease and food build-up"}],
    "whyChooseUs": [{"bold": "Fast", "text": "Same-day service"}],
}

SITE = {
    "name": "Acme Plumbing",
    "tagline": "Plumbing done right",
    "description": "Family-run plumbers serving Cape Town.",
    "foundingYear": "2009",
    "founder": "Sam Dlamini",
    "url": "https://acme-plumbing.example",
    "phone": "021 555 0199",
    "phoneRaw": "0215550199",
    "whatsapp": "27215550199",
    "email": "hello@acme-plumbing.example",
    "address": {
        "street": "12 Long Street",
        "city": "Cape Town",
        "region": "Western Cape",
        "postalCode": "8001",
        "country": "ZA",
        "coords": {"lat": -33.92, "lng": 18.42},
    },
    "theme": {
        "primary": "#1A2B3C",
        "primaryLight": "#2A3B4C",
        "accent": "#FF6600",
        "accentLight": "#FF8833",
        "background": "#FFFFFF",
        "surface": "#F5F5F5",
        "text": "#111111",
        "muted": "#666666",
        "displayFont": "Inter",
        "bodyFont": "Inter",
    },
    "nav": [
        {"label": "Home", "href": "/"},
        {"label": "Services", "href": "/services"},
        {"label": "Contact", "href": "/contact"},
    ],
    "badges": [{"icon": "shield", "label": "Licensed"}],
    "services": [SERVICE],
    "homepage": {
        "title": "Home",
        "metaTitle": "Acme Plumbing | Cape Town Plumbers",
        "metaDescription": "Trusted Cape Town plumbers for blocked drains, geysers and leak repairs.",
        "heroTitle": "Plumbing you can trust",
        "heroSubtitle": "Same-day call-outs across Cape Town",
        "whyChooseTitle": "Why Acme",
        "whyChooseSubtitle": "Local and reliable",
        "whyChooseCards": [
            {"icon": "clock", "title": "Fast", "description": "On site within two hours."},
            {"icon": "star", "title": "Rated", "description": "Highly rated by neighbours."},
            {"icon": "tool", "title": "Skilled", "description": "Qualified plumbers only."},
        ],
        "faqs": [FAQ],
    },
    "about": {
        "metaTitle": "About Acme Plumbing",
        "metaDescription": "Meet the family-run team behind Acme Plumbing.",
        "heroTitle": "About us",
        "heroSubtitle": "Since 2009",
        "heading": "Our story",
        "paragraphs": ["We started with one van and a toolbox in 2009."],
        "badge": "Family run",
        "stats": [{"value": "15+", "label": "Years"}, {"value": "4.9", "label": "Rating"}],
    },
    "contact": {
        "metaTitle": "Contact Acme Plumbing",
        "metaDescription": "Call, WhatsApp or email Acme Plumbing today.",
        "heroTitle": "Contact",
        "heroSubtitle": "We reply fast",
        "hours": {
            "standard": {"label": "Office", "days": "Mon-Fri", "hours": "8am-5pm"},
            "emergency": {"label": "Emergency", "days": "Every day", "hours": "24 hours"},
        },
        "faqs": [FAQ],
    },
    "reviews": {
        "metaTitle": "Reviews",
        "metaDescription": "What customers say",
        "averageRating": 4.8,
        "totalReviews": 37,
        "sourceSummary": "Google",
        "items": [{"name": "Lee", "text": "Great work", "rating": 5}],
    },
    "servicesPage": {
        "metaTitle": "Services",
        "metaDescription": "Everything we fix",
        "heroTitle": "Services",
        "heroSubtitle": "Drains to geysers",
    },
    "legal": {"registrations": ["PIRB 12345"], "servicesList": ["Blocked drains"]},
}


def render(site: dict) -> str:
    return (
        'import type { SiteConfig } from "./types";\n\n'
        f"export const site: SiteConfig = {serialize_to_ts(site)};\n"
    )


@pytest.fixture
def site() -> dict:
    return copy.deepcopy(SITE)


def test_valid_config_passes(site: dict):
    assert validate_site_config_text(render(site)) == []


def test_missing_export_is_reported():
    errors = validate_site_config_text('export const siteConfig = { name: "Acme" };\n')
    assert errors == ["Could not extract SiteConfig object from src/site.config.ts"]


def test_non_literal_config_only_gets_default_scan(site: dict):
    text = render(site).replace('"Acme Plumbing",', "`Acme ${suffix}`,", 1)
    assert validate_site_config_text(text) == []
    assert validate_site_config_text(text + "// PLACEHOLDER\n") == [
        'Template default still present: "PLACEHOLDER"'
    ]


def test_ts_literal_conversion_leaves_strings_alone():
    literal = "{ title: 'It\\'s here: now', note: \"a, }\", list: [1, 2,], }"
    assert ts_literal_to_json(literal) == (
        '{ "title": "It\'s here: now", "note": "a, }", "list": [1, 2] }'
    )


@pytest.mark.parametrize(
    "mutate, location",
    [
        (lambda s: s.update(name="A"), "name"),
        (lambda s: s.update(phone="555"), "phone"),
        (lambda s: s.update(phoneRaw="021-555"), "phoneRaw"),
        (lambda s: s.update(whatsapp="12345"), "whatsapp"),
        (lambda s: s.update(email="hello-at-acme"), "email"),
        (lambda s: s.update(url="acme.example"), "url"),
        (lambda s: s.update(foundingYear="09"), "foundingYear"),
        (lambda s: s.update(services=[]), "services"),
        (lambda s: s.update(services=[SERVICE] * 7), "services"),
        (lambda s: s["services"][0].update(slug="Blocked Drains"), "services.0.slug"),
        (lambda s: s.update(nav=s["nav"][:2]), "nav"),
        (lambda s: s["nav"][0].update(href="home"), "nav.0.href"),
        (lambda s: s["homepage"].update(metaTitle="Too short"), "homepage.metaTitle"),
        (lambda s: s["homepage"].update(metaTitle="x" * 71), "homepage.metaTitle"),
        (lambda s: s["theme"].update(primary="blue"), "theme.primary"),
        (lambda s: s["address"].update(country="US"), "address.country"),
        (lambda s: s["reviews"].update(averageRating=5.5), "reviews.averageRating"),
    ],
)
def test_structural_rules(site: dict, mutate, location: str):
    mutate(site)
    errors = validate_site_config_text(render(site))
    assert [e.split(":")[0] for e in errors] == [location]


def test_content_gate_reports_first_problem(tmp_path: Path, site: dict):
    config = tmp_path / "src" / "site.config.ts"
    assert validate_site_config(tmp_path) == ["src/site.config.ts does not exist"]
    config.parent.mkdir(parents=True)
    config.write_text(render(site), encoding="utf-8")
    assert check_artifacts(tmp_path, "phase-4", "template") is None

    site["nav"] = []
    site["homepage"]["metaTitle"] = "Short"
    config.write_text(render(site), encoding="utf-8")
    assert check_artifacts(tmp_path, "phase-4", "template") == (
        "Config validation failed: nav: List should have at least 3 items after validation, not 0"
    )
    assert len(validate_site_config(tmp_path)) == 2
