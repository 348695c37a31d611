"""Inject generated content and collected reviews into ``site.config.ts``.

Both functions work on a :class:`ConfigDocument` so a missing anchor is
recorded rather than raised. Callers decide whether to write the result.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

from .mutator import ConfigDocument, serialize_to_ts

logger = logging.getLogger(__name__)

# SVG path data assigned to "why choose us" cards in order: clock, shield,
# pin, phone, star, lightning.
WHY_CHOOSE_ICON_PATHS: tuple[str, ...] = (
    "M12 8v4l3 3m6-3a9 9 0 11-18 0 9 9 0 0118 0z",
    "M9 12l2 2 4-4m5.618-4.016A11.955 11.955 0 0112 2.944a11.955 11.955 0 01-8.618 "
    "3.04A12.02 12.02 0 003 9c0 5.591 3.824 10.29 9 11.622 5.176-1.332 9-6.03 "
    "9-11.622 0-1.042-.133-2.052-.382-3.016z",
    "M17.657 16.657L13.414 20.9a1.998 1.998 0 01-2.827 0l-4.244-4.243a8 8 0 1111.314 0z",
    "M3 5a2 2 0 012-2h3.28a1 1 0 01.948.684l1.498 4.493a1 1 0 01-.502 1.21l-2.257 "
    "1.13a11.042 11.042 0 005.516 5.516l1.13-2.257a1 1 0 011.21-.502l4.493 "
    "1.498a1 1 0 01.684.949V19a2 2 0 01-2 2h-1C9.716 21 3 14.284 3 6V5z",
    "M11.049 2.927c.3-.921 1.603-.921 1.902 0l1.519 4.674a1 1 0 00.95.69h4.915c.969 "
    "0 1.371 1.24.588 1.81l-3.976 2.888a1 1 0 00-.363 1.118l1.518 4.674c.3.922-.755 "
    "1.688-1.538 1.118l-3.976-2.888a1 1 0 00-1.176 0l-3.976 2.888c-.783.57-1.838-.197-"
    "1.538-1.118l1.518-4.674a1 1 0 00-.363-1.118l-3.976-2.888c-.784-.57-.38-1.81.588-"
    "1.81h4.914a1 1 0 00.951-.69l1.519-4.674z",
    "M13 10V3L4 14h7v7l9-11h-7z",
)

DEFAULT_CONTACT_HOURS: dict[str, dict[str, str]] = {
    "standard": {
        "label": "Standard Hours",
        "days": "Monday – Saturday",
        "hours": "7:00 AM – 6:00 PM",
    },
    "emergency": {
        "label": "Emergency Service",
        "days": "Available Every Day",
        "hours": "24/7, Call Anytime",
    },
}

MAX_NAV_SERVICES = 4
MAX_TESTIMONIALS = 6
MAX_TESTIMONIAL_CHARS = 300

_EMPTY_ITEMS_RE = re.compile(r"items:\s*\[\]")


def build_nav(services: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Return the main navigation for the generated services.

    Examples
    --------
    >>> [e["href"] for e in build_nav([{"title": "Pipes", "slug": "pipes"}])]
    ['/', '/services/', '/services/pipes/', '/about-us/', '/reviews/', '/contact/']
    """
    entries = [{"label": "Home", "href": "/"}, {"label": "Services", "href": "/services/"}]
    for service in services[:MAX_NAV_SERVICES]:
        entries.append(
            {"label": str(service.get("title", "")), "href": f"/services/{service.get('slug')}/"}
        )
    entries.extend(
        [
            {"label": "About Us", "href": "/about-us/"},
            {"label": "Reviews", "href": "/reviews/"},
            {"label": "Contact", "href": "/contact/"},
        ]
    )
    return entries


def inject_content(doc: ConfigDocument, content: dict[str, Any]) -> ConfigDocument:
    """Replace the content sections of ``doc`` with generated ``content``.

    Sections absent from ``content`` are left alone. ``content`` itself is
    not modified.

    Parameters
    ----------
    doc : ConfigDocument
        Site config to edit in place.
    content : dict[str, Any]
        Parsed ``content-generated.json``.

    Returns
    -------
    ConfigDocument
        ``doc``, for chaining.
    """
    content = copy.deepcopy(content)
    homepage = content.get("homepage")
    if isinstance(homepage, dict):
        for i, card in enumerate(homepage.get("whyChooseCards") or []):
            if isinstance(card, dict):
                card["icon"] = WHY_CHOOSE_ICON_PATHS[i % len(WHY_CHOOSE_ICON_PATHS)]

    services = content.get("services")
    if isinstance(services, list):
        doc.set_section("services", services)
    if isinstance(homepage, dict):
        doc.set_section("homepage", {"title": "Home", **homepage})
    if isinstance(content.get("about"), dict):
        doc.set_section("about", content["about"])
    if isinstance(content.get("contact"), dict):
        doc.set_section("contact", {**content["contact"], "hours": DEFAULT_CONTACT_HOURS})
    if isinstance(content.get("reviews"), dict):
        doc.set_section(
            "reviews",
            {**content["reviews"], "averageRating": 5, "totalReviews": 0, "items": []},
        )
    if isinstance(content.get("servicesPage"), dict):
        doc.set_section("servicesPage", content["servicesPage"])
    if isinstance(content.get("legal"), dict):
        doc.set_section(
            "legal", {"registrations": ["Fully registered and accredited"], **content["legal"]}
        )
    if content.get("whatsappMessage"):
        doc.set_value("whatsappMessage", str(content["whatsappMessage"]))
    if isinstance(services, list):
        doc.set_section("nav", build_nav([s for s in services if isinstance(s, dict)]))
    return doc


def build_testimonial_items(reviews: dict[str, Any]) -> list[dict[str, Any]]:
    """Map collected testimonials onto the site's review item shape."""
    items = []
    for entry in (reviews.get("testimonials") or [])[:MAX_TESTIMONIALS]:
        item: dict[str, Any] = {
            "name": entry.get("author") or "Customer",
            "text": (entry.get("quote") or "")[:MAX_TESTIMONIAL_CHARS],
            "rating": entry.get("rating") or 5,
            "source": entry.get("platform") or "google",
        }
        if entry.get("date"):
            item["date"] = entry["date"]
        items.append(item)
    return items


def inject_reviews(doc: ConfigDocument, reviews: dict[str, Any]) -> ConfigDocument:
    """Fill the review aggregate and the empty ``items`` list from ``reviews``.

    Only an empty ``items: []`` literal is replaced, so a second call with
    the same data leaves the document unchanged.
    """
    rating = (reviews.get("aggregateRating") or {}).get("combined")
    if isinstance(rating, (int, float)) and not isinstance(rating, bool):
        doc.set_number("averageRating", rating)
    total = (reviews.get("reviewCounts") or {}).get("total")
    if isinstance(total, int) and not isinstance(total, bool) and total:
        doc.set_number("totalReviews", total)
    items = build_testimonial_items(reviews)
    if items:
        serialized = serialize_to_ts(items, 4)
        doc.text = _EMPTY_ITEMS_RE.sub(lambda _m: f"items: {serialized}", doc.text, count=1)
    logger.info(
        f"Reviews injected: rating={rating if rating is not None else 'N/A'}, "
        f"count={total or 0}, testimonials={len(items)}"
    )
    return doc


__all__ = [
    "DEFAULT_CONTACT_HOURS",
    "WHY_CHOOSE_ICON_PATHS",
    "build_nav",
    "build_testimonial_items",
    "inject_content",
    "inject_reviews",
]
