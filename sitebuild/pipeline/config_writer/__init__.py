"""Idempotent in-place edits of the generated site's config module."""

from __future__ import annotations

from .content import build_nav, build_testimonial_items, inject_content, inject_reviews
from .mutator import (
    ConfigDocument,
    replace_key_value,
    replace_key_value_count,
    replace_numeric_value,
    replace_numeric_value_count,
    replace_section,
    replace_section_count,
    serialize_to_ts,
)

__all__ = [
    "ConfigDocument",
    "build_nav",
    "build_testimonial_items",
    "inject_content",
    "inject_reviews",
    "replace_key_value",
    "replace_key_value_count",
    "replace_numeric_value",
    "replace_numeric_value_count",
    "replace_section",
    "replace_section_count",
    "serialize_to_ts",
]
