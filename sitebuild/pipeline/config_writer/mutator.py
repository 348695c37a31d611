"""Idempotent, anchored edits of ``src/site.config.ts``.

The site config is a human-authored TypeScript module. Rather than parsing
and re-emitting it (which would discard comments, ordering and hand edits),
values are replaced in place by anchored text surgery:

- ``replace_key_value`` swaps the quoted string literal after ``key:``.
- ``replace_numeric_value`` swaps the numeric literal after ``key:``.
- ``replace_section`` swaps the ``[...]``/``{...}`` block that follows a
  top-level (two-space indented) ``key:``.

Every replacement writes a literal that the same pattern matches in full,
so applying an edit twice yields byte-identical text. A key that cannot be
found leaves the document unchanged; ``ConfigDocument`` records such misses
for callers that need to know.

Examples
--------
>>> replace_key_value('  name: "Your Business Name",', "name", "Acme")
'  name: "Acme",'
>>> replace_numeric_value("  rating: 4.1,", "rating", 4.8)
'  rating: 4.8,'
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from sitebuild.config import SITE_CONFIG_RELPATH
from sitebuild.setup.fs_utils import atomic_write_text

logger = logging.getLogger(__name__)

_STRING_LITERAL = r"""(?:"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')"""
_NUMBER_LITERAL = r"-?\d+(?:\.\d+)?"
_TS_KEY_RE = re.compile(r'^(\s*)"([A-Za-z_$][A-Za-z0-9_$]*)":', re.MULTILINE)


def _key_anchor(key: str) -> str:
    return rf"(?<![\w$])({re.escape(key)}:\s*)"


def serialize_to_ts(value: Any, base_indent: int = 0) -> str:
    """Serialize ``value`` as a TypeScript literal.

    JSON with two-space indentation, identifier keys unquoted, and every
    line after the first shifted right by ``base_indent`` spaces.

    Examples
    --------
    >>> print(serialize_to_ts({"name": "A", "x-y": 1}, 2))
    {
        name: "A",
        "x-y": 1
      }
    """
    text = _TS_KEY_RE.sub(r"\1\2:", json.dumps(value, indent=2, ensure_ascii=False))
    pad = " " * base_indent
    lines = text.split("\n")
    return "\n".join([lines[0]] + [pad + line for line in lines[1:]])


def _format_number(value: int | float) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"numeric value expected, got {type(value).__name__}")
    text = str(value)
    if "e" in text or "E" in text:
        text = format(value, "f").rstrip("0").rstrip(".")
    return text


def replace_key_value_count(doc: str, key: str, value: str) -> tuple[str, int]:
    """Like :func:`replace_key_value` but also return the replacement count."""
    literal = json.dumps(str(value), ensure_ascii=False)
    pattern = re.compile(_key_anchor(key) + _STRING_LITERAL)
    return pattern.subn(lambda m: m.group(1) + literal, doc, count=1)


def replace_key_value(doc: str, key: str, value: str) -> str:
    """Replace the string literal assigned to the first ``key:`` in ``doc``.

    Parameters
    ----------
    doc : str
        Config text.
    key : str
        Property name. Matched literally, not as a regex.
    value : str
        New value, written as a double-quoted JSON string.

    Returns
    -------
    str
        Updated text, or ``doc`` unchanged when the key is absent.
    """
    new_doc, count = replace_key_value_count(doc, key, value)
    if not count:
        logger.debug(f"Key {key!r} not found; left config unchanged")
    return new_doc


def replace_numeric_value_count(doc: str, key: str, value: int | float) -> tuple[str, int]:
    literal = _format_number(value)
    pattern = re.compile(_key_anchor(key) + _NUMBER_LITERAL + r"(?![\d.])")
    return pattern.subn(lambda m: m.group(1) + literal, doc, count=1)


def replace_numeric_value(doc: str, key: str, value: int | float) -> str:
    """Replace the numeric literal assigned to the first ``key:`` in ``doc``."""
    new_doc, count = replace_numeric_value_count(doc, key, value)
    if not count:
        logger.debug(f"Numeric key {key!r} not found; left config unchanged")
    return new_doc


def replace_section_count(doc: str, key: str, value: Any) -> tuple[str, int]:
    """Like :func:`replace_section` but also return the replacement count."""
    if isinstance(value, (list, tuple)):
        opener, closer = r"\[", r"\]"
        value = list(value)
    elif isinstance(value, dict):
        opener, closer = r"\{", r"\}"
    else:
        raise TypeError(f"section value must be a list or dict, got {type(value).__name__}")
    block = (
        rf"(?:{opener}\s*{closer}"
        rf"|{opener}[^\n]*{closer}(?=,[ \t]*$)"
        rf"|{opener}[\s\S]*?\n  {closer})"
    )
    pattern = re.compile(rf"^  {re.escape(key)}:[ \t]*{block},", re.MULTILINE)
    replacement = f"  {key}: {serialize_to_ts(value, 2)},"
    return pattern.subn(lambda _m: replacement, doc, count=1)


def replace_section(doc: str, key: str, value: Any) -> str:
    """Replace the top-level ``key: [...]`` or ``key: {...}`` block.

    The anchor is a two-space indented ``key:`` followed by a bracketed
    block that closes on its own two-space indented line (or inline, for
    one-line and empty blocks) and a trailing comma.

    Raises
    ------
    TypeError
        If ``value`` is neither a list nor a dict.
    """
    new_doc, count = replace_section_count(doc, key, value)
    if not count:
        logger.warning(f"Could not find section {key!r} in site config")
    return new_doc


class ConfigDocument:
    """An in-memory ``site.config.ts`` that tracks which edits missed.

    Attributes
    ----------
    path : Path | None
        Source file, when read from disk.
    text : str
        Current text.
    missing_keys : list[str]
        Keys whose anchors were not found, in call order.
    """

    def __init__(self, text: str, path: Path | None = None) -> None:
        self.path = path
        self.text = text
        self.original = text
        self.missing_keys: list[str] = []

    @classmethod
    def read(cls, project_path: Path | str) -> "ConfigDocument":
        """Load ``src/site.config.ts`` from a project.

        Raises
        ------
        FileNotFoundError
            If the project has no site config.
        """
        path = Path(project_path) / SITE_CONFIG_RELPATH
        if not path.is_file():
            raise FileNotFoundError(f"site.config.ts not found at: {path}")
        return cls(path.read_text(encoding="utf-8"), path)

    def _apply(self, key: str, result: tuple[str, int]) -> bool:
        self.text, count = result
        if not count:
            self.missing_keys.append(key)
        return bool(count)

    def set_value(self, key: str, value: str) -> bool:
        return self._apply(key, replace_key_value_count(self.text, key, value))

    def set_number(self, key: str, value: int | float) -> bool:
        return self._apply(key, replace_numeric_value_count(self.text, key, value))

    def set_section(self, key: str, value: Any) -> bool:
        return self._apply(key, replace_section_count(self.text, key, value))

    @property
    def changed(self) -> bool:
        return self.text != self.original

    def write(self, path: Path | None = None) -> bool:
        """Write the text back if it changed. Returns True when written."""
        target = path or self.path
        if target is None:
            raise ValueError("no destination path for config document")
        if not self.changed and target == self.path:
            return False
        atomic_write_text(target, self.text)
        if self.missing_keys:
            logger.warning(f"Config keys not found: {', '.join(self.missing_keys)}")
        self.original = self.text
        return True


__all__ = [
    "ConfigDocument",
    "replace_key_value",
    "replace_key_value_count",
    "replace_numeric_value",
    "replace_numeric_value_count",
    "replace_section",
    "replace_section_count",
    "serialize_to_ts",
]
