"""Filesystem utilities for durable writes and advisory locking.

This module provides the small set of helpers that every persisted artifact
in a project directory goes through: atomic text/JSON writes, an exclusive
advisory lock on a sidecar file, and a non-blocking variant used to keep a
second build process off the same project.

Functions
---------
- ``atomic_write_text``: Write text via a temp file and ``os.replace``.
- ``atomic_write_bytes``: Binary variant of ``atomic_write_text``.
- ``atomic_writer``: Stream into a temp file that replaces the target on success.
- ``atomic_write_json``: Serialize and atomically write a JSON document.
- ``locked_file``: Hold an exclusive ``fcntl`` lock on ``<path>.lock``.
- ``try_lock``: Acquire a non-blocking exclusive lock or raise.
- ``read_json``: Read and parse a JSON file.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO

from sitebuild.config import STATE_LOCK_SUFFIX
from sitebuild.exceptions import StateLockedError

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    r"""Write ``content`` to ``path`` atomically.

    The content is written to a temporary file in the destination directory,
    flushed and fsynced, then renamed into place with ``os.replace``. Readers
    observe either the previous document or the new one, never a partial
    write.

    Parameters
    ----------
    path : Path
        Destination file. Parent directories are created when missing.
    content : str
        UTF-8 text to write.

    Returns
    -------
    None

    Examples
    --------
    >>> from pathlib import Path
    >>> atomic_write_text(Path("/tmp/example.txt"), "hello")  # doctest: +SKIP
    """
    atomic_write_bytes(path, content.encode("utf-8"))


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Binary counterpart of :func:`atomic_write_text`."""
    with atomic_writer(path) as handle:
        handle.write(content)


@contextlib.contextmanager
def atomic_writer(path: Path) -> Iterator[BinaryIO]:
    """Yield a binary handle whose content replaces ``path`` on success.

    Data goes to a temporary sibling file that is fsynced and renamed into
    place when the block exits normally. If the block raises, the temporary
    file is removed and ``path`` is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as tmp_handle:
            yield tmp_handle
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    """Serialize ``data`` as indented JSON and write it atomically."""
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_json(path: Path) -> Any:
    """Read and parse a UTF-8 JSON file.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    json.JSONDecodeError
        If the content is not valid JSON.
    """
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


@contextlib.contextmanager
def locked_file(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock for ``path`` while the block runs.

    The lock lives on a ``.lock`` sidecar so the data file itself can be
    replaced with ``os.replace`` without disturbing the lock handle.
    """
    lock_path = path.with_name(path.name + STATE_LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def try_lock(lock_path: Path) -> Iterator[None]:
    """Hold a non-blocking exclusive lock on ``lock_path``.

    Parameters
    ----------
    lock_path : Path
        File used as the lock handle. Created when missing.

    Raises
    ------
    StateLockedError
        If another process already holds the lock.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as lock_handle:
        try:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise StateLockedError(
                f"Another build is already running for {lock_path.parent}",
                context={"lock_path": str(lock_path)},
            ) from exc
        logger.debug(f"Acquired run lock {lock_path}")
        try:
            yield
        finally:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


__all__ = [
    "atomic_write_bytes",
    "atomic_write_json",
    "atomic_write_text",
    "atomic_writer",
    "locked_file",
    "read_json",
    "try_lock",
]
