"""ResilientExecutor: concurrent generation batch with retry and a circuit breaker.

The executor turns a list of :class:`GenerationTask` into files on disk
while tolerating a flaky or unavailable remote service:

- Tasks whose output already exists and is at least ``min_bytes`` are
  counted as skipped and never re-run. Smaller files are placeholders and
  are regenerated.
- Every remaining task is launched at once with ``asyncio.gather``. Each
  task catches its own failure, so one exhausted task never cancels its
  siblings.
- Each task retries up to ``max_attempts`` times with exponential backoff
  plus jitter (``base * 2**attempt + uniform(0, jitter)``).
- A shared :class:`CircuitBreaker` counts consecutive failed tasks. When it
  trips, tasks that have not yet entered short-circuit with
  ``CircuitBrokenError`` instead of calling the service. Any success
  resets the counter.
- The manifest is rewritten in full after every task settles.

``run`` never raises for task failures. Whether partial failure blocks the
build is decided by the images gate, which inspects the files directly.

Notes
-----
Breaker bookkeeping happens as tasks settle, on a single event loop, so
"consecutive" follows completion order rather than submission order. The
breaker is advisory: in-flight tasks are not cancelled when it trips.

Examples
--------
>>> import asyncio
>>> async def fake_generate(task):
...     task.output.write_bytes(b"x" * 2048)
>>> executor = ResilientExecutor(fake_generate, ManifestWriter(Path("/tmp/m.json")))
>>> # stats = asyncio.run(executor.run(tasks))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from sitebuild.config import (
    CIRCUIT_BREAKER_THRESHOLD,
    EXECUTOR_BACKOFF_BASE_SECONDS,
    EXECUTOR_BACKOFF_JITTER_SECONDS,
    EXECUTOR_MAX_ATTEMPTS,
    PLACEHOLDER_MAX_BYTES,
)
from sitebuild.exceptions import AppError, CircuitBrokenError, RetryExhaustedError

from .manifest import ExecutionStats, ManifestWriter
from .prompts import GenerationTask

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base: float = EXECUTOR_BACKOFF_BASE_SECONDS,
    jitter: float = EXECUTOR_BACKOFF_JITTER_SECONDS,
    rng: Callable[[], float] = random.random,
) -> float:
    """Return the delay before retry number ``attempt + 1``.

    Examples
    --------
    >>> backoff_delay(2, base=1.0, jitter=0.0)
    4.0
    """
    return base * (2**attempt) + rng() * jitter


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = EXECUTOR_MAX_ATTEMPTS,
    base_delay: float = EXECUTOR_BACKOFF_BASE_SECONDS,
    jitter: float = EXECUTOR_BACKOFF_JITTER_SECONDS,
    label: str = "operation",
) -> T:
    """Await ``fn()`` until it succeeds or ``attempts`` are used up.

    Non-transient ``AppError`` instances are raised immediately since a
    retry cannot change their outcome.

    Raises
    ------
    RetryExhaustedError
        If every attempt failed. The last error is chained as the cause.
    """
    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            return await fn()
        except AppError as exc:
            if not exc.transient:
                raise
            last_error = exc
        except Exception as exc:
            last_error = exc
        if attempt + 1 < attempts:
            delay = backoff_delay(attempt, base_delay, jitter)
            logger.warning(
                f"{label} attempt {attempt + 1}/{attempts} failed: {last_error}; "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
    raise RetryExhaustedError(
        f"{label} failed after {attempts} attempts: {last_error}",
        context={"attempts": attempts},
    ) from last_error


class CircuitBreaker:
    """Shared consecutive-failure counter with a latching tripped flag."""

    def __init__(self, threshold: int = CIRCUIT_BREAKER_THRESHOLD) -> None:
        self.threshold = threshold
        self.consecutive_failures = 0
        self.tripped = False

    def check(self, label: str) -> None:
        """Raise ``CircuitBrokenError`` if the breaker has tripped."""
        if self.tripped:
            raise CircuitBrokenError(
                f"Circuit breaker open: skipping {label}", context={"task": label}
            )

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> bool:
        """Count a failure; return True if this one tripped the breaker."""
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.threshold and not self.tripped:
            self.tripped = True
            return True
        return False


def is_satisfied(path: Path, min_bytes: int = PLACEHOLDER_MAX_BYTES) -> bool:
    """Return True if ``path`` exists and is not a placeholder stub."""
    try:
        return path.is_file() and path.stat().st_size >= min_bytes
    except OSError:
        return False


class ResilientExecutor:
    r"""Run generation tasks concurrently with retries and a circuit breaker.

    Parameters
    ----------
    generate : Callable[[GenerationTask], Awaitable[Any]]
        Coroutine function producing ``task.output``.
    manifest : ManifestWriter
        Destination for progress snapshots.
    max_attempts : int, optional
        Attempts per task, including the first.
    backoff_base, backoff_jitter : float, optional
        Backoff parameters for :func:`retry_async`.
    breaker_threshold : int, optional
        Consecutive failures that trip the breaker.
    min_bytes : int, optional
        Existing outputs at least this large are treated as done.
    entry_gate : contextlib.AbstractAsyncContextManager | None, optional
        Held around each task (for example an ``AsyncLimiter`` or an
        ``asyncio.Semaphore``). The breaker is checked once it is acquired,
        so queued tasks observe a trip that happened while they waited.
    """

    def __init__(
        self,
        generate: Callable[[GenerationTask], Awaitable[Any]],
        manifest: ManifestWriter,
        *,
        max_attempts: int = EXECUTOR_MAX_ATTEMPTS,
        backoff_base: float = EXECUTOR_BACKOFF_BASE_SECONDS,
        backoff_jitter: float = EXECUTOR_BACKOFF_JITTER_SECONDS,
        breaker_threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        min_bytes: int = PLACEHOLDER_MAX_BYTES,
        entry_gate: contextlib.AbstractAsyncContextManager[Any] | None = None,
    ) -> None:
        self.generate = generate
        self.manifest = manifest
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self.min_bytes = min_bytes
        self.entry_gate = entry_gate
        self.breaker = CircuitBreaker(breaker_threshold)
        self.stats = ExecutionStats()

    def _partition(self, tasks: Sequence[GenerationTask]) -> list[GenerationTask]:
        to_run = []
        for task in tasks:
            if is_satisfied(task.output, self.min_bytes):
                logger.info(f"Skip: {task.filename} (already exists)")
                self.stats.skipped += 1
                self.stats.files.append(task.filename)
            else:
                to_run.append(task)
        return to_run

    async def _attempt(self, task: GenerationTask) -> None:
        gate = self.entry_gate if self.entry_gate is not None else contextlib.nullcontext()
        async with gate:
            self.breaker.check(task.slot)
            logger.info(f"Start: {task.filename} [{task.width}x{task.height}]")
            await retry_async(
                lambda: self.generate(task),
                attempts=self.max_attempts,
                base_delay=self.backoff_base,
                jitter=self.backoff_jitter,
                label=f"Generate {task.slot}",
            )

    def _settle(self, task: GenerationTask, error: Exception | None) -> None:
        if error is None:
            self.stats.generated += 1
            self.stats.files.append(task.filename)
            self.breaker.record_success()
            logger.info(f"Done: {task.filename}")
        else:
            self.stats.failed += 1
            self.stats.failures[task.filename] = str(error)
            if isinstance(error, CircuitBrokenError):
                self.stats.breaker_skipped += 1
            else:
                logger.error(f"Failed: {task.filename}: {error}")
                if self.breaker.record_failure():
                    logger.warning(
                        f"Circuit breaker tripped after {self.breaker.consecutive_failures} "
                        "consecutive failures; remaining tasks will be skipped"
                    )
        self.stats.circuit_broken = self.breaker.tripped
        self._write_manifest()

    def _write_manifest(self) -> None:
        try:
            self.manifest.write(self.stats)
        except OSError as exc:
            logger.error(f"Could not write image manifest: {exc}")

    async def _run_one(self, task: GenerationTask) -> None:
        try:
            await self._attempt(task)
        except Exception as exc:
            self._settle(task, exc)
        else:
            self._settle(task, None)

    async def run(self, tasks: Sequence[GenerationTask]) -> ExecutionStats:
        """Execute ``tasks`` and return aggregate statistics.

        Returns
        -------
        ExecutionStats
            Counts for generated, skipped and failed tasks of this call.
            Never raises for task failures or manifest write errors; each
            call starts with fresh counters and a closed breaker.
        """
        self.breaker = CircuitBreaker(self.breaker.threshold)
        self.stats = ExecutionStats()
        to_run = self._partition(tasks)
        self._write_manifest()
        if to_run:
            logger.info(f"Generating {len(to_run)} images concurrently")
            await asyncio.gather(*(self._run_one(task) for task in to_run))
        logger.info(
            f"Image generation: {self.stats.generated} created, {self.stats.skipped} "
            f"skipped, {self.stats.failed} failed ({self.stats.total} total)"
        )
        if self.stats.circuit_broken:
            logger.warning("Circuit breaker was tripped during this batch")
        return self.stats


__all__ = [
    "CircuitBreaker",
    "ResilientExecutor",
    "backoff_delay",
    "is_satisfied",
    "retry_async",
]
