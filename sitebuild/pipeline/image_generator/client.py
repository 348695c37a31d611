"""Asynchronous client for the queued image generation service.

``FalClient`` is the networking boundary for image generation. One call to
:meth:`FalClient.generate` produces one image file:

1. submit the prompt to the queue endpoint;
2. if the submission already carries an image URL, download it;
3. otherwise poll the request status (bounded number of polls) until it is
   ``COMPLETED`` or ``FAILED``, fetch the result and download the image.

Every HTTP request carries an ``aiohttp.ClientTimeout``. Failures are raised
as ``ExternalServiceError`` (``transient`` reflects whether a retry can
help) or ``TimeoutExceededError`` when polling is exhausted. Retrying is the
caller's job; see :mod:`sitebuild.pipeline.image_generator.executor`.

Examples
--------
>>> import aiohttp
>>> from sitebuild.pipeline.image_generator import FalClient, FalConfig
>>> async def main(task):
...     async with aiohttp.ClientSession() as session:
...         await FalClient(FalConfig()).generate(session, task)
>>> # asyncio.run(main(task))
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiohttp
from aiolimiter import AsyncLimiter

from sitebuild.config import FAL_DOWNLOAD_CHUNK_BYTES, FAL_NEGATIVE_PROMPT
from sitebuild.exceptions import ExternalServiceError, TimeoutExceededError
from sitebuild.setup.fs_utils import atomic_writer

from .prompts import GenerationTask

logger = logging.getLogger(__name__)


def _first_image_url(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    images = data.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        url = images[0].get("url")
        return url if isinstance(url, str) and url else None
    return None


class FalClient:
    r"""Submit, poll and download images from the generation queue.

    Parameters
    ----------
    config : Any
        Object exposing ``api_key``, ``queue_url``, ``max_polls``,
        ``poll_interval`` and ``request_timeout`` (normally a
        :class:`~sitebuild.pipeline.image_generator.config.FalConfig`).
    limiter : AsyncLimiter | None, optional
        Submission pacing. Defaults to ``config.target_rpm`` per minute.
    """

    def __init__(self, config: Any, limiter: AsyncLimiter | None = None) -> None:
        self.config = config
        self.limiter = limiter or AsyncLimiter(getattr(config, "target_rpm", 60), 60)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Key {self.config.api_key}",
            "Content-Type": "application/json",
        }

    @property
    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=getattr(self.config, "request_timeout", 120))

    def build_payload(self, task: GenerationTask) -> dict[str, Any]:
        return {
            "prompt": task.prompt,
            "negative_prompt": FAL_NEGATIVE_PROMPT,
            "image_size": {"width": task.width, "height": task.height},
            "num_images": 1,
            "num_inference_steps": 30,
            "guidance_scale": 7.5,
            "enable_safety_checker": False,
        }

    async def _read_json(self, response: Any, what: str) -> Any:
        text = await response.text()
        if response.status != 200:
            raise ExternalServiceError(
                f"{what} failed with HTTP {response.status}: {text[:200]}",
                context={"status": response.status},
                transient=response.status == 429 or response.status >= 500,
            )
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExternalServiceError(
                f"{what} returned invalid JSON", context={"body": text[:200]}
            ) from exc

    async def _get_json(self, session: aiohttp.ClientSession, url: str, what: str) -> Any:
        async with session.get(url, headers=self._headers, timeout=self._timeout) as response:
            return await self._read_json(response, what)

    async def submit(self, session: aiohttp.ClientSession, task: GenerationTask) -> Any:
        """Post the generation request and return the decoded submission."""
        async with self.limiter:
            async with session.post(
                self.config.queue_url,
                json=self.build_payload(task),
                headers=self._headers,
                timeout=self._timeout,
            ) as response:
                return await self._read_json(response, f"Submit {task.slot}")

    async def wait_for_result(
        self, session: aiohttp.ClientSession, request_id: str, slot: str
    ) -> str:
        """Poll a queued request until it yields an image URL.

        Raises
        ------
        ExternalServiceError
            If the request fails or completes without an image.
        TimeoutExceededError
            If ``max_polls`` polls pass without a terminal status.
        """
        status_url = f"{self.config.queue_url}/requests/{request_id}/status"
        result_url = f"{self.config.queue_url}/requests/{request_id}"
        for _ in range(self.config.max_polls):
            await asyncio.sleep(self.config.poll_interval)
            status = await self._get_json(session, status_url, f"Status {slot}")
            state = status.get("status") if isinstance(status, dict) else None
            if state == "COMPLETED":
                result = await self._get_json(session, result_url, f"Result {slot}")
                url = _first_image_url(result)
                if url is None:
                    raise ExternalServiceError(
                        f"Generation for {slot} completed without an image URL",
                        transient=False,
                    )
                return url
            if state == "FAILED":
                raise ExternalServiceError(
                    f"Generation for {slot} failed: {status.get('error') or 'unknown error'}",
                    context={"request_id": request_id},
                )
            logger.debug(f"{slot} still {state}")
        raise TimeoutExceededError(
            f"Generation for {slot} did not finish after {self.config.max_polls} polls",
            context={"request_id": request_id},
        )

    async def download(self, session: aiohttp.ClientSession, url: str, dest: Path) -> Path:
        """Stream ``url`` into ``dest``; a partial body never reaches ``dest``."""
        async with session.get(url, timeout=self._timeout) as response:
            if response.status != 200:
                raise ExternalServiceError(
                    f"Image download failed with HTTP {response.status}",
                    context={"url": url},
                    transient=response.status == 429 or response.status >= 500,
                )
            with atomic_writer(dest) as handle:
                async for chunk in response.content.iter_chunked(FAL_DOWNLOAD_CHUNK_BYTES):
                    handle.write(chunk)
        return dest

    async def generate(self, session: aiohttp.ClientSession, task: GenerationTask) -> Path:
        """Produce ``task.output`` for one prompt and return its path."""
        submission = await self.submit(session, task)
        url = _first_image_url(submission)
        if url is None:
            request_id = submission.get("request_id") if isinstance(submission, dict) else None
            if not request_id:
                raise ExternalServiceError(
                    f"Submit {task.slot} returned neither images nor request_id",
                    transient=False,
                )
            url = await self.wait_for_result(session, request_id, task.slot)
        return await self.download(session, url, task.output)


__all__ = ["FalClient"]
