"""Stable Diffusion / Stable Video Diffusion REST client.

Talks to an Automatic1111-compatible server: keyframes are rendered with
``POST /sdapi/v1/txt2img`` and animated with the server's SVD endpoint
(``svd.animate_path``, ``/sdapi/v1/img2vid`` by default).
"""

import logging
from typing import Any, Optional
from urllib.parse import urljoin

import httpx

from vidagents.errors import BackendJobError
from vidagents.services.service_client import ServiceClient

logger = logging.getLogger(__name__)


class StableDiffusionClient(ServiceClient):
    """Async client for keyframe rendering and SVD animation."""

    service_name = "Stable Diffusion"

    def __init__(
        self,
        host: str,
        *,
        animate_path: str = "/sdapi/v1/img2vid",
        job_timeout: float = 900.0,
        **kwargs,
    ):
        super().__init__(host, **kwargs)
        self.animate_path = animate_path
        # img2vid answers only once the clip is rendered
        self.job_timeout = job_timeout

    async def txt2img(
        self,
        *,
        prompt: str,
        negative_prompt: str = "",
        width: int = 1024,
        height: int = 576,
        steps: int = 20,
        seed: int = -1,
    ) -> str:
        """Render a single image and return it as a base64 PNG string."""
        payload = {
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "width": width,
            "height": height,
            "steps": steps,
            "seed": seed,
            "batch_size": 1,
            "n_iter": 1,
        }
        logger.info(
            "POST %s/sdapi/v1/txt2img %dx%d steps=%d seed=%s",
            self.host, width, height, steps, seed,
        )
        data = await self._json(
            "POST", "/sdapi/v1/txt2img", json=payload, idempotent=False,
        )
        images = data.get("images") or []
        if not images:
            raise BackendJobError("Stable Diffusion txt2img returned no images")
        return images[0]

    async def img2vid(
        self,
        *,
        init_image: str,
        width: int,
        height: int,
        fps: int,
        num_frames: int,
        motion_bucket_id: int = 127,
        seed: int = -1,
        prompt: Optional[str] = None,
    ) -> dict[str, Any]:
        """Animate ``init_image`` (URL or data URI) with SVD.

        Returns:
            The server response with ``video_url`` resolved to an absolute URL.
        """
        payload = {
            "init_image": init_image,
            "width": width,
            "height": height,
            "fps": fps,
            "num_frames": num_frames,
            "motion_bucket_id": motion_bucket_id,
            "seed": seed,
        }
        if prompt:
            payload["prompt"] = prompt
        logger.info(
            "POST %s%s %dx%d frames=%d fps=%d motion_bucket_id=%d",
            self.host, self.animate_path, width, height, num_frames, fps, motion_bucket_id,
        )
        data = await self._json(
            "POST",
            self.animate_path,
            json=payload,
            idempotent=False,
            timeout=httpx.Timeout(self.job_timeout, connect=self.connect_timeout),
        )
        video_url = data.get("video_url") or data.get("url")
        if not video_url:
            raise BackendJobError(
                f"SVD response missing video_url (keys: {sorted(data.keys())})"
            )
        data["video_url"] = urljoin(self.host + "/", video_url)
        return data
