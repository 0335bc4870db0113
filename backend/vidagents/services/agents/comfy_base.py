"""Shared ComfyUI rendering for the orchestrator and NSFW agents.

Handles the submit -> poll -> locate-output cycle so the concrete agents
only decide checkpoints, audio and policy.
"""

import logging
import uuid
from typing import Any, Optional

from vidagents.config import ComfyUIConfig
from vidagents.errors import BackendJobError
from vidagents.schemas.video import NormalizedAgentConfig
from vidagents.services.agents.base import VideoAgent
from vidagents.services.comfyui_client import (
    ComfyUIClient,
    find_image_output,
    find_video_output,
)
from vidagents.services.comfyui_workflows import (
    build_image_workflow,
    build_video_workflow,
    resolve_seed,
)
from vidagents.services.source_images import SourceImageFetcher

logger = logging.getLogger(__name__)


class ComfyWorkflowAgent(VideoAgent):
    """Base for agents that render through a ComfyUI server."""

    def __init__(
        self,
        comfy: ComfyUIClient,
        *,
        checkpoint: str,
        comfy_settings: Optional[ComfyUIConfig] = None,
        source_images: Optional[SourceImageFetcher] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.comfy = comfy
        self.checkpoint = checkpoint
        self.comfy_settings = comfy_settings or ComfyUIConfig()
        self.source_images = source_images or SourceImageFetcher()

    async def _upload_source_image(self, source_image: str) -> str:
        image_bytes = await self.source_images.fetch(source_image)
        return await self.comfy.upload_file(
            image_bytes, f"{self.key}_{uuid.uuid4().hex[:12]}.png"
        )

    async def _render(
        self,
        prompt: str,
        config: NormalizedAgentConfig,
        *,
        audio_filename: Optional[str] = None,
    ) -> tuple[str, dict[str, Any]]:
        """Queue the workflow for ``config.mode`` and wait for its output.

        Returns:
            (media_url, metadata)
        """
        seed = resolve_seed(config)
        image_filename = None
        if config.source_image:
            image_filename = await self._upload_source_image(config.source_image)

        cs = self.comfy_settings
        common = dict(
            prompt=prompt,
            config=config,
            checkpoint=self.checkpoint,
            seed=seed,
            image_filename=image_filename,
            sampler_name=cs.sampler_name,
            scheduler=cs.scheduler,
            cfg=cs.cfg,
            filename_prefix=f"{cs.filename_prefix}_{self.key}",
        )
        if config.is_video:
            workflow = build_video_workflow(
                motion_model=cs.motion_model,
                audio_filename=audio_filename,
                **common,
            )
        else:
            workflow = build_image_workflow(**common)

        logger.info(
            "%s: %s %dx%d frames=%d seed=%d checkpoint=%s",
            self.key, config.mode, config.width, config.height,
            config.num_frames if config.is_video else 1, seed, self.checkpoint,
        )
        prompt_id = await self.comfy.queue_prompt(workflow)
        outputs = await self.comfy.wait_for_outputs(
            prompt_id, timeout_s=self.job_timeout, poll_interval_s=self.poll_interval,
        )

        found = find_video_output(outputs) if config.is_video else find_image_output(outputs)
        if not found:
            raise BackendJobError(
                f"No {'video' if config.is_video else 'image'} output in ComfyUI history "
                f"for {prompt_id}. Output nodes: {sorted(outputs.keys())}",
                agent=self.key,
            )
        filename, subfolder, output_type = found

        metadata = {
            "comfyUrl": self.comfy.host,
            "promptId": prompt_id,
            "width": config.width,
            "height": config.height,
            "fps": config.fps,
            "seed": seed,
            "checkpoint": self.checkpoint,
            "filename": filename,
        }
        return self.comfy.view_url(filename, subfolder, output_type), metadata

    async def aclose(self) -> None:
        await self.comfy.close()
        await self.source_images.close()
