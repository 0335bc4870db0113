"""Stable Video Diffusion agent for short SFW clips.

SVD only animates images, so text-to-video first renders a keyframe with
txt2img and animates that. The output is always a clip, also when an
image format was requested through an explicit override.
"""

import logging
from typing import Optional

from vidagents.config import SVDConfig
from vidagents.schemas.video import GenerationResult, NormalizedAgentConfig
from vidagents.services.agents.base import VideoAgent
from vidagents.services.agent_config import round_half_up
from vidagents.services.comfyui_workflows import (
    compose_negative_prompt,
    compose_prompt,
    resolve_seed,
    steps_for_quality,
)
from vidagents.services.sd_client import StableDiffusionClient
from vidagents.services.source_images import SourceImageFetcher

logger = logging.getLogger(__name__)


class SVDLocalAgent(VideoAgent):
    key = "svd-local"
    label = "Stable Video Diffusion"

    def __init__(
        self,
        sd: StableDiffusionClient,
        *,
        svd_settings: Optional[SVDConfig] = None,
        source_images: Optional[SourceImageFetcher] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.sd = sd
        self.svd_settings = svd_settings or SVDConfig()
        self.source_images = source_images or SourceImageFetcher()

    def _motion_bucket_id(self, config: NormalizedAgentConfig) -> int:
        if config.motion_strength is None:
            return self.svd_settings.default_motion_bucket_id
        return round_half_up(config.motion_strength * 255)

    async def _keyframe(self, prompt: str, config: NormalizedAgentConfig, seed: int) -> str:
        steps = (
            steps_for_quality(config.quality)
            if config.quality
            else self.svd_settings.keyframe_steps
        )
        image_b64 = await self.sd.txt2img(
            prompt=compose_prompt(prompt, config),
            negative_prompt=compose_negative_prompt(config),
            width=config.width,
            height=config.height,
            steps=steps,
            seed=seed,
        )
        return f"data:image/png;base64,{image_b64}"

    async def generate(self, prompt: str, config: NormalizedAgentConfig) -> GenerationResult:
        if not config.is_video:
            logger.info("svd-local: %s requested, rendering a clip instead", config.mode)
        if config.source_image:
            self.source_images.check_url(config.source_image)

        base_image = config.source_image or "txt2img"
        if self.dry_run:
            return GenerationResult(
                video_url=self._placeholder_url("SampleVideo_1280x720_1mb.mp4"),
                duration=config.length,
                has_audio=False,
                agent=self.key,
                metadata={
                    "svdUrl": self.sd.host,
                    "baseImage": base_image,
                    "width": config.width,
                    "height": config.height,
                    "fps": config.fps,
                    "dryRun": True,
                },
            )

        seed = resolve_seed(config)
        if config.source_image:
            init_image = config.source_image
        else:
            logger.info("svd-local: rendering keyframe for text2video")
            init_image = await self._keyframe(prompt, config, seed)

        motion_bucket_id = self._motion_bucket_id(config)
        data = await self.sd.img2vid(
            init_image=init_image,
            width=config.width,
            height=config.height,
            fps=config.fps,
            num_frames=config.num_frames,
            motion_bucket_id=motion_bucket_id,
            seed=seed,
            prompt=compose_prompt(prompt, config),
        )
        return GenerationResult(
            video_url=data["video_url"],
            duration=config.length,
            has_audio=False,
            agent=self.key,
            metadata={
                "svdUrl": self.sd.host,
                "baseImage": base_image,
                "width": config.width,
                "height": config.height,
                "fps": config.fps,
                "seed": seed,
                "motionBucketId": motion_bucket_id,
            },
        )

    async def aclose(self) -> None:
        await self.sd.close()
