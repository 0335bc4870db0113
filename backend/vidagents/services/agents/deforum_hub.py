"""Deforum Hub: keyframe-scheduled animation through the Deforum API."""

import logging
from typing import Any, Optional

from vidagents.errors import AgentPreconditionError
from vidagents.schemas.video import GenerationResult, NormalizedAgentConfig
from vidagents.services.agents.base import VideoAgent
from vidagents.services.comfyui_workflows import (
    compose_negative_prompt,
    compose_prompt,
    resolve_seed,
    steps_for_quality,
)
from vidagents.services.deforum_client import DeforumClient
from vidagents.services.source_images import SourceImageFetcher

logger = logging.getLogger(__name__)

ANIMATION_MODES = ("2D", "3D", "Video Input", "Interpolation")


def build_prompt_schedule(prompt: str, config: NormalizedAgentConfig) -> dict[str, str]:
    """Frame-indexed prompts: the main prompt at frame 0 plus ``extras.keyframes``.

    Raises:
        AgentPreconditionError: A keyframe key is not a frame number.
    """
    schedule = {"0": compose_prompt(prompt, config)}
    keyframes = config.extras.get("keyframes") or {}
    if not isinstance(keyframes, dict):
        raise AgentPreconditionError("keyframes must map frame numbers to prompts")
    for frame, text in keyframes.items():
        try:
            index = int(frame)
        except (TypeError, ValueError) as e:
            raise AgentPreconditionError(f"Invalid keyframe index {frame!r}") from e
        if index < 0 or index >= config.num_frames:
            logger.warning(
                "Keyframe %d outside clip (0..%d), Deforum will ignore it",
                index, config.num_frames - 1,
            )
        schedule[str(index)] = str(text)
    return schedule


def build_deforum_settings(
    prompt: str, config: NormalizedAgentConfig, seed: int
) -> dict[str, Any]:
    animation_mode = config.extras.get("animationMode", "2D")
    if animation_mode not in ANIMATION_MODES:
        raise AgentPreconditionError(
            f"Unsupported animationMode {animation_mode!r}; expected one of {ANIMATION_MODES}"
        )
    settings: dict[str, Any] = {
        "prompts": build_prompt_schedule(prompt, config),
        "animation_prompts_negative": compose_negative_prompt(config),
        "animation_mode": animation_mode,
        "max_frames": config.num_frames,
        "fps": config.fps,
        "W": config.width,
        "H": config.height,
        "seed": seed,
        "steps": steps_for_quality(config.quality),
    }
    if config.source_image:
        settings["use_init"] = True
        settings["init_image"] = config.source_image
    if config.motion_strength is not None:
        # Lower strength lets more change through between frames
        settings["strength_schedule"] = f"0: ({1 - config.motion_strength:.2f})"
    return settings


class DeforumHubAgent(VideoAgent):
    key = "deforum-hub"
    label = "Deforum Hub"

    def __init__(
        self,
        deforum: DeforumClient,
        *,
        source_images: Optional[SourceImageFetcher] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.deforum = deforum
        self.source_images = source_images or SourceImageFetcher()

    async def generate(self, prompt: str, config: NormalizedAgentConfig) -> GenerationResult:
        if not config.is_video:
            logger.info("deforum-hub: %s requested, rendering a clip instead", config.mode)
        if config.source_image:
            self.source_images.check_url(config.source_image)

        seed = resolve_seed(config)
        deforum_settings = build_deforum_settings(prompt, config, seed)

        if self.dry_run:
            return GenerationResult(
                video_url=self._placeholder_url("SampleVideo_1280x720_2mb.mp4"),
                duration=config.length,
                agent=self.key,
                metadata={
                    "deforumUrl": self.deforum.host,
                    "fps": config.fps,
                    "keyframes": len(deforum_settings["prompts"]),
                    "dryRun": True,
                },
            )

        job_id = await self.deforum.submit_batch(deforum_settings)
        job = await self.deforum.wait_for_job(
            job_id, timeout_s=self.job_timeout, poll_interval_s=self.poll_interval,
        )
        return GenerationResult(
            video_url=self.deforum.output_url(job),
            duration=config.length,
            has_audio=False,
            agent=self.key,
            metadata={
                "deforumUrl": self.deforum.host,
                "fps": config.fps,
                "jobId": job_id,
                "seed": seed,
                "keyframes": len(deforum_settings["prompts"]),
            },
        )

    async def aclose(self) -> None:
        await self.deforum.close()
