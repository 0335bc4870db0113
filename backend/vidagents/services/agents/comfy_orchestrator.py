"""ComfyUI Orchestrator: the general-purpose agent.

Handles every mode (text/image to video/image) with an AnimateDiff or SD
workflow, optional Ollama prompt enhancement and an optional narration or
music track muxed into the video.
"""

import logging
import uuid
from typing import Optional

from vidagents.schemas.video import GenerationResult, NormalizedAgentConfig
from vidagents.services.agents.comfy_base import ComfyWorkflowAgent
from vidagents.services.prompt_enhancer import PromptEnhancer
from vidagents.services.tts_client import PiperTTSClient

logger = logging.getLogger(__name__)


class ComfyOrchestratorAgent(ComfyWorkflowAgent):
    key = "comfy-orchestrator"
    label = "ComfyUI Orchestrator"

    def __init__(
        self,
        comfy,
        *,
        tts: Optional[PiperTTSClient] = None,
        enhancer: Optional[PromptEnhancer] = None,
        **kwargs,
    ) -> None:
        super().__init__(comfy, **kwargs)
        self.tts = tts
        self.enhancer = enhancer

    async def _enhance(
        self, prompt: str, config: NormalizedAgentConfig
    ) -> tuple[str, NormalizedAgentConfig]:
        if not config.prompt_enhance or self.enhancer is None:
            return prompt, config
        enhanced = await self.enhancer.enhance(
            prompt, media="video" if config.is_video else "image"
        )
        if enhanced is None:
            return prompt, config
        if enhanced.negative_prompt and not config.negative_prompt:
            config = config.model_copy(update={"negative_prompt": enhanced.negative_prompt})
        return enhanced.prompt, config

    async def _prepare_audio(self, prompt: str, config: NormalizedAgentConfig) -> Optional[str]:
        """Return the ComfyUI input filename of the audio track, if any."""
        if not config.is_video or config.audio == "none":
            return None

        if config.audio == "music":
            track = config.extras.get("musicTrack")
            if not track:
                logger.warning("audio=music requested without a musicTrack; rendering silent video")
                return None
            return str(track)

        if self.tts is None:
            logger.warning("audio=tts requested but no Piper client is configured")
            return None
        text = str(config.extras.get("narration") or prompt)
        voice = config.audio_voice
        if voice == "custom":
            voice = config.extras.get("customVoice")
        wav = await self.tts.synthesize(text, voice)
        return await self.comfy.upload_file(
            wav, f"narration_{uuid.uuid4().hex[:12]}.wav", "audio/wav"
        )

    async def generate(self, prompt: str, config: NormalizedAgentConfig) -> GenerationResult:
        if self.dry_run:
            return GenerationResult(
                video_url=self._placeholder_url("SampleVideo_640x360_1mb.mp4"),
                duration=config.length,
                has_audio=config.audio != "none",
                agent=self.key,
                metadata={
                    "comfyUrl": self.comfy.host,
                    "piperUrl": self.tts.host if self.tts else None,
                    "width": config.width,
                    "height": config.height,
                    "fps": config.fps,
                    "dryRun": True,
                },
            )

        render_prompt, config = await self._enhance(prompt, config)
        audio_filename = await self._prepare_audio(prompt, config)
        url, metadata = await self._render(render_prompt, config, audio_filename=audio_filename)

        metadata["piperUrl"] = self.tts.host if self.tts else None
        if render_prompt != prompt:
            metadata["enhancedPrompt"] = render_prompt
        return GenerationResult(
            video_url=url,
            duration=config.length if config.is_video else None,
            has_audio=audio_filename is not None,
            agent=self.key,
            metadata=metadata,
        )

    async def aclose(self) -> None:
        await super().aclose()
        if self.tts is not None:
            await self.tts.close()
