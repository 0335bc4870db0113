"""ComfyUI NSFW Pro: adult-content agent on a dedicated checkpoint."""

from vidagents.errors import AgentPreconditionError
from vidagents.schemas.video import GenerationResult, NormalizedAgentConfig
from vidagents.services.agents.comfy_base import ComfyWorkflowAgent


class ComfyNSFWProAgent(ComfyWorkflowAgent):
    key = "comfy-nsfw-pro"
    label = "ComfyUI NSFW Pro"

    async def generate(self, prompt: str, config: NormalizedAgentConfig) -> GenerationResult:
        # Checked before any I/O; explicit overrides reach this agent too
        if config.genre != "nsfw":
            raise AgentPreconditionError("ComfyNSFWProAgent expects NSFW genre")

        if self.dry_run:
            return GenerationResult(
                video_url=self._placeholder_url("SampleVideo_640x360_2mb.mp4"),
                duration=config.length if config.is_video else None,
                agent=self.key,
                metadata={
                    "comfyUrl": self.comfy.host,
                    "width": config.width,
                    "height": config.height,
                    "fps": config.fps,
                    "dryRun": True,
                },
                is_nsfw=True,
            )

        url, metadata = await self._render(prompt, config)
        return GenerationResult(
            video_url=url,
            duration=config.length if config.is_video else None,
            has_audio=False,
            agent=self.key,
            metadata=metadata,
            is_nsfw=True,
        )
