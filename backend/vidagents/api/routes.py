"""API route handlers."""

import logging
import time

from fastapi import APIRouter, Depends, Request

from vidagents import __version__
from vidagents.schemas.video import (
    AgentDescriptor,
    GenerateVideoRequest,
    GenerateVideoResponse,
    GenerateVideoResult,
)
from vidagents.services.video_agent_manager import VideoAgentManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_manager(request: Request) -> VideoAgentManager:
    return request.app.state.video_agents


@router.post("/ai/video/generate", response_model=GenerateVideoResponse)
async def generate_video(
    body: GenerateVideoRequest,
    manager: VideoAgentManager = Depends(get_manager),
) -> GenerateVideoResponse:
    """Generate a video (or image) with the best matching agent.

    The response mode follows the presence of ``sourceImage``; the
    ``mode`` field of the request is accepted but not trusted.
    """
    mode = "image2video" if body.source_image else "text2video"
    result = await manager.generate_video(body.prompt, body.settings, body.source_image)

    # Echo settings the way they were sent: extras flattened back to the top level
    echoed = body.settings.model_dump(by_alias=True, exclude_none=True, exclude={"extras"})
    echoed.update(body.settings.extras)

    return GenerateVideoResponse(
        id=f"vidgen_{int(time.time() * 1000)}",
        mode=mode,
        result=GenerateVideoResult(
            video_url=result.video_url,
            prompt=body.prompt,
            settings=echoed,
            source_image=body.source_image,
            agent=result.agent,
            meta=result.metadata or None,
            duration=result.duration,
            has_audio=result.has_audio,
        ),
    )


@router.get("/ai/video/agents", response_model=list[AgentDescriptor])
async def list_agents(manager: VideoAgentManager = Depends(get_manager)):
    return manager.list_agents()


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
