"""Agent registry and routing.

Builds one adapter per agent key from settings and routes a settings bag to
an agent key: an explicit override wins, otherwise format and genre decide.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from vidagents.schemas.video import AgentKey, VideoSettings
from vidagents.services.agents.base import VideoAgent

if TYPE_CHECKING:
    from vidagents.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_AGENT: AgentKey = "comfy-orchestrator"


def select_agent_key(settings: Optional[VideoSettings] = None) -> str:
    """Return the agent key for a settings bag.

    Routing logic:
    - agent set and not "auto" → that agent, verbatim
    - video + nsfw             → comfy-nsfw-pro
    - video + sfw              → svd-local
    - image + nsfw             → comfy-nsfw-pro
    - anything else            → comfy-orchestrator

    Args:
        settings: UI settings; None or empty routes to the default agent.

    Returns:
        An agent key. Explicit overrides are returned as given, even when no
        agent is registered under them.
    """
    if settings is None:
        return DEFAULT_AGENT

    if settings.agent and settings.agent != "auto":
        logger.debug("Explicit agent override: %s", settings.agent)
        return settings.agent

    if settings.genre == "nsfw" and settings.format in ("video", "image"):
        return "comfy-nsfw-pro"
    if settings.format == "video" and settings.genre == "sfw":
        return "svd-local"
    return DEFAULT_AGENT


def build_agents(
    settings: "Settings",
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[AgentKey, VideoAgent]:
    """Instantiate every agent with its service clients.

    Args:
        settings: Loaded application settings.
        transport: Optional httpx transport shared by all clients (tests use
            ``httpx.MockTransport``).

    Returns:
        Mapping of agent key to agent, in registration order.
    """
    from vidagents.services.agents.comfy_nsfw_pro import ComfyNSFWProAgent
    from vidagents.services.agents.comfy_orchestrator import ComfyOrchestratorAgent
    from vidagents.services.agents.deforum_hub import DeforumHubAgent
    from vidagents.services.agents.svd_local import SVDLocalAgent
    from vidagents.services.comfyui_client import ComfyUIClient
    from vidagents.services.deforum_client import DeforumClient
    from vidagents.services.prompt_enhancer import PromptEnhancer
    from vidagents.services.sd_client import StableDiffusionClient
    from vidagents.services.source_images import SourceImageFetcher
    from vidagents.services.tts_client import PiperTTSClient

    backends = settings.backends
    dispatch = settings.dispatch
    common = dict(
        dry_run=dispatch.dry_run,
        job_timeout=dispatch.job_timeout,
        poll_interval=dispatch.poll_interval,
    )

    source_images = SourceImageFetcher.from_settings(settings.source_images, transport=transport)
    enhancer = PromptEnhancer(
        model=settings.ollama.model,
        base_url=settings.ollama.base_url,
        temperature=settings.ollama.temperature,
        max_retries=settings.ollama.max_retries,
    )

    agents: dict[AgentKey, VideoAgent] = {
        "comfy-orchestrator": ComfyOrchestratorAgent(
            ComfyUIClient.from_settings(backends.comfyui_url, dispatch, transport=transport),
            tts=PiperTTSClient.from_settings(backends.piper_tts_url, dispatch, transport=transport),
            enhancer=enhancer,
            checkpoint=settings.comfyui.orchestrator_checkpoint,
            comfy_settings=settings.comfyui,
            source_images=source_images,
            **common,
        ),
        "svd-local": SVDLocalAgent(
            StableDiffusionClient.from_settings(
                backends.stable_diffusion_url,
                dispatch,
                animate_path=settings.svd.animate_path,
                job_timeout=dispatch.job_timeout,
                transport=transport,
            ),
            svd_settings=settings.svd,
            source_images=source_images,
            **common,
        ),
        "comfy-nsfw-pro": ComfyNSFWProAgent(
            ComfyUIClient.from_settings(backends.comfyui_url, dispatch, transport=transport),
            checkpoint=settings.comfyui.nsfw_checkpoint,
            comfy_settings=settings.comfyui,
            source_images=source_images,
            **common,
        ),
        "deforum-hub": DeforumHubAgent(
            DeforumClient.from_settings(backends.deforum_url, dispatch, transport=transport),
            source_images=source_images,
            **common,
        ),
    }
    logger.info(
        "Registered %d video agents (dry_run=%s): %s",
        len(agents), dispatch.dry_run, ", ".join(agents),
    )
    return agents
