"""Video agent manager: selection, normalization and dispatch.

The single entry point the API and CLI talk to. Picks a backend for a
settings bag, turns the bag into a NormalizedAgentConfig and runs the
chosen adapter under a per-agent concurrency limit and an overall timeout,
falling back to the orchestrator when a specialized SFW backend is down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Mapping, Optional

import httpx

from vidagents.errors import (
    AgentNotFoundError,
    BackendTimeoutError,
    BackendUnavailableError,
)
from vidagents.schemas.video import (
    AgentDescriptor,
    AgentKey,
    GenerationResult,
    NormalizedAgentConfig,
)
from vidagents.services.agent_config import SettingsLike, build_agent_config, coerce_settings
from vidagents.services.agents.base import VideoAgent
from vidagents.services.agents.registry import DEFAULT_AGENT, build_agents, select_agent_key

if TYPE_CHECKING:
    from vidagents.config import Settings

logger = logging.getLogger(__name__)

# Failures that mean "the service is not there", not "the request was bad"
_FALLBACK_ERRORS = (BackendUnavailableError, BackendTimeoutError)


class VideoAgentManager:
    """Owns the agent registry and dispatches generation requests.

    Args:
        agents: Mapping of agent key to adapter.
        job_timeout: Upper bound in seconds for one adapter call.
        max_concurrency_per_agent: Concurrent calls allowed per backend.
        fallback_to_orchestrator: Retry on the orchestrator when an
            auto-selected SFW backend is unreachable or times out.
    """

    def __init__(
        self,
        agents: Mapping[AgentKey, VideoAgent],
        *,
        job_timeout: Optional[float] = 900.0,
        max_concurrency_per_agent: int = 2,
        fallback_to_orchestrator: bool = True,
    ) -> None:
        self._agents: dict[AgentKey, VideoAgent] = dict(agents)
        self.job_timeout = job_timeout
        self.fallback_to_orchestrator = fallback_to_orchestrator
        self._semaphores = {
            key: asyncio.Semaphore(max_concurrency_per_agent) for key in self._agents
        }

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "VideoAgentManager":
        dispatch = settings.dispatch
        return cls(
            build_agents(settings, transport=transport),
            job_timeout=dispatch.job_timeout,
            max_concurrency_per_agent=dispatch.max_concurrency_per_agent,
            fallback_to_orchestrator=dispatch.fallback_to_orchestrator,
        )

    def get(self, key: str) -> VideoAgent:
        """Look up an agent by key.

        Raises:
            AgentNotFoundError: No agent is registered under ``key``.
        """
        agent = self._agents.get(key)  # type: ignore[call-overload]
        if agent is None:
            raise AgentNotFoundError(key)
        return agent

    def list_agents(self) -> list[AgentDescriptor]:
        return [agent.describe() for agent in self._agents.values()]

    def select_agent(self, settings: SettingsLike = None) -> str:
        return select_agent_key(coerce_settings(settings))

    def build_agent_config(
        self,
        prompt: str,
        settings: SettingsLike = None,
        source_image: Optional[str] = None,
    ) -> NormalizedAgentConfig:
        return build_agent_config(prompt, settings, source_image)

    async def _dispatch(
        self, key: str, prompt: str, config: NormalizedAgentConfig
    ) -> GenerationResult:
        agent = self.get(key)
        async with self._semaphores[key]:
            try:
                return await asyncio.wait_for(
                    agent.generate(prompt, config), timeout=self.job_timeout
                )
            except asyncio.TimeoutError as e:
                raise BackendTimeoutError(
                    f"{key} did not finish within {self.job_timeout:.0f}s", agent=key
                ) from e

    def _may_fall_back(self, key: str, config: NormalizedAgentConfig) -> bool:
        explicit = config.raw.agent not in (None, "auto")
        return (
            self.fallback_to_orchestrator
            and not explicit
            and key != DEFAULT_AGENT
            and config.genre != "nsfw"
            and DEFAULT_AGENT in self._agents
        )

    async def generate_video(
        self,
        prompt: str,
        settings: SettingsLike = None,
        source_image: Optional[str] = None,
    ) -> GenerationResult:
        """Select an agent, normalize the settings and run the generation.

        Args:
            prompt: Non-empty generation prompt.
            settings: VideoSettings or a plain mapping of UI settings.
            source_image: Optional source image URL or data URI.

        Returns:
            The adapter's GenerationResult.

        Raises:
            AgentNotFoundError: An explicit agent key is not registered.
            AgentPreconditionError: The chosen agent rejects the config.
            BackendError: The backing service failed.
        """
        video_settings = coerce_settings(settings)
        key = select_agent_key(video_settings)
        config = build_agent_config(prompt, video_settings, source_image)
        logger.info(
            "Dispatching %s to %s (%dx%d, %ds @ %dfps)",
            config.mode, key, config.width, config.height, config.length, config.fps,
        )

        try:
            return await self._dispatch(key, prompt, config)
        except _FALLBACK_ERRORS as e:
            if not self._may_fall_back(key, config):
                raise
            logger.warning(
                "%s failed (%s: %s), falling back to %s",
                key, type(e).__name__, e, DEFAULT_AGENT,
            )

        result = await self._dispatch(DEFAULT_AGENT, prompt, config)
        result.metadata["fallbackFrom"] = key
        return result

    async def aclose(self) -> None:
        """Close every agent's HTTP clients."""
        for agent in self._agents.values():
            await agent.aclose()
