"""Abstract base class for video generation agents.

Defines the async interface every backend adapter implements: take a prompt
and a fully normalized config, return a GenerationResult or raise.
"""

import time
from abc import ABC, abstractmethod
from typing import ClassVar

from vidagents.schemas.video import (
    AgentDescriptor,
    AgentKey,
    GenerationResult,
    NormalizedAgentConfig,
)

PLACEHOLDER_VIDEO_BASE = "https://sample-videos.com/zip/10/mp4"


class VideoAgent(ABC):
    """Abstract base class for video generation agents.

    Agents are created once at startup and hold no per-request state, so a
    single instance serves concurrent requests. In dry-run mode no service
    is contacted and a placeholder media URL is returned instead.
    """

    key: ClassVar[AgentKey]
    label: ClassVar[str]

    def __init__(
        self,
        *,
        dry_run: bool = False,
        job_timeout: float = 900.0,
        poll_interval: float = 2.0,
    ) -> None:
        self.dry_run = dry_run
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval

    @abstractmethod
    async def generate(self, prompt: str, config: NormalizedAgentConfig) -> GenerationResult:
        """Generate media for ``prompt``.

        Args:
            prompt: The user prompt.
            config: Normalized configuration; agents must not re-derive defaults.

        Returns:
            GenerationResult with at least ``video_url`` and ``agent`` set.

        Raises:
            AgentPreconditionError: The config violates this agent's contract.
            BackendError: The backing service failed.
        """
        ...

    def describe(self) -> AgentDescriptor:
        return AgentDescriptor(key=self.key, label=self.label)

    async def aclose(self) -> None:
        """Release network resources held by the agent."""
        return None

    @staticmethod
    def _placeholder_url(sample: str = "SampleVideo_640x360_1mb.mp4") -> str:
        # Cache-buster so the browser reloads the sample between generations
        return f"{PLACEHOLDER_VIDEO_BASE}/{sample}?t={int(time.time() * 1000)}"
