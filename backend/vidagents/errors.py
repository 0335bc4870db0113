"""
Video agent errors.
"""

from __future__ import annotations


class VideoAgentError(Exception):
    """Base exception for the vidagents package."""


class AgentNotFoundError(VideoAgentError):
    """No agent is registered under the requested key."""

    def __init__(self, key: str):
        super().__init__(f"Agent not found: {key}")
        self.key = key


class AgentPreconditionError(VideoAgentError):
    """An agent was invoked with a config that violates its contract."""


class BackendError(VideoAgentError):
    """A generation service failed to produce a result."""

    def __init__(self, message: str, *, agent: str | None = None):
        super().__init__(message)
        self.agent = agent


class BackendUnavailableError(BackendError):
    """The service is offline or unreachable after retries."""


class BackendTimeoutError(BackendError):
    """The job did not finish within the configured timeout."""


class BackendJobError(BackendError):
    """The service rejected the job or reported a failure."""


class SourceImageError(VideoAgentError):
    """The source image could not be loaded or its host is not allowed."""
