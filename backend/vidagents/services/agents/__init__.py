"""Video agent abstraction layer.

One adapter per generation backend behind a common async interface.

Usage:
    from vidagents.services.agents import build_agents, select_agent_key

    agents = build_agents(settings)
    result = await agents[select_agent_key(video_settings)].generate(prompt, config)
"""

from vidagents.services.agents.base import VideoAgent
from vidagents.services.agents.registry import build_agents, select_agent_key

__all__ = ["VideoAgent", "build_agents", "select_agent_key"]
