"""Agent routing: explicit override first, then format and genre."""

import pytest
from pydantic import ValidationError

from vidagents.errors import AgentNotFoundError
from vidagents.schemas.video import AGENT_KEYS, RequestSettings, VideoSettings
from vidagents.services.agents.registry import select_agent_key


@pytest.mark.parametrize(
    "settings, expected",
    [
        ({"format": "video", "genre": "nsfw"}, "comfy-nsfw-pro"),
        ({"format": "video", "genre": "sfw"}, "svd-local"),
        ({"format": "image", "genre": "nsfw"}, "comfy-nsfw-pro"),
        ({"format": "image", "genre": "sfw"}, "comfy-orchestrator"),
        ({"format": "image"}, "comfy-orchestrator"),
        ({"format": "video"}, "comfy-orchestrator"),
        ({"genre": "sfw"}, "comfy-orchestrator"),
        ({"genre": "nsfw"}, "comfy-orchestrator"),
        ({}, "comfy-orchestrator"),
    ],
)
def test_selection_table(settings, expected):
    assert select_agent_key(VideoSettings.model_validate(settings)) == expected


def test_no_settings_selects_orchestrator():
    assert select_agent_key(None) == "comfy-orchestrator"


@pytest.mark.parametrize("key", AGENT_KEYS)
def test_explicit_agent_wins_over_table(key):
    settings = VideoSettings(format="video", genre="sfw", agent=key)
    assert select_agent_key(settings) == key


def test_override_is_not_checked_for_compatibility():
    settings = VideoSettings(format="image", genre="sfw", agent="comfy-nsfw-pro")
    assert select_agent_key(settings) == "comfy-nsfw-pro"


def test_auto_falls_through_to_table():
    settings = VideoSettings(format="video", genre="sfw", agent="auto")
    assert select_agent_key(settings) == "svd-local"


def test_manager_selects_from_plain_mapping(manager):
    assert manager.select_agent({"format": "video", "genre": "sfw"}) == "svd-local"
    assert manager.select_agent({"genre": "sfw"}) == "comfy-orchestrator"
    assert manager.select_agent({"agent": "deforum-hub", "format": "video", "genre": "nsfw"}) == "deforum-hub"
    assert manager.select_agent(None) == "comfy-orchestrator"


def test_unregistered_override_is_returned_verbatim():
    settings = VideoSettings.model_validate({"agent": "sora", "format": "video", "genre": "sfw"})
    assert select_agent_key(settings) == "sora"


@pytest.mark.asyncio
async def test_generate_with_unregistered_override_raises_not_found(manager, fake):
    with pytest.raises(AgentNotFoundError, match="Agent not found: bogus-agent"):
        await manager.generate_video("x", {"agent": "bogus-agent"})

    assert fake.requests == []


def test_http_settings_only_accept_registered_keys():
    with pytest.raises(ValidationError):
        RequestSettings.model_validate({"agent": "sora"})
    assert RequestSettings.model_validate({"agent": "auto"}).agent == "auto"


def test_get_unknown_agent_raises(manager):
    with pytest.raises(AgentNotFoundError) as exc_info:
        manager.get("sora")

    assert str(exc_info.value) == "Agent not found: sora"
    assert exc_info.value.key == "sora"


def test_every_key_is_registered(manager):
    for key in AGENT_KEYS:
        assert manager.get(key).key == key


def test_list_agents_in_registration_order(manager):
    descriptors = manager.list_agents()

    assert [d.key for d in descriptors] == list(AGENT_KEYS)
    assert [d.label for d in descriptors] == [
        "ComfyUI Orchestrator",
        "Stable Video Diffusion",
        "ComfyUI NSFW Pro",
        "Deforum Hub",
    ]
