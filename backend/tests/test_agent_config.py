"""Normalization of UI settings into NormalizedAgentConfig."""

import math

import pytest
from pydantic import ValidationError

from vidagents.schemas.video import VideoSettings
from vidagents.services.agent_config import (
    aspect_to_resolution,
    build_agent_config,
    parse_resolution,
    round_half_up,
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def test_empty_settings_get_every_default():
    config = build_agent_config("a cat on a skateboard")

    assert config.mode == "text2video"
    assert config.length == 3
    assert config.fps == 24
    assert (config.width, config.height) == (1024, 576)
    assert config.audio == "none"
    assert config.prompt_enhance is False
    assert config.source_image is None
    assert config.raw == VideoSettings()


def test_raw_keeps_original_settings():
    settings = VideoSettings(genre="sfw", aspect_ratio="1:1", motion="slow pan")
    config = build_agent_config("x", settings)

    assert config.raw == settings
    assert config.motion == "slow pan"
    assert config.aspect_ratio == "1:1"


def test_empty_prompt_is_rejected():
    with pytest.raises(ValueError):
        build_agent_config("", {"format": "video"})


# ---------------------------------------------------------------------------
# Length and fps
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "settings, expected",
    [
        ({"length": 5}, 5),
        ({"length": 2.5}, 3),
        ({"length": 2.4}, 2),
        ({"duration": 7}, 7),
        ({"length": 4, "duration": 9}, 4),
        ({"length": 0}, 3),
        ({"length": 0.4}, 3),
        ({"length": -2}, 3),
    ],
)
def test_length_resolution(settings, expected):
    assert build_agent_config("x", settings).length == expected


@pytest.mark.parametrize(
    "fps, expected",
    [(None, 24), (30, 30), (29.97, 30), (0.2, 1), (0, 1), (-5, 1)],
)
def test_fps_is_rounded_and_at_least_one(fps, expected):
    settings = {} if fps is None else {"fps": fps}
    assert build_agent_config("x", settings).fps == expected


def test_num_frames_is_length_times_fps():
    config = build_agent_config("x", {"length": 5, "fps": 30})
    assert config.num_frames == 150


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(-2.5) == -2
    assert round_half_up(1.49) == 1


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "resolution, expected",
    [
        ("1920x1080", (1920, 1080)),
        ("5x5", (16, 16)),
        ("0x720", (16, 720)),
        ("1920X1080", None),
        ("1920x1080 ", None),
        ("abc", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_resolution(resolution, expected):
    assert parse_resolution(resolution) == expected


@pytest.mark.parametrize(
    "aspect, expected",
    [
        ("16:9", (1024, 576)),
        ("9:16", (1024, 1820)),
        ("1:1", (1024, 1024)),
        ("4:3", (1024, 768)),
        ("100:1", (1024, 16)),
        ("0:9", None),
        ("16:0", None),
        ("16/9", None),
        (None, None),
    ],
)
def test_aspect_to_resolution(aspect, expected):
    assert aspect_to_resolution(aspect) == expected


def test_resolution_wins_over_aspect_ratio():
    config = build_agent_config("x", {"resolution": "640x480", "aspectRatio": "9:16"})
    assert (config.width, config.height) == (640, 480)


def test_malformed_resolution_falls_back_to_aspect_ratio():
    config = build_agent_config("x", {"resolution": "big", "aspectRatio": "9:16"})
    assert (config.width, config.height) == (1024, 1820)


def test_unparseable_aspect_ratio_falls_back_to_default():
    config = build_agent_config("x", {"aspectRatio": "wide"})
    assert (config.width, config.height) == (1024, 576)


# ---------------------------------------------------------------------------
# Mode derivation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "settings, source_image, expected",
    [
        ({}, None, "text2video"),
        ({}, "https://example.com/a.png", "image2video"),
        ({"format": "video"}, "", "text2video"),
        ({"format": "image"}, None, "text2image"),
        ({"format": "image"}, "https://example.com/a.png", "image2image"),
    ],
)
def test_mode_follows_format_and_source_image(settings, source_image, expected):
    assert build_agent_config("x", settings, source_image).mode == expected


# ---------------------------------------------------------------------------
# Settings coercion
# ---------------------------------------------------------------------------

def test_snake_case_and_camel_case_keys_are_equivalent():
    camel = build_agent_config("x", {"aspectRatio": "1:1", "audioVoice": "amy"})
    snake = build_agent_config("x", {"aspect_ratio": "1:1", "audio_voice": "amy"})

    assert (camel.width, camel.height) == (snake.width, snake.height) == (1024, 1024)
    assert camel.audio_voice == snake.audio_voice == "amy"


def test_unknown_keys_are_collected_into_extras():
    config = build_agent_config(
        "x",
        {"genre": "sfw", "keyframes": {"24": "sunset"}, "musicTrack": "theme.mp3"},
    )

    assert config.genre == "sfw"
    assert config.extras == {"keyframes": {"24": "sunset"}, "musicTrack": "theme.mp3"}


def test_out_of_range_motion_strength_is_rejected():
    with pytest.raises(ValidationError):
        build_agent_config("x", {"motionStrength": 1.5})


def test_non_finite_numbers_are_rejected():
    with pytest.raises(ValidationError):
        build_agent_config("x", {"fps": math.nan})
    with pytest.raises(ValidationError):
        build_agent_config("x", {"length": math.inf})


def test_config_is_frozen():
    config = build_agent_config("x")
    with pytest.raises(ValidationError):
        config.fps = 60
