"""Normalization of UI settings into a complete agent configuration.

The settings bag coming from the UI is partial and loosely typed. Every agent
receives the same fully populated ``NormalizedAgentConfig`` built here, so
defaults live in exactly one place.

Usage:
    from vidagents.services.agent_config import build_agent_config

    config = build_agent_config("a cat on a skateboard", {"aspectRatio": "9:16"})
    config.width, config.height   # (1024, 1820)
"""

import math
import re
from collections.abc import Mapping
from typing import Any, Optional, Union

from vidagents.schemas.video import (
    GenerationMode,
    NormalizedAgentConfig,
    VideoSettings,
)

DEFAULT_LENGTH = 3
DEFAULT_FPS = 24
DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 576
BASE_WIDTH = 1024
MIN_DIMENSION = 16

_RESOLUTION_RE = re.compile(r"^([0-9]+)x([0-9]+)$")
_ASPECT_RE = re.compile(r"^([0-9]+):([0-9]+)$")

SettingsLike = Union[VideoSettings, Mapping[str, Any], None]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def coerce_settings(settings: SettingsLike) -> VideoSettings:
    """Accept a VideoSettings instance or a plain (camelCase or snake_case) mapping."""
    if settings is None:
        return VideoSettings()
    if isinstance(settings, VideoSettings):
        return settings
    return VideoSettings.model_validate(dict(settings))


def parse_resolution(resolution: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse a 'WIDTHxHEIGHT' string, clamping each side to at least 16.

    Returns None when the string is missing or malformed.
    """
    if not resolution:
        return None
    m = _RESOLUTION_RE.match(resolution)
    if not m:
        return None
    return max(MIN_DIMENSION, int(m.group(1))), max(MIN_DIMENSION, int(m.group(2)))


def aspect_to_resolution(aspect: Optional[str], base: int = BASE_WIDTH) -> Optional[tuple[int, int]]:
    """Convert a 'W:H' ratio to a width-anchored resolution.

    The width is always ``base`` and ``height = round(base * H / W)``, so
    '16:9' gives 1024x576 and '9:16' gives 1024x1820. Returns None when the
    ratio is missing, malformed or has a zero term.
    """
    if not aspect:
        return None
    m = _ASPECT_RE.match(aspect)
    if not m:
        return None
    w, h = int(m.group(1)), int(m.group(2))
    if w == 0 or h == 0:
        return None
    height = round_half_up(base * h / w)
    return max(MIN_DIMENSION, base), max(MIN_DIMENSION, height)


def resolve_dimensions(settings: VideoSettings) -> tuple[int, int]:
    """Explicit resolution wins over aspect ratio; fall back to 1024x576."""
    return (
        parse_resolution(settings.resolution)
        or aspect_to_resolution(settings.aspect_ratio)
        or (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    )


def derive_mode(settings: VideoSettings, source_image: Optional[str]) -> GenerationMode:
    """Mode follows the presence of a source image, never the request."""
    if settings.format == "image":
        return "image2image" if source_image else "text2image"
    return "image2video" if source_image else "text2video"


def build_agent_config(
    prompt: str,
    settings: SettingsLike = None,
    source_image: Optional[str] = None,
) -> NormalizedAgentConfig:
    """Map partial UI settings onto a complete, validated agent configuration.

    Args:
        prompt: Non-empty generation prompt.
        settings: UI settings bag (VideoSettings or mapping).
        source_image: Optional source image URL; switches to image-driven modes.

    Returns:
        NormalizedAgentConfig with every default applied.

    Raises:
        ValueError: If the prompt is empty.
    """
    if not prompt:
        raise ValueError("prompt must be a non-empty string")

    upm = coerce_settings(settings)
    source_image = source_image or None

    requested_length = upm.length if upm.length is not None else upm.duration
    length = round_half_up(requested_length) if requested_length is not None else DEFAULT_LENGTH
    if length <= 0:
        length = DEFAULT_LENGTH

    fps = max(1, round_half_up(upm.fps if upm.fps is not None else DEFAULT_FPS))

    width, height = resolve_dimensions(upm)

    return NormalizedAgentConfig(
        mode=derive_mode(upm, source_image),
        source_image=source_image,
        prompt=prompt,
        genre=upm.genre,
        quality=upm.quality,
        length=length,
        fps=fps,
        width=width,
        height=height,
        audio=upm.audio or "none",
        audio_voice=upm.audio_voice,
        motion=upm.motion,
        motion_strength=upm.motion_strength,
        aspect_ratio=upm.aspect_ratio,
        position=upm.position,
        negative_prompt=upm.negative_prompt,
        safety=upm.safety,
        seed=upm.seed,
        prompt_enhance=bool(upm.prompt_enhance),
        raw=upm,
    )
