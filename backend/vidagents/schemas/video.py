"""Pydantic schemas for video generation requests, configs and results.

Field names are snake_case in Python and camelCase on the wire, matching the
settings bag produced by the web frontend's unified prompt mask.
"""

import logging
from typing import Any, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MediaFormat = Literal["video", "image"]
Genre = Literal["sfw", "nsfw"]
Quality = Literal["draft", "high", "ultra"]
AudioMode = Literal["none", "tts", "music"]
AudioVoice = Literal["amy", "male", "female", "custom"]
Safety = Literal["none", "medium", "strict"]
GenerationMode = Literal["text2video", "image2video", "text2image", "image2image"]

AgentKey = Literal["comfy-orchestrator", "svd-local", "comfy-nsfw-pro", "deforum-hub"]
AgentChoice = Literal["auto", "comfy-orchestrator", "svd-local", "comfy-nsfw-pro", "deforum-hub"]

# Registration order; also the order agents are listed to clients
AGENT_KEYS: tuple[AgentKey, ...] = (
    "comfy-orchestrator",
    "svd-local",
    "comfy-nsfw-pro",
    "deforum-hub",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )


class VideoSettings(_CamelModel):
    """Generation settings as collected by the UI.

    Every field is optional; defaults are applied during normalization, not
    here. Keys the model does not declare are moved into ``extras`` so that
    adapter-specific options (``keyframes``, ``narration``, ``musicTrack``...)
    travel through one typed escape hatch.
    """

    model_config = ConfigDict(extra="forbid")

    # Core
    format: Optional[MediaFormat] = None
    genre: Optional[Genre] = None
    quality: Optional[Quality] = None
    prompt_enhance: Optional[bool] = None

    # Timing
    length: Optional[float] = Field(default=None, description="Clip length in seconds")
    duration: Optional[float] = Field(default=None, description="Alias of length")
    fps: Optional[float] = None

    # Resolution
    resolution: Optional[str] = Field(default=None, description="'WIDTHxHEIGHT', e.g. '1024x576'")
    aspect_ratio: Optional[str] = Field(default=None, description="'W:H', e.g. '16:9'")

    # Motion
    motion: Optional[str] = None
    motion_strength: Optional[float] = Field(default=None, ge=0.05, le=1.0)
    position: Optional[str] = None

    # Audio
    audio: Optional[AudioMode] = None
    audio_voice: Optional[AudioVoice] = None

    # Agent override; unregistered keys surface as AgentNotFoundError at dispatch
    agent: Optional[str] = None

    # Misc
    negative_prompt: Optional[str] = None
    safety: Optional[Safety] = None
    seed: Optional[int] = Field(default=None, ge=0)
    extras: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def collect_extras(cls, data: Any) -> Any:
        """Move undeclared keys into ``extras`` instead of rejecting them."""
        if not isinstance(data, dict):
            return data

        known: set[str] = set()
        for name, field in cls.model_fields.items():
            known.add(name)
            if field.alias:
                known.add(field.alias)

        unknown = {k: v for k, v in data.items() if k not in known}
        if not unknown:
            return data

        logger.debug("Collecting unknown settings keys into extras: %s", sorted(unknown))
        cleaned = {k: v for k, v in data.items() if k in known}
        extras = dict(cleaned.get("extras") or {})
        extras.update(unknown)
        cleaned["extras"] = extras
        return cleaned


class RequestSettings(VideoSettings):
    """Settings as accepted over HTTP.

    The format defaults to video and the agent override is limited to the
    registered keys, so an unknown key is a 400 rather than a 500.
    """

    format: MediaFormat = "video"
    agent: Optional[AgentChoice] = None


class NormalizedAgentConfig(_CamelModel):
    """Fully resolved configuration handed to every agent.

    Built by ``build_agent_config``; agents never re-derive defaults.
    """

    model_config = ConfigDict(frozen=True)

    mode: GenerationMode
    source_image: Optional[str] = None
    prompt: str
    genre: Optional[Genre] = None
    quality: Optional[Quality] = None
    length: int = Field(ge=1)
    fps: int = Field(ge=1)
    width: int = Field(ge=16)
    height: int = Field(ge=16)
    audio: AudioMode = "none"
    audio_voice: Optional[AudioVoice] = None
    motion: Optional[str] = None
    motion_strength: Optional[float] = None
    aspect_ratio: Optional[str] = None
    position: Optional[str] = None
    negative_prompt: Optional[str] = None
    safety: Optional[Safety] = None
    seed: Optional[int] = None
    prompt_enhance: bool = False
    raw: VideoSettings

    @property
    def is_video(self) -> bool:
        return self.mode in ("text2video", "image2video")

    @property
    def num_frames(self) -> int:
        return self.length * self.fps

    @property
    def extras(self) -> dict[str, Any]:
        return self.raw.extras


class GenerationResult(_CamelModel):
    """Output contract shared by all agents.

    ``video_url`` holds the media URL; for image modes it points at an image.
    """

    video_url: str
    duration: Optional[float] = None
    has_audio: bool = False
    agent: AgentKey
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_nsfw: bool = Field(default=False, alias="isNSFW")


class AgentDescriptor(_CamelModel):
    """Identifies one registered backend."""

    key: AgentKey
    label: str


# ---------------------------------------------------------------------------
# HTTP request / response
# ---------------------------------------------------------------------------

class GenerateVideoRequest(_CamelModel):
    """Body of POST /api/ai/video/generate."""

    mode: Optional[Literal["text2video", "image2video"]] = None
    prompt: str = Field(min_length=1)
    settings: RequestSettings
    source_image: Optional[str] = None

    @field_validator("source_image")
    @classmethod
    def validate_source_image_url(cls, v: Optional[str]) -> Optional[str]:
        """Accept absolute http(s) URLs and data URIs."""
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            return v
        if parsed.scheme == "data" and parsed.path:
            return v
        raise ValueError("Invalid url")


class GenerateVideoResult(_CamelModel):
    video_url: str
    prompt: str
    settings: dict[str, Any]
    source_image: Optional[str] = None
    agent: AgentKey
    meta: Optional[dict[str, Any]] = None
    duration: Optional[float] = None
    has_audio: bool = False


class GenerateVideoResponse(_CamelModel):
    id: str
    status: Literal["ok"] = "ok"
    mode: Literal["text2video", "image2video"]
    result: GenerateVideoResult
