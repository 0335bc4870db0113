"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class BackendsConfig(BaseSettings):
    """Base URLs of the generation services.

    Read from the un-prefixed variables the web frontend already uses
    (COMFYUI_URL, STABLE_DIFFUSION_URL, DEFORUM_URL, PIPER_TTS_URL), each
    defaulting to a loopback address.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    comfyui_url: str = "http://localhost:8188"
    stable_diffusion_url: str = "http://localhost:7860"
    deforum_url: str = "http://localhost:9000"
    piper_tts_url: str = "http://localhost:5000"

    @field_validator("*", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise base URLs so paths can be appended verbatim."""
        return v.rstrip("/")


class ComfyUIConfig(BaseModel):
    """Checkpoints and sampler defaults for ComfyUI workflows."""

    orchestrator_checkpoint: str = "dreamshaper_8.safetensors"
    nsfw_checkpoint: str = "realisticVisionV60B1_v51VAE.safetensors"
    motion_model: str = "mm_sd_v15_v2.ckpt"
    sampler_name: str = "euler_ancestral"
    scheduler: str = "normal"
    cfg: float = 7.0
    filename_prefix: str = "vidagents"


class SVDConfig(BaseModel):
    """Stable Video Diffusion server parameters."""

    animate_path: str = "/sdapi/v1/img2vid"
    keyframe_steps: int = 20
    default_motion_bucket_id: int = 127


class SourceImageConfig(BaseModel):
    """Fetching of user-supplied source images.

    An empty ``allowed_hosts`` accepts any public host; entries match the
    host itself and its subdomains. Loopback, private and link-local
    addresses are refused unless ``allow_private_hosts`` is set. Host names
    are not resolved, so a public name that points at a private address is
    only stopped by ``allowed_hosts``.
    """

    allowed_hosts: list[str] = []
    allow_private_hosts: bool = False
    max_bytes: int = 20 * 1024 * 1024
    timeout: float = 30.0


class OllamaConfig(BaseModel):
    """Ollama endpoint used for optional prompt enhancement."""

    base_url: str = "http://localhost:11434"
    model: str = "llama3.1"
    temperature: float = 0.6
    max_retries: int = 2


class DispatchConfig(BaseModel):
    """Timeouts, retries and concurrency for backend calls."""

    request_timeout: float = 120.0
    connect_timeout: float = 30.0
    job_timeout: float = 900.0
    poll_interval: float = 2.0
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    max_concurrency_per_agent: int = 2
    fallback_to_orchestrator: bool = True
    dry_run: bool = False

    @field_validator("retry_max_attempts", "max_concurrency_per_agent")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        """Reject values that would disable calls entirely."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: VIDAGENTS_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="VIDAGENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backends: BackendsConfig = Field(default_factory=BackendsConfig)
    comfyui: ComfyUIConfig = Field(default_factory=ComfyUIConfig)
    svd: SVDConfig = Field(default_factory=SVDConfig)
    source_images: SourceImageConfig = Field(default_factory=SourceImageConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. YAML file
        3. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
