"""Video Agents - selection and dispatch for local video generation backends.

This module provides startup validation functions to ensure the configured
backend services are addressable before any request is dispatched.
Call validate_backend_urls() during application startup.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def validate_backend_urls(backends: Optional[dict[str, str]] = None) -> None:
    """Validate that every configured backend base URL is well-formed.

    This function should be called during application startup to fail fast
    with a clear message instead of surfacing malformed URLs as connection
    errors on the first generation request.

    Args:
        backends: Mapping of backend name to base URL. Defaults to the
            ``backends`` section of the loaded settings.

    Raises:
        RuntimeError: If any URL lacks an http(s) scheme or a host.
    """
    if backends is None:
        from vidagents.config import settings

        backends = settings.backends.model_dump()

    invalid = []
    for name, url in backends.items():
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            invalid.append(f"{name}={url!r}")
        else:
            logger.info(f"backend validated: {name} -> {url}")

    if invalid:
        raise RuntimeError(
            "Invalid backend URL(s): " + ", ".join(invalid) + "\n"
            "Set COMFYUI_URL, STABLE_DIFFUSION_URL, DEFORUM_URL and PIPER_TTS_URL "
            "to http(s)://host:port base URLs."
        )
