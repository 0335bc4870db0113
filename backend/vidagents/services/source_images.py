"""Loading of user-supplied source images.

Source images arrive as base64 ``data:`` URIs or as http(s) URLs chosen by
the caller. URLs are fetched with a dedicated client that is kept apart from
the backend clients: it makes one attempt, does not follow redirects, checks
the host against ``source_images`` settings and caps the download size.

Usage:
    fetcher = SourceImageFetcher(allowed_hosts=["cdn.example.com"])
    image_bytes = await fetcher.fetch("https://cdn.example.com/still.png")
"""

import base64
import binascii
import ipaddress
import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from vidagents.errors import SourceImageError

logger = logging.getLogger(__name__)


def decode_data_uri(uri: str) -> bytes:
    """Decode a base64 ``data:`` URI into raw bytes."""
    header, _, payload = uri.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise SourceImageError("Only base64 data URIs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise SourceImageError(f"Malformed base64 data URI: {e}") from e


def _is_private_host(host: str) -> bool:
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


class SourceImageFetcher:
    """Fetches source images from data URIs or permitted http(s) hosts."""

    def __init__(
        self,
        *,
        allowed_hosts: Optional[list[str]] = None,
        allow_private_hosts: bool = False,
        max_bytes: int = 20 * 1024 * 1024,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.allowed_hosts = [h.lower().strip(".") for h in allowed_hosts or []]
        self.allow_private_hosts = allow_private_hosts
        self.max_bytes = max_bytes
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, source_images, **kwargs) -> "SourceImageFetcher":
        """Build a fetcher from the ``source_images`` settings section."""
        return cls(
            allowed_hosts=source_images.allowed_hosts,
            allow_private_hosts=source_images.allow_private_hosts,
            max_bytes=source_images.max_bytes,
            timeout=source_images.timeout,
            **kwargs,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=False,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def check_url(self, url: str) -> None:
        """Raise SourceImageError unless ``url`` may be fetched.

        Data URIs always pass; backends that fetch the URL themselves call
        this before handing it over.
        """
        if url.startswith("data:"):
            return
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or not host:
            raise SourceImageError(f"Source image must be an http(s) URL or data URI: {url}")
        if self.allowed_hosts and not any(
            host == allowed or host.endswith("." + allowed) for allowed in self.allowed_hosts
        ):
            raise SourceImageError(f"Source image host {host} is not in allowed_hosts")
        if not self.allow_private_hosts and _is_private_host(host):
            raise SourceImageError(f"Source image host {host} is a private address")

    async def fetch(self, url: str) -> bytes:
        """Return the image bytes behind a data URI or an http(s) URL.

        Raises:
            SourceImageError: The host is not permitted, the download failed
                or exceeded ``max_bytes``.
        """
        if url.startswith("data:"):
            return decode_data_uri(url)

        self.check_url(url)
        logger.info("Fetching source image %s", url)
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise SourceImageError(
                        f"Source image {url} returned HTTP {response.status_code}"
                    )
                chunks = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise SourceImageError(
                            f"Source image {url} exceeds {self.max_bytes} bytes"
                        )
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise SourceImageError(
                f"Could not fetch source image {url}: {type(e).__name__}: {e}"
            ) from e
        return b"".join(chunks)

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
