"""Shared async HTTP plumbing for generation service clients.

Every backend client (ComfyUI, Stable Diffusion, Deforum, Piper) owns one
lazily created ``httpx.AsyncClient`` and funnels requests through
``_request``, which retries transient failures (transport errors, 429, 5xx)
with exponential backoff and maps what remains onto the vidagents error
taxonomy. Job submissions pass ``idempotent=False`` and are only retried when
the connection was never established.
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from vidagents.errors import BackendJobError, BackendTimeoutError, BackendUnavailableError

logger = logging.getLogger(__name__)

_RETRIABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def _is_retriable(exc: BaseException) -> bool:
    """Transport failures and throttling/server errors are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRIABLE_STATUS_CODES
    return False


def _never_sent(exc: BaseException) -> bool:
    """The request did not reach the server, so resending cannot duplicate work."""
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


class ServiceClient:
    """Base class for async clients of a single generation service."""

    service_name = "service"

    def __init__(
        self,
        host: str,
        *,
        request_timeout: float = 120.0,
        connect_timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.host = host.rstrip("/")
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, host: str, dispatch, **kwargs):
        """Build a client from the ``dispatch`` settings section."""
        return cls(
            host,
            request_timeout=dispatch.request_timeout,
            connect_timeout=dispatch.connect_timeout,
            retry_attempts=dispatch.retry_max_attempts,
            retry_base_delay=dispatch.retry_base_delay,
            **kwargs,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.host,
                headers=self._headers,
                follow_redirects=True,
                timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
                transport=self._transport,
            )
        return self._client

    async def _request(
        self, method: str, url: str, *, idempotent: bool = True, **kwargs: Any
    ) -> httpx.Response:
        """Send a request with retry on transient errors.

        Args:
            method: HTTP method.
            url: Path relative to the service host.
            idempotent: False for calls that start work on the server
                (queueing a prompt, submitting a render). Those are resent
                only after connection failures, never after a timeout or 5xx.

        Raises:
            BackendUnavailableError: Service unreachable or still failing
                transiently after all attempts.
            BackendTimeoutError: A non-idempotent call was sent but got no
                response in time.
            BackendJobError: Non-retriable HTTP error status.
        """

        @retry(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(
                multiplier=self.retry_base_delay, min=self.retry_base_delay, max=30
            ),
            retry=retry_if_exception(_is_retriable if idempotent else _never_sent),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _call() -> httpx.Response:
            response = await self.client.request(method, url, **kwargs)
            logger.debug(
                "%s %s%s - HTTP %d", method, self.host, url, response.status_code,
            )
            response.raise_for_status()
            return response

        try:
            return await _call()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = e.response.text[:300]
            if status in _RETRIABLE_STATUS_CODES:
                raise BackendUnavailableError(
                    f"{self.service_name} failed with HTTP {status} for {method} {url}: {detail}"
                ) from e
            raise BackendJobError(
                f"{self.service_name} rejected {method} {url} with HTTP {status}: {detail}"
            ) from e
        except httpx.TimeoutException as e:
            if idempotent or _never_sent(e):
                raise BackendUnavailableError(
                    f"{self.service_name} unreachable at {self.host}: {type(e).__name__}: {e}"
                ) from e
            raise BackendTimeoutError(
                f"{self.service_name} accepted {method} {url} but did not answer in time "
                f"({type(e).__name__})"
            ) from e
        except httpx.TransportError as e:
            raise BackendUnavailableError(
                f"{self.service_name} unreachable at {self.host}: {type(e).__name__}: {e}"
            ) from e

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON body."""
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise BackendJobError(
                f"{self.service_name} returned non-JSON body for {method} {url}"
            ) from e

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
