"""httpx-based Forwarder that POSTs computed values."""

import httpx
from loguru import logger

from src.condition_service.domain.exceptions import ForwardingError
from src.condition_service.domain.protocols import Forwarder


class HttpForwarder(Forwarder):
    """POSTs values with a shared AsyncClient, bounded by a timeout."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        """
        Initialize forwarder.

        Args:
            client: Shared client (created on demand if not provided)
            timeout: Seconds allowed for the whole request
        """
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def post(self, uri: str, body: str) -> None:
        """POST body as text/plain. The response status is logged, not checked."""
        url = self._build_url(uri)
        try:
            response = await self.client.post(
                url,
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
                timeout=self.timeout,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise ForwardingError(uri, "invalid URI", original_error=e) from e
        except httpx.TimeoutException as e:
            raise ForwardingError(uri, f"request timed out after {self.timeout}s", original_error=e) from e
        except httpx.HTTPError as e:
            raise ForwardingError(uri, str(e) or type(e).__name__, original_error=e) from e

        if response.is_success:
            logger.debug(f"Forwarded '{body}' to {uri} ({response.status_code})")
        else:
            logger.warning(f"Forwarded '{body}' to {uri} but got HTTP {response.status_code}")

    @staticmethod
    def _build_url(uri: str) -> httpx.URL:
        """Parse an absolute http(s) URL."""
        try:
            url = httpx.URL(uri)
        except httpx.InvalidURL as e:
            raise ForwardingError(uri, f"invalid URI ({e})", original_error=e) from e

        if url.scheme not in ("http", "https") or not url.host:
            raise ForwardingError(uri, "invalid URI (expected an absolute http or https URL)")
        return url

    async def aclose(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
