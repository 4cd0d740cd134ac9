"""
HTTP Executor - Performs a single request for the execution engine.

The engine depends only on the HttpExecutor protocol; HttpxExecutor is the
default implementation backed by httpx.AsyncClient.
"""

import logging
from typing import Optional, Protocol

import httpx

from apiflow.core.config import get_config
from apiflow.core.errors import RequestError
from apiflow.core.models import HttpResponse
from apiflow.core.request_builder import RequestDescriptor

logger = logging.getLogger(__name__)


class HttpExecutor(Protocol):
    """Anything that can turn a RequestDescriptor into an HttpResponse."""

    async def execute(self, descriptor: RequestDescriptor) -> HttpResponse:
        """
        Perform the request.

        Raises:
            RequestError: On network failure, timeout or a non-2xx status
        """
        ...


def _decode_body(response: httpx.Response):
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def to_http_response(response: httpx.Response) -> HttpResponse:
    """Convert an httpx response into the engine's HttpResponse."""
    return HttpResponse(
        status=response.status_code,
        status_text=response.reason_phrase,
        headers=dict(response.headers),
        data=_decode_body(response),
    )


class HttpxExecutor:
    """
    HttpExecutor backed by a shared httpx.AsyncClient.

    Non-2xx responses raise a RequestError that still carries the response,
    so the node can show what the server sent back.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        follow_redirects: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        http_config = get_config().http
        self._timeout = timeout if timeout is not None else http_config.request_timeout
        self._follow_redirects = (
            follow_redirects if follow_redirects is not None else http_config.follow_redirects
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeout(self) -> float:
        return self._timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=self._follow_redirects,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def execute(self, descriptor: RequestDescriptor) -> HttpResponse:
        client = await self._get_client()
        method = descriptor.method.value
        logger.debug(f"{method} {descriptor.url}")

        try:
            response = await client.request(
                method,
                descriptor.url,
                headers=descriptor.headers,
                content=descriptor.body.encode("utf-8") if descriptor.body is not None else None,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {descriptor.url} timed out: {e}")
            raise RequestError(
                f"timeout of {int(self._timeout * 1000)}ms exceeded", code="ECONNABORTED"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {descriptor.url} failed: {e}")
            raise RequestError(str(e) or "Network Error", code="ERR_NETWORK") from e

        result = to_http_response(response)
        if not response.is_success:
            code = "ERR_BAD_REQUEST" if 400 <= response.status_code < 500 else "ERR_BAD_RESPONSE"
            raise RequestError(
                f"Request failed with status code {response.status_code}",
                code=code,
                response=result,
            )
        return result
