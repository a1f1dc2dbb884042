"""
Transport Dispatcher
====================

Issues the POST to an HTTP model endpoint.

No formatting intelligence. No retries. No timeout unless one is
configured: a request that never resolves stays open until the caller
supersedes or stops it.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .errors import TransportError
from .types import HttpBackend

logger = logging.getLogger(__name__)


class HttpDispatcher:
    """
    Opens one streaming POST per dispatch.

    Usage:
        dispatcher = HttpDispatcher()
        async with dispatcher.open(backend, body, headers) as response:
            async for chunk in response.aiter_text():
                ...

    Leaving the context closes the response and the client, which is how a
    superseded or stopped request is torn down.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Seconds, or None for no timeout
            transport: Custom httpx transport (tests inject httpx.MockTransport)
        """
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @asynccontextmanager
    async def open(
        self,
        backend: HttpBackend,
        body: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[httpx.Response]:
        """
        POST `body` to the backend and yield the streaming response.

        Raises:
            TransportError: On network failure or a non-success status
        """
        logger.info(f"POST {backend.url}", extra={"output_timing": backend.output_timing})

        try:
            async with self._client() as client:
                async with client.stream("POST", backend.url, json=body, headers=headers) as response:
                    if response.is_error:
                        error_text = (await response.aread()).decode("utf-8", errors="replace")[:320]
                        logger.error(
                            f"Model endpoint error: {response.status_code} - {error_text}",
                            extra={"status_code": response.status_code},
                        )
                        raise TransportError(
                            f"Model endpoint returned HTTP {response.status_code}",
                            status_code=response.status_code,
                        )
                    yield response

        except httpx.TimeoutException as e:
            logger.error(f"Model request timed out: {e}")
            raise TransportError("Model request timed out") from e

        except httpx.HTTPError as e:
            logger.error(f"HTTP request failed: {e}", exc_info=True)
            raise TransportError(f"Model request failed: {type(e).__name__}") from e
