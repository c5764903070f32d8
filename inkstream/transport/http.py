import asyncio
import logging
from typing import Optional

import httpx

from inkstream.config import settings
from inkstream.models.request import RequestDescription
from inkstream.transport.base import Transport, TransportHandle, TransportHandlers
from inkstream.utils.lines import iter_lines

logger = logging.getLogger(__name__)

# Same codes curl reports with --fail-with-body, so diagnostics read alike
HTTP_ERROR_EXIT_CODE = 22
CONNECTION_ERROR_EXIT_CODE = 7

# Anything else that breaks the stream, including a failing handler
STREAM_FAILED_EXIT_CODE = 1


class HttpxStreamHandle(TransportHandle):
    """An in-process streaming request running as an event loop task."""

    def __init__(self, client: httpx.AsyncClient, request: RequestDescription, handlers: TransportHandlers):
        self._client = client
        self._request = request
        self._handlers = handlers
        self._terminated = False
        self._exited = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def is_running(self) -> bool:
        return not (self._terminated or self._exited or self._task.done())

    def terminate(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._task.cancel()

    async def wait(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    async def _run(self) -> None:
        request = self._request
        try:
            async with self._client.stream(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body.encode(),
            ) as response:
                # The error body still goes to stdout: providers describe the failure there
                async for line in iter_lines(response.aiter_bytes()):
                    self._emit(self._handlers.on_stdout, line)
                status_code = response.status_code
                reason = response.reason_phrase
        except httpx.HTTPError as e:
            logger.debug(f"Request to {request.url} failed: {e!r}")
            self._emit(self._handlers.on_stderr, f"{type(e).__name__}: {e}")
            self._emit_exit(CONNECTION_ERROR_EXIT_CODE)
            return
        except Exception as e:
            logger.exception(f"Streaming from {request.url} failed")
            self._emit(self._handlers.on_stderr, f"{type(e).__name__}: {e}")
            self._emit_exit(STREAM_FAILED_EXIT_CODE)
            return

        if status_code >= 400:
            self._emit(
                self._handlers.on_stderr,
                f"The requested URL returned error: {status_code} {reason}".rstrip(),
            )
            self._emit_exit(HTTP_ERROR_EXIT_CODE)
            return
        self._emit_exit(0)

    def _emit(self, handler, value) -> None:
        if not self._terminated:
            handler(value)

    def _emit_exit(self, code: int) -> None:
        self._exited = True
        self._emit(self._handlers.on_exit, code)


class HttpxTransport(Transport):
    """Runs requests with a shared httpx.AsyncClient instead of a subprocess."""

    name = "httpx"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self._timeout = settings.http_timeout if timeout is None else timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # No read timeout: a stream may idle between tokens
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, read=None)
            )
        return self._client

    def spawn(self, request: RequestDescription, handlers: TransportHandlers) -> HttpxStreamHandle:
        logger.info(f"httpx {request.method} {request.url}")
        return HttpxStreamHandle(self._get_client(), request, handlers)

    async def cleanup(self):
        """Cleanup HTTP client resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
