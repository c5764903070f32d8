"""
curl subprocess transport.

The request runs in a separate curl process with output buffering disabled
(-N), so every line the provider flushes reaches the event loop as soon as
curl reads it. --fail-with-body keeps the error body on stdout for the codec
while turning HTTP errors into a non-zero exit code and a stderr message.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from inkstream.config import settings
from inkstream.models.request import RequestDescription
from inkstream.transport.base import Transport, TransportHandle, TransportHandlers
from inkstream.utils.lines import iter_lines

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
# Exit code shells use for "command not found"
SPAWN_FAILED_EXIT_CODE = 127


def build_curl_args(request: RequestDescription) -> List[str]:
    """Arguments for curl, without the executable."""
    args = ["-N", "-sS", "--fail-with-body", "-X", request.method]
    for header in request.header_lines():
        args.extend(["-H", header])
    args.extend(["-d", request.body, request.url])
    return args


async def _read_chunks(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class ProcessHandle(TransportHandle):
    """A spawned process whose stdout and stderr are reported line by line."""

    def __init__(self, argv: List[str], handlers: TransportHandlers, grace_seconds: float):
        self._argv = argv
        self._handlers = handlers
        self._grace_seconds = grace_seconds
        self._process: Optional[asyncio.subprocess.Process] = None
        self._terminated = False
        self._exited = False
        self._reaper: Optional[asyncio.Task] = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def is_running(self) -> bool:
        if self._terminated or self._exited:
            return False
        if self._process is None:
            return not self._task.done()
        return self._process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def terminate(self) -> None:
        """Send SIGTERM, escalating to SIGKILL if the process outlives the grace period."""
        if self._terminated:
            return
        self._terminated = True

        process = self._process
        if process is None:
            # Still spawning
            self._task.cancel()
            return
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        self._reaper = asyncio.get_running_loop().create_task(self._reap(process))

    async def wait(self) -> None:
        for task in (self._task, self._reaper):
            if task is None:
                continue
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(process.wait(), timeout=self._grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Process {process.pid} ignored SIGTERM for {self._grace_seconds}s, killing it"
            )
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    async def _run(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self._argv[0]}: {e}")
            self._emit(self._handlers.on_stderr, f"Failed to start {self._argv[0]}: {e}")
            self._emit_exit(SPAWN_FAILED_EXIT_CODE)
            return

        process = self._process
        logger.debug(f"Started {self._argv[0]} as pid {process.pid}")
        loop = asyncio.get_running_loop()
        pumps = [
            loop.create_task(self._pump(process.stdout, self._handlers.on_stdout)),
            loop.create_task(self._pump(process.stderr, self._handlers.on_stderr)),
        ]
        try:
            await asyncio.gather(*pumps)
            code = await process.wait()
        except Exception as e:
            logger.exception(f"Reading output of pid {process.pid} failed, killing it")
            self._emit(self._handlers.on_stderr, f"{type(e).__name__}: {e}")
            code = None
        finally:
            for pump in pumps:
                pump.cancel()
            if process.returncode is None:
                process.kill()
                await process.wait()
        self._emit_exit(process.returncode if code is None else code)

    async def _pump(self, reader: asyncio.StreamReader, handler) -> None:
        async for line in iter_lines(_read_chunks(reader)):
            self._emit(handler, line)

    def _emit(self, handler, value) -> None:
        if not self._terminated:
            handler(value)

    def _emit_exit(self, code: int) -> None:
        self._exited = True
        self._emit(self._handlers.on_exit, code)


class CurlTransport(Transport):
    name = "curl"

    def __init__(self, executable: Optional[str] = None, grace_seconds: Optional[float] = None):
        self.executable = executable or settings.curl_executable
        self.grace_seconds = (
            settings.cancel_grace_seconds if grace_seconds is None else grace_seconds
        )

    def build_argv(self, request: RequestDescription) -> List[str]:
        return [self.executable, *build_curl_args(request)]

    def spawn(self, request: RequestDescription, handlers: TransportHandlers) -> ProcessHandle:
        logger.info(f"curl {request.method} {request.url}")
        return ProcessHandle(self.build_argv(request), handlers, self.grace_seconds)
