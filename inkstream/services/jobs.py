"""
Single-flight completion jobs.

JobController owns at most one active job. start() tears down the previous
job before anything else happens, builds the provider request, and spawns the
transport with callbacks bound to the new job's id. Every callback first checks
that its job is still the active one, so output from a superseded or cancelled
request never reaches the buffer.

All of this runs on the event loop thread; there is no locking.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Set

from inkstream.editor.buffer import EditorHost, Position
from inkstream.models.request import ProviderConfig
from inkstream.models.response import StreamDone, StreamError, TextFragment
from inkstream.providers.base import ProviderCodec, StreamParseState
from inkstream.providers.registry import CodecRegistry, codec_registry
from inkstream.transport import Transport, TransportHandle, TransportHandlers, create_transport
from inkstream.utils.exceptions import CredentialError, Diagnostic, DiagnosticKind, EmptyPromptError

logger = logging.getLogger(__name__)

DiagnosticCallback = Callable[[Diagnostic], None]


class JobState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(eq=False)
class Job:
    """One streamed completion. Returned by JobController.start()."""

    id: int
    provider: str
    config: ProviderConfig
    cursor_at_start: Position
    state: JobState = JobState.ACTIVE
    exit_code: Optional[int] = None
    cancelled: bool = False
    done_received: bool = False
    fragment_count: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)
    _codec: Optional[ProviderCodec] = field(default=None, repr=False)
    _parse_state: Optional[StreamParseState] = field(default=None, repr=False)
    _handle: Optional[TransportHandle] = field(default=None, repr=False)
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state == JobState.ACTIVE

    async def wait(self) -> None:
        """Wait until the job has left the active state."""
        await self._finished.wait()


class JobController:
    def __init__(
        self,
        host: EditorHost,
        transport: Optional[Transport] = None,
        registry: CodecRegistry = codec_registry,
        on_diagnostic: Optional[DiagnosticCallback] = None,
    ):
        self._host = host
        self._transport = transport or create_transport()
        self._registry = registry
        self._on_diagnostic = on_diagnostic
        self._active: Optional[Job] = None
        self._ids = itertools.count(1)
        self._closing: Set[asyncio.Task] = set()

    @property
    def active_job(self) -> Optional[Job]:
        return self._active

    @property
    def is_active(self) -> bool:
        return self._active is not None

    def start(self, config: ProviderConfig, provider: Optional[str] = None) -> Job:
        """Start streaming a completion into the host, superseding any active job.

        Raises UnknownProviderError, EmptyPromptError or CredentialError before
        anything is spawned.
        """
        if self._active is not None:
            self.cancel()

        provider_id = provider or config.provider_id
        codec = self._registry.get_codec(provider_id)

        context = self._host.resolve_context(replace=config.replace)
        if not context.prompt:
            logger.warning("No prompt generated (no selection or text before cursor?)")
            raise EmptyPromptError()

        try:
            request = codec.build_request(config, context.prompt, config.system_prompt)
        except CredentialError as e:
            logger.error(f"Failed to prepare {provider_id} request: {e}")
            raise

        job = Job(
            id=next(self._ids),
            provider=provider_id,
            config=config,
            cursor_at_start=self._host.get_cursor(),
            _codec=codec,
            _parse_state=codec.initial_state(),
        )
        self._active = job
        handlers = TransportHandlers(
            on_stdout=partial(self._on_stdout, job.id),
            on_stderr=partial(self._on_stderr, job.id),
            on_exit=partial(self._on_exit, job.id),
        )
        try:
            job._handle = self._transport.spawn(request, handlers)
        except Exception:
            logger.exception(f"Job {job.id}: failed to spawn {self._transport.name} transport")
            self._finish(job)
            raise

        logger.info(f"Job {job.id} started: {provider_id} {request.method} {request.url}")
        return job

    def cancel(self) -> bool:
        """Stop the active job. Returns False when there was nothing to cancel."""
        job = self._active
        if job is None:
            logger.info("No active LLM job to cancel.")
            return False
        self._finish(job, cancelled=True)
        logger.info(f"Job {job.id} cancelled after {job.fragment_count} fragments")
        return True

    async def shutdown(self) -> None:
        """Cancel the active job and wait for every transport to be torn down."""
        if self._active is not None:
            self.cancel()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        await self._transport.cleanup()

    # Transport callbacks

    def _current(self, job_id: int) -> Optional[Job]:
        job = self._active
        if job is None or job.id != job_id:
            return None
        return job

    def _on_stdout(self, job_id: int, line: str) -> None:
        job = self._current(job_id)
        if job is None:
            return

        events, job._parse_state = job._codec.parse_line(line, job._parse_state)
        for event in events:
            # The host may cancel from inside insert_at()
            if self._active is not job:
                return
            if isinstance(event, TextFragment):
                try:
                    self._write_fragment(job, event.text)
                except Exception as e:
                    # A host that cannot take text ends the job
                    self._report(job, DiagnosticKind.HOST, f"{type(e).__name__}: {e}", exc_info=True)
                    self._finish(job)
                    return
            elif isinstance(event, StreamError):
                self._report(job, event.kind, event.message)
            elif isinstance(event, StreamDone):
                job.done_received = True
                logger.debug(f"Job {job.id}: {job.provider} signalled end of stream")

    def _on_stderr(self, job_id: int, line: str) -> None:
        job = self._current(job_id)
        if job is None or not line:
            return
        self._report(job, DiagnosticKind.TRANSPORT, line)

    def _on_exit(self, job_id: int, code: int) -> None:
        job = self._current(job_id)
        if job is None:
            return
        if code != 0:
            self._report(job, DiagnosticKind.EXIT_NON_ZERO, f"LLM job exited with code {code}")
        else:
            logger.info(f"Job {job.id} finished: {job.fragment_count} fragments")
        self._finish(job, exit_code=code)

    def _write_fragment(self, job: Job, text: str) -> None:
        self._host.continue_edit_group(job.id)
        # Re-read every time: the user may have moved the cursor since the last fragment
        position = self._host.get_cursor()
        end = self._host.insert_at(position, text)
        self._host.set_cursor(end)
        job.fragment_count += 1

    def _report(self, job: Job, kind: DiagnosticKind, message: str, exc_info: bool = False) -> None:
        level = logging.ERROR if kind in (DiagnosticKind.PROVIDER, DiagnosticKind.HOST) else logging.WARNING
        logger.log(level, f"Job {job.id} [{job.provider}] {kind.value}: {message}", exc_info=exc_info)

        diagnostic = Diagnostic(kind=kind, message=message, job_id=job.id)
        job.diagnostics.append(diagnostic)
        if self._on_diagnostic is None:
            return
        try:
            self._on_diagnostic(diagnostic)
        except Exception:
            logger.exception("Diagnostic callback failed")

    def _finish(self, job: Job, exit_code: Optional[int] = None, cancelled: bool = False) -> None:
        """Move job to idle and release its parse state and transport handle."""
        if self._active is not job:
            return
        self._active = None
        job.state = JobState.IDLE
        job.exit_code = exit_code
        job.cancelled = cancelled
        job._parse_state = None

        handle, job._handle = job._handle, None
        if handle is not None and handle.is_running:
            handle.terminate()
            self._track_teardown(handle)
        job._finished.set()

    def _track_teardown(self, handle: TransportHandle) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(handle.wait())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
