"""Shared fixtures: a scripted transport and an in-memory buffer."""

from typing import List, Optional

import pytest

from inkstream.editor.buffer import TextBuffer
from inkstream.models.request import RequestDescription
from inkstream.services.jobs import JobController
from inkstream.transport.base import Transport, TransportHandle, TransportHandlers


class FakeHandle(TransportHandle):
    """Handle whose output is driven by the test.

    Unlike a real transport it keeps calling handlers after terminate(), so
    tests can check the controller ignores stale callbacks on its own.
    """

    def __init__(self, request: RequestDescription, handlers: TransportHandlers):
        self.request = request
        self.handlers = handlers
        self.terminated = False
        self.exited = False

    @property
    def is_running(self) -> bool:
        return not (self.terminated or self.exited)

    def terminate(self) -> None:
        self.terminated = True

    async def wait(self) -> None:
        return None

    def stdout(self, *lines: str) -> None:
        for line in lines:
            self.handlers.on_stdout(line)

    def stderr(self, line: str) -> None:
        self.handlers.on_stderr(line)

    def exit(self, code: int = 0) -> None:
        self.exited = True
        self.handlers.on_exit(code)


class FakeTransport(Transport):
    name = "fake"

    def __init__(self):
        self.handles: List[FakeHandle] = []

    def spawn(self, request: RequestDescription, handlers: TransportHandlers) -> FakeHandle:
        handle = FakeHandle(request, handlers)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> Optional[FakeHandle]:
        return self.handles[-1] if self.handles else None


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def buffer():
    return TextBuffer("Once upon a time")


@pytest.fixture
def diagnostics():
    return []


@pytest.fixture
def controller(buffer, transport, diagnostics):
    return JobController(buffer, transport=transport, on_diagnostic=diagnostics.append)


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-openai-test")
