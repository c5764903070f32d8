"""Tests for the single-flight job controller."""

import orjson
import pytest

from inkstream.editor.buffer import Position, TextBuffer
from inkstream.models.request import ProviderConfig
from inkstream.services.jobs import JobController, JobState
from inkstream.utils.exceptions import (
    CredentialError,
    DiagnosticKind,
    EmptyPromptError,
    UnknownProviderError,
)

OLLAMA = ProviderConfig(provider_id="ollama")


def ollama_line(text, done=False):
    return orjson.dumps({"model": "llama3", "response": text, "done": done}).decode()


def test_start_streams_fragments_at_cursor(controller, transport, buffer):
    job = controller.start(OLLAMA)

    assert job.state == JobState.ACTIVE
    assert controller.active_job is job
    assert job.cursor_at_start == Position(0, 16)
    assert orjson.loads(transport.last.request.body)["prompt"] == "Once upon a time"

    transport.last.stdout(ollama_line(", there"), ollama_line(" was\na"), ollama_line(" fox."))
    assert buffer.text == "Once upon a time, there was\na fox."
    assert buffer.get_cursor() == Position(1, 6)

    transport.last.stdout(ollama_line("", done=True))
    assert job.done_received is True
    assert job.is_active

    transport.last.exit(0)
    assert job.state == JobState.IDLE
    assert job.exit_code == 0
    assert job.fragment_count == 3
    assert controller.active_job is None


def test_start_uses_explicit_provider(controller, transport, api_keys):
    job = controller.start(ProviderConfig(provider_id="ollama"), "anthropic")
    assert job.provider == "anthropic"
    assert transport.last.request.url == "https://api.anthropic.com/v1/messages"


def test_start_supersedes_active_job(controller, transport, buffer):
    first = controller.start(OLLAMA)
    first_handle = transport.last
    first_handle.stdout(ollama_line(" A"))

    second = controller.start(OLLAMA)
    second_handle = transport.last

    assert first_handle.terminated is True
    assert first.state == JobState.IDLE
    assert first.cancelled is True
    assert controller.active_job is second
    assert second.id != first.id

    # Late output from the first request is dropped
    first_handle.stdout(ollama_line(" stale"))
    first_handle.exit(0)
    assert controller.active_job is second
    assert first.exit_code is None

    second_handle.stdout(ollama_line(" B"))
    assert buffer.text == "Once upon a time A B"


def test_cancel_when_idle_is_a_noop(controller):
    assert controller.cancel() is False
    assert controller.cancel() is False
    assert controller.active_job is None


def test_cancel_active_job(controller, transport, buffer):
    job = controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" and"))

    assert controller.cancel() is True
    assert transport.last.terminated is True
    assert job.state == JobState.IDLE
    assert job.cancelled is True
    assert job._parse_state is None
    assert job._handle is None

    transport.last.stdout(ollama_line(" more"))
    assert buffer.text == "Once upon a time and"
    assert controller.cancel() is False


def test_cancel_from_inside_fragment_write(transport):
    class CancellingBuffer(TextBuffer):
        controller = None

        def insert_at(self, position, text):
            end = super().insert_at(position, text)
            self.controller.cancel()
            return end

    buffer = CancellingBuffer("Q:")
    controller = JobController(buffer, transport=transport)
    CancellingBuffer.controller = controller

    job = controller.start(ProviderConfig(provider_id="openai"), "ollama")
    # One line carrying a fragment and an error: the error must not be handled after cancel
    transport.last.stdout('{"response":" yes","error":"late error"}')

    assert buffer.text == "Q: yes"
    assert job.cancelled is True
    assert job.diagnostics == []
    transport.last.stdout(ollama_line(" no"))
    assert buffer.text == "Q: yes"


def test_missing_credential_spawns_nothing(controller, transport, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(CredentialError):
        controller.start(ProviderConfig(provider_id="openai"))

    assert transport.handles == []
    assert controller.active_job is None


def test_empty_prompt_spawns_nothing(transport):
    controller = JobController(TextBuffer(""), transport=transport)

    with pytest.raises(EmptyPromptError):
        controller.start(OLLAMA)
    assert transport.handles == []


def test_failed_start_still_cancels_previous_job(controller, transport, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    first = controller.start(OLLAMA)

    with pytest.raises(CredentialError):
        controller.start(ProviderConfig(provider_id="openai"))
    assert first.cancelled is True
    assert controller.active_job is None


def test_unknown_provider(controller, transport):
    with pytest.raises(UnknownProviderError):
        controller.start(ProviderConfig(provider_id="palm"))
    assert transport.handles == []


def test_non_zero_exit_keeps_written_text(controller, transport, buffer, diagnostics):
    job = controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" partial"))
    transport.last.exit(22)

    assert job.state == JobState.IDLE
    assert job.exit_code == 22
    assert buffer.text == "Once upon a time partial"
    assert [d.kind for d in diagnostics] == [DiagnosticKind.EXIT_NON_ZERO]
    assert diagnostics[0].job_id == job.id


def test_stderr_is_a_diagnostic_only(controller, transport, diagnostics):
    job = controller.start(OLLAMA)
    transport.last.stderr("curl: (7) Failed to connect to localhost port 11434")
    transport.last.stderr("")
    transport.last.stderr("   ")

    assert job.is_active
    assert [d.kind for d in diagnostics] == [DiagnosticKind.TRANSPORT, DiagnosticKind.TRANSPORT]
    assert "Failed to connect" in diagnostics[0].message
    assert diagnostics[1].message == "   "


def test_decode_and_provider_errors_do_not_stop_the_job(controller, transport, buffer, diagnostics):
    job = controller.start(OLLAMA)
    transport.last.stdout("not json at all", '{"error":"model not found"}', ollama_line(" still here"))

    assert job.is_active
    assert [d.kind for d in diagnostics] == [DiagnosticKind.DECODE, DiagnosticKind.PROVIDER]
    assert diagnostics[1].message == "model not found"
    assert buffer.text == "Once upon a time still here"


def test_diagnostic_callback_failure_is_contained(buffer, transport):
    def explode(diagnostic):
        raise RuntimeError("host notification failed")

    controller = JobController(buffer, transport=transport, on_diagnostic=explode)
    job = controller.start(OLLAMA)
    transport.last.stderr("warning")
    transport.last.stdout(ollama_line(" ok"))

    assert job.is_active
    assert len(job.diagnostics) == 1
    assert buffer.text == "Once upon a time ok"


def test_failing_host_ends_the_job(transport, diagnostics):
    class ReadOnlyBuffer(TextBuffer):
        def insert_at(self, position, text):
            raise PermissionError("buffer is read-only")

    controller = JobController(ReadOnlyBuffer("Q:"), transport=transport, on_diagnostic=diagnostics.append)
    job = controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" yes"), ollama_line(" no"))

    assert job.state == JobState.IDLE
    assert job.cancelled is False
    assert transport.last.terminated is True
    assert [d.kind for d in diagnostics] == [DiagnosticKind.HOST]
    assert diagnostics[0].message == "PermissionError: buffer is read-only"
    assert controller.cancel() is False

    # Nothing from the dead job is handled any more
    transport.last.stdout('{"error":"late"}')
    transport.last.exit(1)
    assert len(diagnostics) == 1
    assert job.exit_code is None


def test_cursor_is_reread_for_every_fragment(controller, transport, buffer):
    controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" end"))

    buffer.set_cursor(Position(0, 0))
    transport.last.stdout(ollama_line(">> "))
    assert buffer.text == ">> Once upon a time end"


def test_job_insertions_form_one_undo_group(controller, transport, buffer):
    controller.start(OLLAMA)
    transport.last.stdout(*(ollama_line(piece) for piece in (" in", " a\n", "land")))
    transport.last.exit(0)

    assert buffer.text == "Once upon a time in a\nland"
    assert buffer.undo() is True
    assert buffer.text == "Once upon a time"


def test_each_job_gets_its_own_undo_group(controller, transport, buffer):
    controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" one"))
    controller.start(OLLAMA)
    transport.last.stdout(ollama_line(" two"))

    assert buffer.undo_depth == 2
    buffer.undo()
    assert buffer.text == "Once upon a time one"


def test_replace_mode_streams_over_selection(transport):
    buffer = TextBuffer("greeting = 'bonjour'\n")
    buffer.select(Position(0, 12), Position(0, 19))
    controller = JobController(buffer, transport=transport)

    controller.start(ProviderConfig(provider_id="ollama", replace=True, system_prompt="Translate to English."))
    body = orjson.loads(transport.last.request.body)
    assert body["prompt"] == "bonjour"
    assert body["system"] == "Translate to English."

    transport.last.stdout(ollama_line("hel"), ollama_line("lo"))
    assert buffer.text == "greeting = 'hello'\n"


def test_anthropic_stream_end_to_end(controller, transport, buffer, api_keys):
    job = controller.start(ProviderConfig(provider_id="anthropic", max_tokens=50))
    assert transport.last.request.headers["x-api-key"] == "sk-ant-test"

    transport.last.stdout(
        "event: message_start",
        'data: {"type":"message_start","message":{"id":"msg_1"}}',
        "",
        "event: content_block_delta",
        'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":" in Paris"}}',
        "",
        "event: message_delta",
        'data: {"type":"message_delta","delta":{"stop_reason":"end_turn"}}',
    )
    transport.last.exit(0)

    assert buffer.text == "Once upon a time in Paris"
    assert job.done_received is True
    assert job.state == JobState.IDLE


def test_at_most_one_active_job(controller, transport):
    jobs = [controller.start(OLLAMA) for _ in range(5)]

    assert sum(job.is_active for job in jobs) == 1
    assert controller.active_job is jobs[-1]
    assert all(handle.terminated for handle in transport.handles[:-1])
    assert not transport.handles[-1].terminated


@pytest.mark.asyncio
async def test_wait_returns_when_job_finishes(controller, transport):
    job = controller.start(OLLAMA)
    transport.last.exit(0)
    await job.wait()
    assert job.state == JobState.IDLE
    await controller.shutdown()
