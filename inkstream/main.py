"""
Host-facing control surface.

An editor integration calls configure() once with its host, then binds
start_completion() and cancel() (or the complete_with_* shortcuts) to its
commands and keys:

    from inkstream import main

    main.configure(host)
    main.complete_with_anthropic(max_tokens=1024)
    ...
    main.cancel()

Both calls return immediately; the completion streams in on the event loop.
"""

from typing import Optional

from inkstream.editor.buffer import EditorHost
from inkstream.models.request import ProviderConfig
from inkstream.services.jobs import DiagnosticCallback, Job, JobController
from inkstream.transport import Transport
from inkstream.utils.exceptions import InkstreamError

_controller: Optional[JobController] = None


def configure(
    host: EditorHost,
    transport: Optional[Transport] = None,
    on_diagnostic: Optional[DiagnosticCallback] = None,
) -> JobController:
    """Create the process-wide controller, cancelling the job of a previous one."""
    global _controller
    if _controller is not None and _controller.is_active:
        _controller.cancel()
    _controller = JobController(host, transport=transport, on_diagnostic=on_diagnostic)
    return _controller


def get_controller() -> JobController:
    if _controller is None:
        raise InkstreamError("inkstream is not configured; call configure(host) first")
    return _controller


def start_completion(provider_id: str, config: Optional[ProviderConfig] = None) -> Job:
    if config is None:
        config = ProviderConfig(provider_id=provider_id)
    return get_controller().start(config, provider_id)


def cancel() -> bool:
    return get_controller().cancel()


def complete_with_anthropic(**overrides) -> Job:
    return start_completion("anthropic", ProviderConfig(provider_id="anthropic", **overrides))


def complete_with_openai(**overrides) -> Job:
    return start_completion("openai", ProviderConfig(provider_id="openai", **overrides))


def complete_with_ollama(**overrides) -> Job:
    return start_completion("ollama", ProviderConfig(provider_id="ollama", **overrides))
