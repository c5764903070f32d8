"""
Command line client: stream a completion to stdout.

    python -m inkstream ollama "Write a haiku about rivers"
    echo "def fib(n):" | python -m inkstream anthropic --max-tokens 256

The prompt is loaded into an in-memory buffer with the cursor at its end, so
the request is exactly what an editor would send from that position. Ctrl-C
cancels the stream.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

from inkstream.config import settings, setup_logging
from inkstream.editor.buffer import Position, TextBuffer
from inkstream.models.request import ProviderConfig
from inkstream.providers.registry import codec_registry
from inkstream.services.jobs import JobController
from inkstream.transport import create_transport
from inkstream.utils.exceptions import Diagnostic, InkstreamError

EXIT_CANCELLED = 130


class EchoBuffer(TextBuffer):
    """TextBuffer that also writes every insertion to stdout."""

    def insert_at(self, position: Position, text: str) -> Position:
        end = super().insert_at(position, text)
        sys.stdout.write(text)
        sys.stdout.flush()
        return end


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inkstream", description="Stream an LLM completion")
    parser.add_argument("provider", choices=codec_registry.get_provider_ids())
    parser.add_argument("prompt", nargs="?", help="Prompt text (read from stdin when omitted)")
    parser.add_argument("--model", dest="model_id")
    parser.add_argument("--url", dest="endpoint_url", help="Override the provider endpoint")
    parser.add_argument("--api-key-name", dest="credential_ref", help="Environment variable holding the API key")
    parser.add_argument("--system", dest="system_prompt")
    parser.add_argument("--max-tokens", type=int)
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--transport", choices=["curl", "httpx"], default=settings.transport)
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _print_diagnostic(diagnostic: Diagnostic) -> None:
    print(f"\n[{diagnostic.kind.value}] {diagnostic.message}", file=sys.stderr)


async def run(args: argparse.Namespace, prompt: str) -> int:
    buffer = EchoBuffer(prompt)
    controller = JobController(
        buffer,
        transport=create_transport(args.transport),
        on_diagnostic=_print_diagnostic,
    )
    config = ProviderConfig(
        provider_id=args.provider,
        endpoint_url=args.endpoint_url,
        credential_ref=args.credential_ref,
        model_id=args.model_id,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
        system_prompt=args.system_prompt,
    )

    try:
        job = controller.start(config)
    except InkstreamError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.cancel)
    except NotImplementedError:
        # Windows event loops have no signal handlers; Ctrl-C stays a KeyboardInterrupt
        pass

    try:
        await job.wait()
    finally:
        await controller.shutdown()
    sys.stdout.write("\n")

    if job.cancelled:
        return EXIT_CANCELLED
    return 0 if job.exit_code == 0 else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.debug else "WARNING", stream=sys.stderr, force=True)

    prompt = args.prompt if args.prompt is not None else sys.stdin.read()
    if args.prompt is None and prompt.endswith("\n"):
        prompt = prompt[:-1]
    return asyncio.run(run(args, prompt))


if __name__ == "__main__":
    sys.exit(main())
