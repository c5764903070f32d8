from dataclasses import replace
from typing import Mapping, Optional

from inkstream.config import settings
from inkstream.models.request import ProviderConfig, RequestDescription
from inkstream.models.response import StreamDone, StreamError, TextFragment
from inkstream.providers.base import JSON_CONTENT_TYPE, ParseResult, ProviderCodec, StreamParseState
from inkstream.utils.sse import SSE_DONE_PAYLOAD, sse_event_name, sse_payload

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicCodec(ProviderCodec):
    name = "anthropic"

    def build_request(
        self,
        config: ProviderConfig,
        prompt: str,
        system_prompt: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> RequestDescription:
        api_key = self.resolve_credential(
            config.credential_ref or settings.anthropic_api_key_name, env
        )
        payload = {
            "system": settings.default_system_prompt if system_prompt is None else system_prompt,
            "messages": [{"role": "user", "content": prompt}],
            "model": config.model_id or settings.anthropic_model,
            "stream": True,
            "max_tokens": config.max_tokens or settings.anthropic_max_tokens,
        }
        headers = {
            "Content-Type": JSON_CONTENT_TYPE,
            "anthropic-version": ANTHROPIC_VERSION,
            "x-api-key": api_key,
        }
        return self._request(config.endpoint_url or settings.anthropic_url, headers, payload)

    def parse_line(self, line: str, state: StreamParseState) -> ParseResult:
        """Decode one line of Anthropic's SSE stream.

        "event:" lines only update the current event name, which stands in for
        a missing "type" field on the following data payload. The blank line
        that ends an SSE event clears it.
        """
        if line == "":
            if state.event is None:
                return [], state
            return [], replace(state, event=None)

        event = sse_event_name(line)
        if event is not None:
            if event == state.event:
                return [], state
            return [], replace(state, event=event)

        payload = sse_payload(line)
        if payload is None:
            return [], state
        if payload == SSE_DONE_PAYLOAD:
            return [StreamDone()], state

        data, error = self._decode(payload)
        if error:
            return [error], state

        event_type = data.get("type") or state.event
        delta = data.get("delta")
        if not isinstance(delta, dict):
            delta = {}

        if event_type == "content_block_delta" and delta.get("type") == "text_delta":
            text = delta.get("text")
            if isinstance(text, str) and text:
                return [TextFragment(text)], state
        elif event_type == "message_delta" and delta.get("stop_reason"):
            return [StreamDone()], state
        elif event_type == "error":
            detail = data.get("error")
            if isinstance(detail, dict) and detail.get("message"):
                message = detail["message"]
            else:
                message = repr(data)
            return [StreamError(message)], state
        return [], state
