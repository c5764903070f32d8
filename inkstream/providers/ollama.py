"""
Ollama /api/generate codec.

Ollama streams one JSON object per line instead of SSE, and runs locally
without an API key.
"""

from typing import List, Mapping, Optional

from inkstream.config import settings
from inkstream.models.request import ProviderConfig, RequestDescription
from inkstream.models.response import StreamDone, StreamError, StreamEvent, TextFragment
from inkstream.providers.base import JSON_CONTENT_TYPE, ParseResult, ProviderCodec, StreamParseState


class OllamaCodec(ProviderCodec):
    name = "ollama"

    def build_request(
        self,
        config: ProviderConfig,
        prompt: str,
        system_prompt: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> RequestDescription:
        payload = {
            "model": config.model_id or settings.ollama_model,
            "prompt": prompt,
        }
        # Absent rather than null so the model's own system prompt still applies
        if system_prompt is not None:
            payload["system"] = system_prompt
        payload["stream"] = True

        headers = {"Content-Type": JSON_CONTENT_TYPE}
        return self._request(config.endpoint_url or settings.ollama_url, headers, payload)

    def parse_line(self, line: str, state: StreamParseState) -> ParseResult:
        if line == "":
            return [], state

        data, error = self._decode(line)
        if error:
            return [error], state

        events: List[StreamEvent] = []
        response = data.get("response")
        if isinstance(response, str) and response:
            events.append(TextFragment(response))
        if data.get("error"):
            events.append(StreamError(str(data["error"])))
        if data.get("done") is True:
            events.append(StreamDone())
        return events, state
