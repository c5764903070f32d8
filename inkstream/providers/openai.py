from typing import List, Mapping, Optional

from inkstream.config import settings
from inkstream.models.request import ProviderConfig, RequestDescription
from inkstream.models.response import StreamDone, StreamError, StreamEvent, TextFragment
from inkstream.providers.base import JSON_CONTENT_TYPE, ParseResult, ProviderCodec, StreamParseState
from inkstream.utils.sse import SSE_DONE_PAYLOAD, sse_payload


class OpenAICodec(ProviderCodec):
    """OpenAI chat completions over SSE."""

    name = "openai"

    def build_request(
        self,
        config: ProviderConfig,
        prompt: str,
        system_prompt: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> RequestDescription:
        api_key = self.resolve_credential(
            config.credential_ref or settings.openai_api_key_name, env
        )

        messages = []
        if system_prompt is not None:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        temperature = config.temperature
        if temperature is None:
            temperature = settings.openai_temperature

        payload = {
            "messages": messages,
            "model": config.model_id or settings.openai_model,
            "temperature": temperature,
            "stream": True,
        }
        headers = {
            "Content-Type": JSON_CONTENT_TYPE,
            "Authorization": f"Bearer {api_key}",
        }
        return self._request(config.endpoint_url or settings.openai_url, headers, payload)

    def parse_line(self, line: str, state: StreamParseState) -> ParseResult:
        payload = sse_payload(line)
        if payload is None:
            return [], state
        if payload == SSE_DONE_PAYLOAD:
            return [StreamDone()], state

        data, error = self._decode(payload)
        if error:
            return [error], state

        events: List[StreamEvent] = []
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            delta = choices[0].get("delta")
            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str) and content:
                    events.append(TextFragment(content))

        detail = data.get("error")
        if detail:
            if isinstance(detail, dict) and detail.get("message"):
                message = detail["message"]
            else:
                message = str(detail)
            events.append(StreamError(message))
        return events, state
