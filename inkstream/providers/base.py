import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import orjson

from inkstream.models.request import ProviderConfig, RequestDescription
from inkstream.models.response import StreamError, StreamEvent
from inkstream.utils.exceptions import CredentialError, DiagnosticKind

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class StreamParseState:
    """Per-job decoder state. Codecs return a new instance instead of mutating."""

    event: Optional[str] = None


ParseResult = Tuple[List[StreamEvent], StreamParseState]


class ProviderCodec(ABC):
    """Abstract base class for provider wire formats.

    A codec does no I/O: it describes the HTTP request for a prompt and
    decodes one line of the streamed response at a time.
    """

    name: str  # Provider identifier: "anthropic", "openai", "ollama"

    def initial_state(self) -> StreamParseState:
        return StreamParseState()

    @abstractmethod
    def build_request(
        self,
        config: ProviderConfig,
        prompt: str,
        system_prompt: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> RequestDescription:
        """Build the request for a prompt. Raises CredentialError when a required key is missing."""
        pass

    @abstractmethod
    def parse_line(self, line: str, state: StreamParseState) -> ParseResult:
        """Decode one stdout line into stream events. Never raises."""
        pass

    def resolve_credential(
        self, name: Optional[str], env: Optional[Mapping[str, str]] = None
    ) -> str:
        """Read a credential from the environment at request-build time."""
        if not name:
            raise CredentialError(name)
        source = os.environ if env is None else env
        value = source.get(name)
        if not value:
            raise CredentialError(name)
        return value

    def _request(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> RequestDescription:
        return RequestDescription(
            method="POST",
            url=url,
            headers=headers,
            body=orjson.dumps(payload).decode(),
        )

    def _decode(self, payload: str) -> Tuple[Optional[dict], Optional[StreamError]]:
        """Parse a JSON object, turning failures into a DECODE error event."""
        try:
            decoded = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            self._log_json_error(e)
            return None, self._decode_error(payload)
        if not isinstance(decoded, dict):
            return None, self._decode_error(payload)
        return decoded, None

    def _decode_error(self, payload: str) -> StreamError:
        return StreamError(
            message=f"Failed to decode {self.name} JSON: {payload}",
            kind=DiagnosticKind.DECODE,
        )

    def _log_json_error(self, error: Exception) -> None:
        """Log JSON parse error at debug level."""
        logger.debug(f"JSON parse error in {self.name}: {error}")
