from dataclasses import dataclass
from typing import Union

from inkstream.utils.exceptions import DiagnosticKind


@dataclass(frozen=True)
class TextFragment:
    """Incremental chunk of completion text"""

    text: str


@dataclass(frozen=True)
class StreamError:
    """Error reported while decoding a stream; never terminates the job"""

    message: str
    kind: DiagnosticKind = DiagnosticKind.PROVIDER


@dataclass(frozen=True)
class StreamDone:
    """Provider signalled the end of the completion"""


StreamEvent = Union[TextFragment, StreamError, StreamDone]
