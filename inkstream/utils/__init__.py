from inkstream.utils.lines import LineStream, iter_lines
from inkstream.utils.sse import sse_event_name, sse_payload

__all__ = ["LineStream", "iter_lines", "sse_event_name", "sse_payload"]
