from typing import Optional

# Lines are inspected when they start with "data:", but the payload always
# starts after the 6-character "data: " prefix.
SSE_DATA_MARKER = "data:"
SSE_DATA_PREFIX = "data: "
SSE_EVENT_MARKER = "event:"
SSE_DONE_PAYLOAD = "[DONE]"


def sse_payload(line: str) -> Optional[str]:
    """Return the payload of a data line, or None for any other line"""
    if not line.startswith(SSE_DATA_MARKER):
        return None
    return line[len(SSE_DATA_PREFIX):]


def sse_event_name(line: str) -> Optional[str]:
    """Return the event name of an "event:" line, or None for any other line"""
    if not line.startswith(SSE_EVENT_MARKER):
        return None
    return line[len(SSE_EVENT_MARKER):].strip()
