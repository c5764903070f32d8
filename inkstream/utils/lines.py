"""
Line splitting for transport output.

Transports hand over raw byte chunks exactly as they arrive; LineStream turns
them into complete UTF-8 lines, in order, without the trailing newline. A
multi-byte character split across two chunks is decoded once both halves are
in. A "\\r" before the newline is dropped so CRLF-framed SSE reads the same as
LF-framed.
"""

import codecs
from typing import AsyncIterator, List


class LineStream:
    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._closed = False

    def feed(self, chunk: bytes) -> List[str]:
        """Add a chunk and return every line it completed."""
        if self._closed:
            raise ValueError("LineStream is closed")
        self._pending += self._decoder.decode(chunk)
        return self._drain()

    def close(self) -> List[str]:
        """Flush the decoder and return the unterminated last line, if any."""
        if self._closed:
            return []
        self._closed = True
        self._pending += self._decoder.decode(b"", final=True)
        lines = self._drain()
        if self._pending:
            lines.append(_strip_cr(self._pending))
            self._pending = ""
        return lines

    def _drain(self) -> List[str]:
        if "\n" not in self._pending:
            return []
        *complete, self._pending = self._pending.split("\n")
        return [_strip_cr(line) for line in complete]


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


async def iter_lines(chunks: AsyncIterator[bytes], encoding: str = "utf-8") -> AsyncIterator[str]:
    """Yield the lines of an async byte-chunk iterator."""
    stream = LineStream(encoding)
    async for chunk in chunks:
        for line in stream.feed(chunk):
            yield line
    for line in stream.close():
        yield line
