"""
Host editing surface.

The job controller only talks to the host through the PromptSource and
InsertionSink protocols. TextBuffer is an in-memory implementation used by the
command line client and the tests; editor integrations provide their own.

Positions are 0-based (row, col), columns counted in characters.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple


@dataclass(frozen=True, order=True)
class Position:
    row: int
    col: int


def advance_position(position: Position, text: str) -> Position:
    """Cursor position after inserting text at position."""
    if "\n" not in text:
        return Position(position.row, position.col + len(text))
    parts = text.split("\n")
    return Position(position.row + len(parts) - 1, len(parts[-1]))


@dataclass(frozen=True)
class PromptContext:
    """Prompt resolved from the host, with the range it replaced (if any)"""

    prompt: str
    replace_range: Optional[Tuple[Position, Position]] = None


class PromptSource(Protocol):
    def resolve_context(self, replace: bool = False) -> PromptContext:
        ...


class InsertionSink(Protocol):
    def get_cursor(self) -> Position:
        ...

    def set_cursor(self, position: Position) -> None:
        ...

    def insert_at(self, position: Position, text: str) -> Position:
        """Insert text and return the position right after it."""
        ...

    def continue_edit_group(self, group_id: int) -> None:
        """Join the next edit to the undo group of earlier edits with the same id."""
        ...


class EditorHost(PromptSource, InsertionSink, Protocol):
    pass


@dataclass
class _Edit:
    kind: str  # "insert" or "delete"
    start: Position
    text: str


@dataclass
class _EditGroup:
    key: Optional[int]
    edits: List[_Edit] = field(default_factory=list)


class TextBuffer:
    def __init__(self, text: str = "", cursor: Optional[Position] = None):
        self._lines: List[str] = text.split("\n")
        self._cursor = Position(0, 0)
        self._selection: Optional[Tuple[Position, Position]] = None
        self._undo_stack: List[_EditGroup] = []
        self._join_key: Optional[int] = None
        if cursor is None:
            cursor = self.end_position()
        self.set_cursor(cursor)

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    def end_position(self) -> Position:
        return Position(len(self._lines) - 1, len(self._lines[-1]))

    def get_cursor(self) -> Position:
        return self._cursor

    def set_cursor(self, position: Position) -> None:
        self._cursor = self._clamp(position)

    # Selection

    @property
    def selection(self) -> Optional[Tuple[Position, Position]]:
        return self._selection

    def select(self, start: Position, end: Position) -> None:
        """Select [start, end). The ends may be given in either order."""
        start, end = sorted((self._clamp(start), self._clamp(end)))
        self._selection = (start, end)

    def clear_selection(self) -> None:
        self._selection = None

    def get_text(self, start: Position, end: Position) -> str:
        start, end = sorted((self._clamp(start), self._clamp(end)))
        if start.row == end.row:
            return self._lines[start.row][start.col:end.col]
        parts = [self._lines[start.row][start.col:]]
        parts.extend(self._lines[start.row + 1:end.row])
        parts.append(self._lines[end.row][:end.col])
        return "\n".join(parts)

    # Edits

    def insert_at(self, position: Position, text: str) -> Position:
        position = self._clamp(position)
        self._apply_insert(position, text)
        self._record(_Edit("insert", position, text))
        return advance_position(position, text)

    def delete_range(self, start: Position, end: Position) -> str:
        start, end = sorted((self._clamp(start), self._clamp(end)))
        removed = self.get_text(start, end)
        if removed:
            self._apply_delete(start, end)
            self._record(_Edit("delete", start, removed))
            self._cursor = _shift_after_delete(self._cursor, start, end)
        return removed

    def continue_edit_group(self, group_id: int) -> None:
        self._join_key = group_id

    def undo(self) -> bool:
        """Revert the most recent edit group. Returns False when there is nothing to undo."""
        if not self._undo_stack:
            return False
        group = self._undo_stack.pop()
        for edit in reversed(group.edits):
            if edit.kind == "insert":
                self._apply_delete(edit.start, advance_position(edit.start, edit.text))
            else:
                self._apply_insert(edit.start, edit.text)
        self._join_key = None
        self.set_cursor(group.edits[0].start)
        return True

    # Prompt resolution

    def resolve_context(self, replace: bool = False) -> PromptContext:
        """Prompt from the active selection, or from the buffer start up to the cursor.

        With replace=True the selection is deleted first and the cursor moved to
        where it started, so the completion takes its place.
        """
        if self._selection is not None:
            start, end = self._selection
            self._selection = None
            prompt = self.get_text(start, end)
            if not replace:
                return PromptContext(prompt)
            self.delete_range(start, end)
            self.set_cursor(start)
            return PromptContext(prompt, (start, end))

        row, col = self._cursor.row, self._cursor.col
        lines = self._lines[:row] + [self._lines[row][:col]]
        return PromptContext("\n".join(lines))

    def _clamp(self, position: Position) -> Position:
        row = min(max(position.row, 0), len(self._lines) - 1)
        col = min(max(position.col, 0), len(self._lines[row]))
        return Position(row, col)

    def _apply_insert(self, position: Position, text: str) -> None:
        line = self._lines[position.row]
        head, tail = line[:position.col], line[position.col:]
        parts = text.split("\n")
        parts[0] = head + parts[0]
        parts[-1] = parts[-1] + tail
        self._lines[position.row:position.row + 1] = parts

    def _apply_delete(self, start: Position, end: Position) -> None:
        head = self._lines[start.row][:start.col]
        tail = self._lines[end.row][end.col:]
        self._lines[start.row:end.row + 1] = [head + tail]

    def _record(self, edit: _Edit) -> None:
        key, self._join_key = self._join_key, None
        if key is not None and self._undo_stack and self._undo_stack[-1].key == key:
            self._undo_stack[-1].edits.append(edit)
        else:
            self._undo_stack.append(_EditGroup(key, [edit]))


def _shift_after_delete(cursor: Position, start: Position, end: Position) -> Position:
    if cursor <= start:
        return cursor
    if cursor <= end:
        return start
    if cursor.row == end.row:
        return Position(start.row, start.col + cursor.col - end.col)
    return Position(cursor.row - (end.row - start.row), cursor.col)
