from inkstream.editor.buffer import (
    EditorHost,
    InsertionSink,
    Position,
    PromptContext,
    PromptSource,
    TextBuffer,
    advance_position,
)

__all__ = [
    "EditorHost",
    "InsertionSink",
    "Position",
    "PromptContext",
    "PromptSource",
    "TextBuffer",
    "advance_position",
]
