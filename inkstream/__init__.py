"""Stream LLM completions into a text buffer, one provider request at a time."""

__version__ = "0.1.0"
