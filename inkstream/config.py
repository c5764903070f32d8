import logging
import sys

from pydantic_settings import BaseSettings
from typing import Literal, Optional


def setup_logging(level: Optional[str] = None, stream=None, force: bool = False):
    """Configure application logging."""
    logging.basicConfig(
        level=level or logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(stream or sys.stdout)],
        force=force,
    )
    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class Settings(BaseSettings):
    # Names of the environment variables holding provider credentials
    anthropic_api_key_name: str = "ANTHROPIC_API_KEY"
    openai_api_key_name: str = "OPENAI_API_KEY"

    # Provider endpoints
    anthropic_url: str = "https://api.anthropic.com/v1/messages"
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    ollama_url: str = "http://localhost:11434/api/generate"

    # Provider request defaults (used when the ProviderConfig leaves them unset)
    anthropic_model: str = "claude-3-opus-20240229"
    anthropic_max_tokens: int = 4096
    openai_model: str = "gpt-4o"
    openai_temperature: float = 0.7
    ollama_model: str = "llama3"

    # Only the Anthropic codec falls back to this; the others send no system prompt when unset
    default_system_prompt: str = "You are a helpful assistant."

    # Transport configuration
    transport: Literal["curl", "httpx"] = "curl"
    curl_executable: str = "curl"

    # Timeout settings (seconds)
    cancel_grace_seconds: float = 2.0
    http_timeout: float = 60.0

    log_level: str = "INFO"

    class Config:
        env_prefix = "INKSTREAM_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Initialize logging on import
setup_logging(settings.log_level)
