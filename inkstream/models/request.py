from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional


class ProviderConfig(BaseModel):
    """Per-invocation provider settings; unset fields fall back to inkstream.config.settings"""

    provider_id: str
    endpoint_url: Optional[str] = None
    credential_ref: Optional[str] = None  # Name of the environment variable holding the key
    model_id: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0.0)
    system_prompt: Optional[str] = None
    replace: bool = False  # Replace the active selection instead of appending after it

    model_config = ConfigDict(
        frozen=True,
        protected_namespaces=(),
        json_schema_extra={
            "examples": [
                {"provider_id": "anthropic", "model_id": "claude-3-opus-20240229", "max_tokens": 1024},
                {"provider_id": "ollama", "endpoint_url": "http://gpu-box:11434/api/generate"},
            ]
        },
    )


class RequestDescription(BaseModel):
    """HTTP request a transport executes for one job. Header order is preserved."""

    method: str = "POST"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str

    model_config = ConfigDict(frozen=True)

    def header_lines(self) -> list[str]:
        """Headers rendered as "Name: value" lines, in insertion order."""
        return [f"{name}: {value}" for name, value in self.headers.items()]

    def __repr__(self) -> str:
        # Header values carry credentials
        return f"RequestDescription(method={self.method!r}, url={self.url!r})"
