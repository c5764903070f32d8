import logging
from typing import Dict, List, Type

from inkstream.providers.anthropic import AnthropicCodec
from inkstream.providers.base import ProviderCodec
from inkstream.providers.ollama import OllamaCodec
from inkstream.providers.openai import OpenAICodec
from inkstream.utils.exceptions import UnknownProviderError

logger = logging.getLogger(__name__)


# Mapping of provider ids to their codec classes
PROVIDER_CODECS: Dict[str, Type[ProviderCodec]] = {
    "anthropic": AnthropicCodec,
    "openai": OpenAICodec,
    "ollama": OllamaCodec,
}


class CodecRegistry:
    """Lookup of codec instances by provider id"""

    def __init__(self, codecs: Dict[str, Type[ProviderCodec]] = PROVIDER_CODECS):
        self._codecs: Dict[str, ProviderCodec] = {
            provider_id: codec_class() for provider_id, codec_class in codecs.items()
        }

    def register(self, provider_id: str, codec: ProviderCodec) -> None:
        if provider_id in self._codecs:
            logger.warning(f"Replacing codec for provider '{provider_id}'")
        self._codecs[provider_id] = codec

    def get_codec(self, provider_id: str) -> ProviderCodec:
        codec = self._codecs.get(provider_id)
        if codec is None:
            raise UnknownProviderError(provider_id)
        return codec

    def get_provider_ids(self) -> List[str]:
        """Return ids of all registered providers"""
        return list(self._codecs.keys())


# Singleton instance
codec_registry = CodecRegistry()
