from inkstream.providers.base import ProviderCodec, StreamParseState
from inkstream.providers.registry import codec_registry

__all__ = ["ProviderCodec", "StreamParseState", "codec_registry"]
