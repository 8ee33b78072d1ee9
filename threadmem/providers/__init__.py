from typing import Dict
from threadmem.providers.base import BaseProvider
from threadmem.providers.openai import OpenAIProvider
from threadmem.providers.groq import GroqProvider

DEFAULT_PROVIDER = "openai"


def build_providers() -> Dict[str, BaseProvider]:
    """Register all available providers."""
    return {
        "openai": OpenAIProvider(),
        "groq": GroqProvider(),
    }


__all__ = [
    "BaseProvider",
    "OpenAIProvider",
    "GroqProvider",
    "DEFAULT_PROVIDER",
    "build_providers",
]
