"""
Upstream LLM provider abstractions for the streaming relay.
"""

from ssechat.integrations.llm.base import (
    LLMProvider,
    LLMProviderError,
    ModelNotFoundError,
)
from ssechat.integrations.llm.ollama import OllamaProvider

__all__ = [
    'LLMProvider',
    'LLMProviderError',
    'ModelNotFoundError',
    'OllamaProvider',
]
