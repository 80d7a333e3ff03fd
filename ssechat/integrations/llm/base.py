"""
Base LLM provider abstraction for the streaming relay.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Iterator, Any


class LLMProvider(ABC):
    """
    Base class for upstream inference backends.

    A provider opens a streaming chat request and hands back the raw
    response body; framing and parsing are left to the relay.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize provider with configuration.

        Args:
            config: Provider-specific configuration (endpoints, timeouts, etc.)
        """
        self.config = config
        self.model = config.get('model')

    @abstractmethod
    def stream_chat_raw(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Iterator[bytes]:
        """
        Stream the raw response body of a chat request.

        Closing the returned iterator must release the underlying
        network request.

        Args:
            messages: List of ``{role, content}`` dicts
            model: Model name, overriding the configured one
            options: Backend generation options

        Yields:
            Body chunks as they arrive

        Raises:
            LLMProviderError: On API errors, network issues, etc.
        """
        pass

    @property
    def name(self) -> str:
        """Provider name (e.g., 'ollama')"""
        return self.__class__.__name__.replace('Provider', '').lower()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model})"


# ==================== Exceptions ====================

class LLMProviderError(Exception):
    """Base exception for LLM provider errors"""
    pass


class ModelNotFoundError(LLMProviderError):
    """Requested model not available"""
    pass
