"""
Ollama LLM provider implementation.
"""

import json
import logging
import requests
from typing import List, Dict, Optional, Iterator, Any

from ssechat.integrations.llm.base import (
    LLMProvider,
    LLMProviderError,
    ModelNotFoundError,
)

logger = logging.getLogger(__name__)


def _error_body(response: Optional[requests.Response]) -> Optional[str]:
    """Extract the error text Ollama sends with a failed request"""
    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        text = getattr(response, 'text', None)
        return text.strip() if isinstance(text, str) and text.strip() else None
    if isinstance(payload, dict) and isinstance(payload.get('error'), str):
        return payload['error']
    return json.dumps(payload)


class OllamaProvider(LLMProvider):
    """
    Ollama provider for local LLM inference.

    Requires Ollama to be running (default: http://127.0.0.1:11434)
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Ollama provider.

        Args:
            config: Configuration dict with keys:
                - base_url: Ollama API URL (default: http://127.0.0.1:11434)
                - model: Default model name, used when a request names none
                - timeout: Request timeout in seconds (default: 120)
        """
        super().__init__(config)
        self.base_url = config.get('base_url', 'http://127.0.0.1:11434').rstrip('/')
        self.timeout = config.get('timeout', 120)

    def stream_chat_raw(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Iterator[bytes]:
        """
        Stream the NDJSON body of ``/api/chat``.

        The request is sent on the first ``next()``. Closing the generator
        closes the HTTP response, so no further tokens are pulled from
        Ollama once the consumer goes away.

        Yields:
            Raw body chunks

        Raises:
            LLMProviderError: On connection, timeout or API errors
        """
        model = model or self.model
        if not model:
            raise ValueError("Model name is required for Ollama provider")

        payload = {
            'model': model,
            'messages': messages,
            'stream': True,
        }
        if options:
            payload['options'] = options

        logger.info(f"Sending chat request to Ollama: model={model}, messages={len(messages)}")

        try:
            response = requests.post(
                f'{self.base_url}/api/chat',
                json=payload,
                stream=True,
                timeout=self.timeout
            )
        except requests.exceptions.ConnectionError:
            raise LLMProviderError(
                f"Cannot connect to Ollama at {self.base_url}. "
                "Is Ollama running?"
            )
        except requests.exceptions.Timeout:
            raise LLMProviderError(f"Request timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise LLMProviderError(f"Ollama request failed: {e}")

        try:
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                detail = _error_body(e.response) or str(e)
                if e.response is not None and e.response.status_code == 404:
                    raise ModelNotFoundError(
                        f"Model '{model}' not found: {detail}. "
                        f"Pull it with: ollama pull {model}"
                    )
                raise LLMProviderError(f"Ollama API error: {detail}")

            try:
                for chunk in response.iter_content(chunk_size=None):
                    if chunk:
                        yield chunk
            except requests.exceptions.RequestException as e:
                raise LLMProviderError(f"Ollama stream interrupted: {e}")
        finally:
            response.close()

    def is_available(self) -> bool:
        """
        Check if Ollama is running and accessible.

        Returns:
            True if Ollama is available, False otherwise
        """
        try:
            response = requests.get(f'{self.base_url}/api/tags', timeout=2)
            return response.ok
        except requests.exceptions.RequestException:
            return False
