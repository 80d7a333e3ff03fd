"""
HTTP client for the SSE chat relay.
"""

import logging
import threading
from typing import Any, Dict, Optional

import requests

from ssechat.streaming.consumer import SSEConsumer, StreamOutcome

logger = logging.getLogger(__name__)


class ChatClientError(Exception):
    """Raised when the relay cannot be reached or rejects a request"""
    pass


def read_error_message(response: requests.Response) -> str:
    """Best-effort error text from a failed relay response"""
    try:
        payload = response.json()
    except ValueError:
        return response.reason or 'Request failed'
    if isinstance(payload, dict) and payload.get('error'):
        error = payload['error']
        return error if isinstance(error, str) else str(error)
    return response.reason or 'Request failed'


class ChatClient:
    """
    Streams chat responses from the relay's ``/chat`` endpoint.

    One request is active at a time; ``cancel`` may be called from another
    thread and closes the active response so a blocked read returns.
    """

    def __init__(self, base_url: str, timeout: float = 120):
        """
        Args:
            base_url: Relay API root, e.g. http://localhost:5000/api
            timeout: Connect/read timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None

    def stream_chat(self, payload: Dict[str, Any], consumer: SSEConsumer) -> StreamOutcome:
        """
        POST a chat request and feed the SSE body into consumer.

        Args:
            payload: ``{model, messages, options?}``
            consumer: SSEConsumer receiving the events

        Returns:
            How the stream ended

        Raises:
            ChatClientError: On connection failures or non-2xx responses
        """
        if consumer.cancelled:
            return StreamOutcome.CANCELLED

        try:
            response = requests.post(
                f'{self.base_url}/chat',
                json=payload,
                headers={'Accept': 'text/event-stream'},
                stream=True,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError:
            raise ChatClientError(f"Cannot connect to chat API at {self.base_url}")
        except requests.exceptions.Timeout:
            raise ChatClientError(f"Request timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise ChatClientError(f"Chat request failed: {e}")

        with self._lock:
            self._response = response

        try:
            if not response.ok:
                raise ChatClientError(read_error_message(response))

            try:
                return consumer.consume(response.iter_content(chunk_size=None))
            except Exception as e:
                if consumer.cancelled:
                    logger.debug(f"Read interrupted by cancellation: {e}")
                    return StreamOutcome.CANCELLED
                if isinstance(e, requests.exceptions.RequestException):
                    raise ChatClientError(f"Stream interrupted: {e}")
                raise
        finally:
            with self._lock:
                self._response = None
            response.close()

    def cancel(self) -> None:
        """Close the active response, if any"""
        with self._lock:
            response = self._response
        if response is not None:
            response.close()
