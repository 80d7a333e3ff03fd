"""
Client-side parser for the relay's Server-Sent Events stream.
"""

import codecs
import json
import threading
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Union

from ssechat.streaming.relay import DONE_SENTINEL

EVENT_DELIMITER = "\n\n"


class StreamOutcome(Enum):
    """How a consumed stream ended"""
    DONE = "done"              # [DONE] sentinel received
    COMPLETED = "completed"    # completion payload received
    ERROR = "error"            # server reported an error
    CANCELLED = "cancelled"    # stopped by the cancel event
    EXHAUSTED = "exhausted"    # source ended without a terminal event


def extract_event_data(block: str) -> str:
    """Join the ``data:`` lines of one event block"""
    lines = []
    for line in block.split('\n'):
        if not line.startswith('data:'):
            continue
        value = line[5:]
        if value.startswith(' '):
            value = value[1:]
        lines.append(value)
    return '\n'.join(lines)


class SSEConsumer:
    """
    Incremental SSE parser dispatching content, error and completion events.

    Content deltas are always increments; callers append them. Malformed
    payloads are dropped silently. When ``cancel_event`` is set no further
    callback fires, and the error callback is never used to report it.

    Paired with ``relay_stream``: the relay sends the final token of a
    ``done`` object as its own ``content`` event before forwarding the object,
    so ``message.content`` nested in a ``done`` payload is not treated as a
    delta. Non-terminal payloads with nested content, such as raw backend
    chunks, are still read.
    """

    def __init__(
        self,
        on_content: Callable[[str], None],
        on_error: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.on_content = on_content
        self.on_error = on_error
        self.on_complete = on_complete
        self.cancel_event = cancel_event or threading.Event()
        self.outcome: Optional[StreamOutcome] = None
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ""

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def feed(self, chunk: Union[bytes, str]) -> bool:
        """
        Consume one chunk of the stream.

        Returns:
            True once the stream reached a terminal state
        """
        if self.outcome is not None:
            return True
        if self.cancelled:
            self.outcome = StreamOutcome.CANCELLED
            return True

        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk.replace('\r\n', '\n')

        boundary = self._buffer.find(EVENT_DELIMITER)
        while boundary != -1:
            block = self._buffer[:boundary]
            self._buffer = self._buffer[boundary + len(EVENT_DELIMITER):]
            if self.handle_event(block):
                return True
            boundary = self._buffer.find(EVENT_DELIMITER)

        return False

    def finish(self) -> StreamOutcome:
        """Flush the trailing buffer after the source has ended"""
        if self.outcome is None:
            self._buffer += self._decoder.decode(b'', final=True).replace('\r\n', '\n')
            trailing, self._buffer = self._buffer, ""
            if trailing.strip():
                self.handle_event(trailing)
        if self.outcome is None:
            self.outcome = StreamOutcome.CANCELLED if self.cancelled else StreamOutcome.EXHAUSTED
        return self.outcome

    def consume(self, chunks: Iterable[Union[bytes, str]]) -> StreamOutcome:
        """
        Read chunks until a terminal event, cancellation or end of data.

        Cancellation is checked at every chunk boundary.
        """
        for chunk in chunks:
            if self.feed(chunk):
                return self.outcome
        return self.finish()

    def handle_event(self, block: str) -> bool:
        """
        Dispatch one event block.

        Returns:
            True if the event ended the stream
        """
        if self.cancelled:
            self.outcome = StreamOutcome.CANCELLED
            return True

        data = extract_event_data(block.strip())
        if not data:
            return False

        if data == DONE_SENTINEL:
            self.outcome = StreamOutcome.DONE
            return True

        try:
            payload = json.loads(data)
        except ValueError:
            return False
        if not isinstance(payload, dict):
            return False

        if payload.get('error'):
            self.outcome = StreamOutcome.ERROR
            if self.on_error is not None:
                self.on_error(str(payload['error']))
            return True

        done = payload.get('done') is True

        delta = payload.get('content')
        if delta is None and not done:
            # Completion payloads repeat the last message; only plain
            # message chunks carry a nested delta.
            message = payload.get('message')
            if isinstance(message, dict):
                delta = message.get('content')
        if isinstance(delta, str) and delta:
            self.on_content(delta)

        if done:
            self.outcome = StreamOutcome.COMPLETED
            if self.on_complete is not None and not self.cancelled:
                self.on_complete(payload)
            return True

        return False
