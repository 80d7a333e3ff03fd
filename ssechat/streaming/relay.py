"""
NDJSON to Server-Sent Events relay.

The inference backend streams one JSON object per line. The relay turns
every line carrying a token into a ``{"content": ...}`` event, forwards the
terminal ``done`` object unchanged, and closes the stream with a ``[DONE]``
sentinel. Lines that fail to parse are logged and skipped.
"""

import codecs
import json
import logging
from typing import Any, Iterable, Iterator, List, Union

import requests

from ssechat.integrations.llm.base import LLMProviderError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def encode_payload(payload: Any) -> str:
    """Compact single-line JSON; json.dumps escapes newlines inside strings"""
    return json.dumps(payload, ensure_ascii=False, separators=(',', ':'))


def format_event(data: str) -> str:
    """Frame one SSE event"""
    return f"data: {data}\n\n"


def content_event(content: str) -> str:
    return format_event(encode_payload({'content': content}))


def error_event(message: str) -> str:
    return format_event(encode_payload({'error': message}))


def done_event() -> str:
    return format_event(DONE_SENTINEL)


class NDJSONRelay:
    """
    Incremental NDJSON parser producing SSE frames.

    Feed it body chunks as they arrive; each call returns the frames that
    became complete. Once the terminal object is seen, ``finished`` is set
    and further input is ignored.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ""
        self.finished = False
        self.skipped_lines = 0

    def feed(self, chunk: Union[bytes, str]) -> List[str]:
        """Consume one chunk and return the frames it completed"""
        if self.finished:
            return []

        if isinstance(chunk, bytes):
            self._buffer += self._decoder.decode(chunk)
        else:
            self._buffer += chunk

        frames = []
        newline_index = self._buffer.find('\n')
        while newline_index != -1 and not self.finished:
            line = self._buffer[:newline_index]
            self._buffer = self._buffer[newline_index + 1:]
            frames.extend(self.handle_line(line))
            newline_index = self._buffer.find('\n')

        return frames

    def flush(self) -> List[str]:
        """Handle whatever is left once the upstream body has ended"""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(b'', final=True)
        trailing, self._buffer = self._buffer, ""
        return self.handle_line(trailing)

    def handle_line(self, line: str) -> List[str]:
        """Translate a single NDJSON line into zero or more frames"""
        line = line.strip()
        if not line or self.finished:
            return []

        try:
            parsed = json.loads(line)
        except ValueError as e:
            self.skipped_lines += 1
            logger.warning(f"Unable to parse upstream chunk: {e}: {line[:200]!r}")
            return []

        if not isinstance(parsed, dict):
            self.skipped_lines += 1
            logger.warning(f"Ignoring non-object upstream chunk: {line[:200]!r}")
            return []

        frames = []
        message = parsed.get('message')
        if isinstance(message, dict):
            content = message.get('content')
            if isinstance(content, str) and content:
                frames.append(content_event(content))

        if parsed.get('done') is True:
            frames.append(format_event(encode_payload(parsed)))
            frames.append(done_event())
            self.finished = True

        return frames


def relay_stream(chunks: Iterable[Union[bytes, str]]) -> Iterator[str]:
    """
    Relay an upstream NDJSON body as SSE frames.

    Upstream failures are reported as a single error event before the
    stream ends. Closing this generator, which is what the WSGI server does
    when the client disconnects, closes ``chunks`` so the upstream request
    is released and no more tokens are read from it.

    Args:
        chunks: Upstream body chunks; closed when the relay stops

    Yields:
        SSE frames
    """
    relay = NDJSONRelay()
    upstream = iter(chunks)

    try:
        for chunk in upstream:
            for frame in relay.feed(chunk):
                yield frame
            if relay.finished:
                return

        for frame in relay.flush():
            yield frame
    except (LLMProviderError, requests.exceptions.RequestException) as e:
        logger.error(f"Upstream stream failed: {e}")
        yield error_event(str(e))
    except Exception as e:
        logger.exception(f"Unexpected error while relaying upstream stream: {e}")
        yield error_event(str(e) or e.__class__.__name__)
    finally:
        close = getattr(upstream, 'close', None)
        if close is not None:
            close()
        if relay.skipped_lines:
            logger.info(f"Skipped {relay.skipped_lines} malformed upstream line(s)")
