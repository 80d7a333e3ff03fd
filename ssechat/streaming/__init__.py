"""Streaming protocol: NDJSON to SSE relay and SSE consumer"""

from .relay import NDJSONRelay, relay_stream, DONE_SENTINEL
from .consumer import SSEConsumer, StreamOutcome

__all__ = ['NDJSONRelay', 'relay_stream', 'DONE_SENTINEL', 'SSEConsumer', 'StreamOutcome']
