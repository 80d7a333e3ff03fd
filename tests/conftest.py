"""
Pytest configuration and shared fixtures
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List

import pytest

from ssechat.core.models import MessageNode, MessageRole, SessionContext
from ssechat.core.tree import ConversationTree
from ssechat.streaming.consumer import SSEConsumer, StreamOutcome


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests across the relay and session")


def ndjson(*objects: Dict[str, Any]) -> List[bytes]:
    """Encode objects as NDJSON lines, one chunk per line"""
    return [(json.dumps(obj) + "\n").encode("utf-8") for obj in objects]


class ReplayClient:
    """Relay client stand-in replaying a fixed SSE body"""

    def __init__(self, chunks: Iterable[Any] = ()):
        self.chunks = list(chunks)
        self.payloads: List[Dict[str, Any]] = []
        self.cancel_calls = 0

    def stream_chat(self, payload: Dict[str, Any], consumer: SSEConsumer) -> StreamOutcome:
        self.payloads.append(payload)
        return consumer.consume(self.chunks)

    def cancel(self) -> None:
        self.cancel_calls += 1


@pytest.fixture
def session_context():
    return SessionContext(model="test-model", api_base_url="http://relay.test/api")


@pytest.fixture
def hi_there_ndjson() -> List[bytes]:
    """Upstream body of a two-token reply"""
    return ndjson(
        {"message": {"content": "Hi"}, "done": False},
        {"message": {"content": " there"}, "done": False},
        {"done": True, "eval_count": 5, "eval_duration": 1000000000, "model": "x"},
    )


@pytest.fixture
def hi_there_sse() -> List[str]:
    """Relay output for hi_there_ndjson"""
    return [
        'data: {"content":"Hi"}\n\n',
        'data: {"content":" there"}\n\n',
        'data: {"done":true,"eval_count":5,"eval_duration":1000000000,"model":"x"}\n\n',
        'data: [DONE]\n\n',
    ]


@pytest.fixture
def linear_nodes() -> List[MessageNode]:
    """user -> assistant -> user -> assistant"""
    start = datetime(2024, 1, 1, 12, 0, 0)
    return [
        MessageNode(id="u1", role=MessageRole.USER, content="Hello", created_at=start),
        MessageNode(id="a1", role=MessageRole.ASSISTANT, content="Hi!", parent_id="u1",
                    created_at=start + timedelta(seconds=1)),
        MessageNode(id="u2", role=MessageRole.USER, content="How are you?", parent_id="a1",
                    created_at=start + timedelta(seconds=2)),
        MessageNode(id="a2", role=MessageRole.ASSISTANT, content="Great.", parent_id="u2",
                    created_at=start + timedelta(seconds=3)),
    ]


@pytest.fixture
def branching_nodes() -> List[MessageNode]:
    """
    u1
    ├─ a1a ── u2 ── a2
    └─ a1b            (regenerated, newest)
    """
    return [
        MessageNode(id="u1", role=MessageRole.USER, content="What's 2+2?"),
        MessageNode(id="a1a", role=MessageRole.ASSISTANT, content="4", parent_id="u1"),
        MessageNode(id="u2", role=MessageRole.USER, content="Sure?", parent_id="a1a"),
        MessageNode(id="a2", role=MessageRole.ASSISTANT, content="Yes.", parent_id="u2"),
        MessageNode(id="a1b", role=MessageRole.ASSISTANT, content="Four", parent_id="u1"),
    ]


@pytest.fixture
def branching_tree(branching_nodes) -> ConversationTree:
    return ConversationTree.build(branching_nodes)


@pytest.fixture
def replay_client():
    """Factory for ReplayClient instances"""
    return ReplayClient


@pytest.fixture
def encode_ndjson():
    return ndjson
