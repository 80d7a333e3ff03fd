"""
Tests for the chat session controller.
"""

import pytest

from ssechat.core.models import MessageRole
from ssechat.core.navigation import ROOT_KEY
from ssechat.integrations.client import ChatClientError
from ssechat.session import ChatSession, SendMode, SessionBusyError
from ssechat.streaming.consumer import StreamOutcome


@pytest.fixture
def session(session_context, replay_client, hi_there_sse):
    return ChatSession(session_context, client=replay_client(hi_there_sse))


class ScriptedClient:
    """Client that runs a callback between SSE chunks"""

    def __init__(self, chunks, between=None):
        self.chunks = chunks
        self.between = between
        self.payloads = []
        self.cancel_calls = 0

    def stream_chat(self, payload, consumer):
        self.payloads.append(payload)
        for i, chunk in enumerate(self.chunks):
            if consumer.feed(chunk):
                return consumer.outcome
            if self.between is not None:
                self.between(i)
        return consumer.finish()

    def cancel(self):
        self.cancel_calls += 1


class TestSend:
    """Test standard sends."""

    def test_send_creates_user_and_assistant(self, session):
        """Given an empty session, send should create a root prompt and streamed reply."""
        reply = session.send_prompt("Hello")

        user = session.tree.get(reply.parent_id)
        assert user.role == MessageRole.USER
        assert user.content == "Hello"
        assert user.is_root()
        assert reply.role == MessageRole.ASSISTANT
        assert reply.content == "Hi there"
        assert len(session.tree) == 2

    def test_send_marks_new_nodes_selected(self, session):
        reply = session.send("Hello")

        assert session.selection[ROOT_KEY] == reply.parent_id
        assert session.selection[reply.parent_id] == reply.id
        assert session.active_leaf().id == reply.id

    def test_request_carries_path_and_model(self, session):
        """Given a follow-up prompt, the request should carry the whole active path."""
        session.send("Hello")
        session.send("Again")

        payload = session.client.payloads[-1]
        assert payload["model"] == "test-model"
        assert payload["messages"] == [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi there"},
            {"role": "user", "content": "Again"},
        ]
        assert "options" not in payload

    def test_options_from_context(self, session):
        session.context.options = {"temperature": 0.2}

        session.send("Hello")

        assert session.client.payloads[-1]["options"] == {"temperature": 0.2}

    def test_completion_is_recorded(self, session):
        """Given a completion event, telemetry should be stored and in-flight cleared."""
        reply = session.send("Hello")

        info = session.completions[reply.id]
        assert info.eval_count == 5
        assert info.eval_duration == 1000000000
        assert info.model == "x"
        assert info.tokens_per_second == 5.0
        assert info.response_time_ms is not None
        assert session.in_flight_id is None
        assert not session.is_streaming

    def test_mode_accepts_string(self, session):
        reply = session.send_prompt("Hello", "standard")

        assert reply.content == "Hi there"

    def test_empty_prompt_rejected(self, session):
        with pytest.raises(ValueError, match="cannot be empty"):
            session.send("   ")

        assert len(session.tree) == 0

    def test_in_flight_during_stream(self, session_context):
        """Given a streaming reply, the assistant node should be marked in-flight."""
        seen = []
        client = ScriptedClient(['data: {"content":"a"}\n\n', "data: [DONE]\n\n"])
        session = ChatSession(session_context, client=client)
        client.between = lambda i: seen.append(session.in_flight_id)

        reply = session.send("Hello")

        assert seen[0] == reply.id
        assert session.in_flight_id is None


class TestRegenerate:
    """Test regenerating assistant replies."""

    def test_regenerate_creates_sibling(self, session_context, replay_client, hi_there_sse):
        """Given an assistant reply, regenerate should add a sibling and keep the original."""
        client = replay_client(hi_there_sse)
        session = ChatSession(session_context, client=client)
        original = session.send("Hello")

        client.chunks = []
        regenerated = session.send_prompt(None, SendMode.REGENERATE_ASSISTANT, original.id)

        siblings = session.tree.get_siblings(original.id)
        assert [n.id for n in siblings] == [original.id, regenerated.id]
        assert original.content == "Hi there"
        assert regenerated.content == ""
        assert session.active_leaf().id == regenerated.id

    def test_regenerate_resends_same_context(self, session):
        original = session.send("Hello")
        first_payload = session.client.payloads[-1]

        session.regenerate(original.id)

        assert session.client.payloads[-1] == first_payload

    def test_branch_navigation_between_replies(self, session):
        """Given two replies, navigation should switch the active leaf."""
        original = session.send("Hello")
        regenerated = session.regenerate(original.id)

        assert session.branch_position(regenerated.id) == (1, 2)

        moved = session.navigate_branch(regenerated.id, -1)
        assert moved.id == original.id
        assert session.active_leaf().id == original.id

        assert session.navigate_branch(original.id, -5).id == original.id

    def test_regenerate_requires_assistant(self, session):
        reply = session.send("Hello")

        with pytest.raises(ValueError, match="not a assistant message"):
            session.regenerate(reply.parent_id)

    def test_regenerate_unknown_node(self, session):
        with pytest.raises(ValueError, match="Unknown message"):
            session.regenerate("missing")


class TestEditAndResubmit:
    """Test editing user prompts."""

    def test_edit_creates_sibling_prompt(self, session):
        """Given a user prompt, editing should add a sibling prompt with a new reply."""
        session.send("Hello")
        first_reply = session.send("What is 2+2?")
        original_prompt = session.tree.get(first_reply.parent_id)

        new_reply = session.send_prompt("What is 3+3?", SendMode.REGENERATE_USER, original_prompt.id)

        new_prompt = session.tree.get(new_reply.parent_id)
        assert new_prompt.id != original_prompt.id
        assert new_prompt.parent_id == original_prompt.parent_id
        assert new_prompt.content == "What is 3+3?"
        assert original_prompt.content == "What is 2+2?"
        assert session.client.payloads[-1]["messages"][-1] == {"role": "user", "content": "What is 3+3?"}
        assert len(session.client.payloads[-1]["messages"]) == 3

    def test_edit_root_prompt_creates_new_root(self, session):
        """Given the first prompt, editing it should create and select a second root."""
        reply = session.send("Hello")

        new_reply = session.edit_and_resubmit(reply.parent_id, "Hi")

        assert len(session.tree.roots()) == 2
        assert session.selection[ROOT_KEY] == new_reply.parent_id
        assert [n.content for n in session.active_path()] == ["Hi", "Hi there"]

    def test_edit_requires_user_message(self, session):
        reply = session.send("Hello")

        with pytest.raises(ValueError):
            session.edit_and_resubmit(reply.id, "x")

    def test_edit_content_in_place(self, session):
        reply = session.send("Hello")

        session.edit_content(reply.parent_id, "Hello there")

        assert session.tree.get(reply.parent_id).content == "Hello there"
        assert len(session.tree) == 2


class TestDelete:
    """Test cascading delete through the session."""

    def test_delete_active_reply_falls_back(self, session):
        """Given the active reply is deleted, the other branch should become active."""
        original = session.send("Hello")
        regenerated = session.regenerate(original.id)

        removed = session.delete(regenerated.id)

        assert removed == [regenerated.id]
        assert regenerated.id not in session.completions
        assert session.active_leaf().id == original.id

    def test_delete_prompt_removes_subtree(self, session):
        reply = session.send("Hello")
        session.send("More")

        removed = session.delete(reply.parent_id)

        assert len(removed) == 4
        assert len(session.tree) == 0
        assert session.completions == {}
        assert session.active_leaf() is None

    def test_delete_unknown(self, session):
        assert session.delete("missing") == []

    def test_delete_in_flight_reply_cancels(self, session_context):
        """Given the streaming reply is deleted, the stream should be cancelled."""
        client = ScriptedClient([
            'data: {"content":"a"}\n\n',
            'data: {"content":"b"}\n\n',
            'data: {"done":true}\n\n',
        ])
        session = ChatSession(session_context, client=client)
        client.between = lambda i: session.delete(session.in_flight_id) if i == 0 else None

        session.send("Hello")

        assert client.cancel_calls == 1
        assert len(session.tree) == 1
        assert session.completions == {}
        assert session.error is None
        assert session.in_flight_id is None


class TestFailures:
    """Test error, cancellation and busy handling."""

    def test_server_error_sets_session_error(self, session_context, replay_client):
        client = replay_client(['data: {"content":"a"}\n\n', 'data: {"error":"model not found"}\n\n'])
        session = ChatSession(session_context, client=client)

        reply = session.send("Hello")

        assert session.error == "model not found"
        assert reply.content == "a"
        assert session.in_flight_id is None

    def test_transport_error_sets_session_error(self, session_context):
        class FailingClient(ScriptedClient):
            def stream_chat(self, payload, consumer):
                raise ChatClientError("Cannot connect to chat API at http://relay.test/api")

        session = ChatSession(session_context, client=FailingClient([]))

        session.send("Hello")

        assert "Cannot connect" in session.error
        assert session.in_flight_id is None

    def test_truncated_stream_sets_session_error(self, session_context, replay_client):
        """Given a stream that ends without a terminal event, the session should report it."""
        session = ChatSession(session_context, client=replay_client(['data: {"content":"a"}\n\n']))

        reply = session.send("Hello")

        assert reply.content == "a"
        assert session.error == "Response stream ended before completion"
        assert session.completions == {}

    def test_error_cleared_by_next_send(self, session_context, replay_client, hi_there_sse):
        client = replay_client(['data: {"error":"boom"}\n\n'])
        session = ChatSession(session_context, client=client)
        session.send("Hello")
        assert session.error == "boom"

        client.chunks = hi_there_sse
        session.send("Again")

        assert session.error is None

    def test_cancel_mid_stream(self, session_context, hi_there_sse):
        """Given a cancel after the first delta, no more content or completion should arrive."""
        client = ScriptedClient(hi_there_sse)
        session = ChatSession(session_context, client=client)
        client.between = lambda i: session.cancel() if i == 0 else None

        reply = session.send("Hello")

        assert reply.content == "Hi"
        assert session.completions == {}
        assert session.error is None
        assert session.in_flight_id is None
        assert client.cancel_calls == 1

    def test_exception_after_cancel_is_not_an_error(self, session_context):
        class AbortingClient(ScriptedClient):
            def stream_chat(self, payload, consumer):
                consumer.cancel()
                raise ChatClientError("connection closed")

        session = ChatSession(session_context, client=AbortingClient([]))

        session.send("Hello")

        assert session.error is None

    def test_cancel_without_stream_is_noop(self, session):
        session.cancel()

        assert session.client.payloads == []

    def test_concurrent_send_rejected(self, session_context):
        """Given a send while a reply streams, the second send should be rejected."""
        rejected = []
        client = ScriptedClient(['data: {"content":"a"}\n\n', "data: [DONE]\n\n"])
        session = ChatSession(session_context, client=client)

        def try_second_send(i):
            try:
                session.send("Second")
            except SessionBusyError:
                rejected.append(i)

        client.between = try_second_send

        session.send("First")

        assert rejected == [0]
        assert len(client.payloads) == 1
        assert len(session.tree) == 2


class TestLoadAndAnalytics:
    """Test rebuilding sessions and aggregating telemetry."""

    def test_load_records(self, session, branching_nodes):
        session.load(branching_nodes)

        assert len(session.tree) == 5
        assert session.active_leaf().id == "a1b"

    def test_analytics_over_replies(self, session):
        session.send("Hello")
        session.send("Again")

        stats = session.analytics(context_window=100)

        assert stats.total_messages == 2
        assert stats.total_output_tokens == 10
        assert stats.tokens_per_second == 5.0
        assert stats.context_usage_percent == 5.0

    def test_outcome_enum_exposed(self):
        assert StreamOutcome("done") == StreamOutcome.DONE
