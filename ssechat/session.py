"""
Chat session controller.

Owns a conversation tree, the branch selection that picks the visible path
through it, and the single streaming exchange allowed at a time. Every user
action adds nodes instead of overwriting them: regenerating a reply or
editing a prompt creates a sibling branch.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ssechat.core.analytics import SessionAnalytics, compute_analytics
from ssechat.core.models import (
    CompletionInfo,
    MessageNode,
    MessageRole,
    SessionContext,
)
from ssechat.core.navigation import (
    BranchSelection,
    branch_position,
    get_active_leaf,
    get_active_path,
    get_message_path,
    selection_key,
)
from ssechat.core.tree import ConversationTree
from ssechat.integrations.client import ChatClient
from ssechat.streaming.consumer import SSEConsumer, StreamOutcome

logger = logging.getLogger(__name__)


class SendMode(Enum):
    """How send_prompt creates the nodes it streams into"""
    STANDARD = "standard"
    REGENERATE_ASSISTANT = "regenerate-assistant"
    REGENERATE_USER = "regenerate-user"


class SessionBusyError(Exception):
    """Raised when a prompt is sent while another response is streaming"""
    pass


class ChatSession:
    """
    Branching chat session against the SSE relay.

    Tree and selection state are only mutated by the session owner; the
    one exception is ``cancel``, which is safe to call from another thread.
    """

    def __init__(
        self,
        context: SessionContext,
        client: Optional[ChatClient] = None,
        tree: Optional[ConversationTree] = None,
    ):
        """
        Args:
            context: Model, options and relay endpoint for this session
            client: Relay client (built from context when omitted)
            tree: Existing conversation to continue
        """
        self.context = context
        self.client = client or ChatClient(context.api_base_url, timeout=context.timeout)
        self.tree = tree or ConversationTree()
        self.selection: BranchSelection = {}
        self.completions: Dict[str, CompletionInfo] = {}
        self.in_flight_id: Optional[str] = None
        self.error: Optional[str] = None

        self._send_lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None

    # ==================== State ====================

    @property
    def is_streaming(self) -> bool:
        return self.in_flight_id is not None

    def active_leaf(self) -> Optional[MessageNode]:
        return get_active_leaf(self.tree, self.selection)

    def active_path(self) -> List[MessageNode]:
        return get_active_path(self.tree, self.selection)

    def branch_position(self, node_id: str) -> Tuple[int, int]:
        """(index, count) of a node among its siblings"""
        return branch_position(self.tree, node_id)

    def analytics(self, context_window: Optional[int] = None) -> SessionAnalytics:
        return compute_analytics(self.completions, context_window)

    def load(self, records: Iterable[Union[MessageNode, Dict[str, Any]]]) -> None:
        """Replace the conversation with one rebuilt from flat records"""
        self.tree = ConversationTree.build(records)
        self.selection = {}
        self.completions = {}

    # ==================== Sending ====================

    def send_prompt(
        self,
        prompt_text: Optional[str],
        mode: Union[SendMode, str] = SendMode.STANDARD,
        source_node_id: Optional[str] = None,
    ) -> MessageNode:
        """
        Create the nodes for a prompt and stream the reply into them.

        Args:
            prompt_text: Prompt for standard sends, edited text for
                regenerate-user; ignored for regenerate-assistant
            mode: SendMode or its string value
            source_node_id: Assistant node to regenerate, or user node
                to edit (required for both regenerate modes)

        Returns:
            The assistant node that received the reply

        Raises:
            SessionBusyError: If a response is already streaming
            ValueError: If the prompt or source node is invalid
        """
        mode = SendMode(mode)

        if not self._send_lock.acquire(blocking=False):
            raise SessionBusyError("A response is already streaming")

        try:
            self.error = None

            if mode == SendMode.STANDARD:
                assistant = self._create_turn(prompt_text)
            elif mode == SendMode.REGENERATE_ASSISTANT:
                assistant = self._create_regenerated_reply(source_node_id)
            else:
                assistant = self._create_edited_turn(source_node_id, prompt_text)

            self._stream_into(assistant)
            return assistant
        finally:
            self._send_lock.release()

    def send(self, prompt_text: str) -> MessageNode:
        return self.send_prompt(prompt_text, SendMode.STANDARD)

    def regenerate(self, assistant_id: str) -> MessageNode:
        return self.send_prompt(None, SendMode.REGENERATE_ASSISTANT, assistant_id)

    def edit_and_resubmit(self, user_id: str, new_text: str) -> MessageNode:
        return self.send_prompt(new_text, SendMode.REGENERATE_USER, user_id)

    def cancel(self) -> None:
        """Abort the streaming response, if any"""
        event = self._cancel_event
        if event is None:
            return
        event.set()
        self.client.cancel()

    def _create_turn(self, prompt_text: Optional[str]) -> MessageNode:
        prompt = (prompt_text or "").strip()
        if not prompt:
            raise ValueError("Prompt cannot be empty")

        leaf = self.active_leaf()
        user = self._add_node(MessageRole.USER, prompt, leaf.id if leaf else None)
        return self._add_node(MessageRole.ASSISTANT, "", user.id)

    def _create_regenerated_reply(self, source_node_id: Optional[str]) -> MessageNode:
        source = self._require_node(source_node_id, MessageRole.ASSISTANT)
        if self.tree.is_root(source.id):
            raise ValueError("Cannot regenerate a root message")
        return self._add_node(MessageRole.ASSISTANT, "", source.parent_id)

    def _create_edited_turn(self, source_node_id: Optional[str], new_text: Optional[str]) -> MessageNode:
        source = self._require_node(source_node_id, MessageRole.USER)
        prompt = (new_text or "").strip()
        if not prompt:
            raise ValueError("Prompt cannot be empty")

        parent_id = None if self.tree.is_root(source.id) else source.parent_id
        user = self._add_node(MessageRole.USER, prompt, parent_id)
        return self._add_node(MessageRole.ASSISTANT, "", user.id)

    def _require_node(self, node_id: Optional[str], role: MessageRole) -> MessageNode:
        node = self.tree.get(node_id)
        if node is None:
            raise ValueError(f"Unknown message: {node_id}")
        if node.role != role:
            raise ValueError(f"Message {node_id} is not a {role.value} message")
        return node

    def _add_node(self, role: MessageRole, content: str, parent_id: Optional[str]) -> MessageNode:
        node = MessageNode(role=role, content=content, parent_id=parent_id)
        self.tree.add_node(node)
        self.select_branch(node.id)
        return node

    def _stream_into(self, assistant: MessageNode) -> None:
        """Run one exchange, appending the reply to assistant"""
        context = get_message_path(self.tree, assistant.parent_id)
        payload: Dict[str, Any] = {
            'model': self.context.model,
            'messages': [node.to_chat_message() for node in context],
        }
        if self.context.options:
            payload['options'] = dict(self.context.options)

        cancel_event = threading.Event()
        self._cancel_event = cancel_event
        self.in_flight_id = assistant.id
        started = time.monotonic()

        def on_content(delta: str):
            node = self.tree.get(assistant.id)
            if node is not None:
                node.append_content(delta)

        def on_error(message: str):
            self.error = message

        def on_complete(event: Dict[str, Any]):
            elapsed_ms = (time.monotonic() - started) * 1000
            if assistant.id in self.tree:
                self.completions[assistant.id] = CompletionInfo.from_payload(event, elapsed_ms)
            self.in_flight_id = None

        consumer = SSEConsumer(on_content, on_error, on_complete, cancel_event)

        try:
            outcome = self.client.stream_chat(payload, consumer)
            if outcome == StreamOutcome.CANCELLED:
                logger.info(f"Streaming into {assistant.id} cancelled")
            elif outcome == StreamOutcome.EXHAUSTED and not cancel_event.is_set():
                logger.warning(f"Stream for {assistant.id} ended without completing")
                self.error = "Response stream ended before completion"
        except Exception as e:
            if cancel_event.is_set():
                logger.debug(f"Stream for {assistant.id} ended after cancel: {e}")
            else:
                logger.error(f"Streaming into {assistant.id} failed: {e}")
                self.error = str(e) or e.__class__.__name__
        finally:
            self.in_flight_id = None
            self._cancel_event = None

    # ==================== Tree editing ====================

    def select_branch(self, node_id: str) -> None:
        """Make node_id the chosen branch at its parent"""
        if node_id not in self.tree:
            raise ValueError(f"Unknown message: {node_id}")
        self.selection[selection_key(self.tree, node_id)] = node_id

    def navigate_branch(self, node_id: str, offset: int) -> MessageNode:
        """
        Select the sibling offset positions away from node_id.

        The move is clamped to the first and last sibling.
        """
        if node_id not in self.tree:
            raise ValueError(f"Unknown message: {node_id}")
        sibling_ids = self.tree.get_sibling_ids(node_id)
        index = sibling_ids.index(node_id) + offset
        index = max(0, min(len(sibling_ids) - 1, index))
        target = sibling_ids[index]
        self.select_branch(target)
        return self.tree.nodes[target]

    def edit_content(self, node_id: str, content: str) -> MessageNode:
        """Replace a message's content in place, without branching"""
        node = self.tree.get(node_id)
        if node is None:
            raise ValueError(f"Unknown message: {node_id}")
        if node_id == self.in_flight_id:
            raise SessionBusyError("Cannot edit a message that is still streaming")
        node.content = content
        return node

    def delete(self, node_id: str) -> List[str]:
        """
        Delete a message and all of its descendants.

        A streaming reply inside the subtree is cancelled first. The active
        path falls back to the newest remaining branch automatically.

        Returns:
            Ids of removed messages
        """
        if node_id not in self.tree:
            return []

        if self.in_flight_id is not None and self.in_flight_id in self.tree.subtree_ids(node_id):
            self.cancel()

        removed = self.tree.delete_subtree(node_id)
        for removed_id in removed:
            self.completions.pop(removed_id, None)
            self.selection.pop(removed_id, None)

        logger.debug(f"Deleted {len(removed)} message(s) under {node_id}")
        return removed
