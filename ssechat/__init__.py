"""
SSE Chat - Branching conversations over a token-streaming LLM backend
"""

__version__ = "0.3.0"
__author__ = "SSE Chat Contributors"

from .core.models import (
    MessageNode,
    MessageRole,
    CompletionInfo,
    SessionContext,
)
from .core.tree import ConversationTree
from .core.navigation import (
    ROOT_KEY,
    get_active_leaf,
    get_active_path,
    get_message_path,
    branch_position,
)
from .streaming import NDJSONRelay, relay_stream, SSEConsumer, StreamOutcome
from .session import ChatSession, SendMode, SessionBusyError

__all__ = [
    # Core models
    'MessageNode',
    'MessageRole',
    'CompletionInfo',
    'SessionContext',
    'ConversationTree',
    # Navigation
    'ROOT_KEY',
    'get_active_leaf',
    'get_active_path',
    'get_message_path',
    'branch_position',
    # Streaming
    'NDJSONRelay',
    'relay_stream',
    'SSEConsumer',
    'StreamOutcome',
    # Session
    'ChatSession',
    'SendMode',
    'SessionBusyError',
]
