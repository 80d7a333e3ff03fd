"""Core components of SSE Chat"""

from .models import MessageNode, MessageRole, CompletionInfo, SessionContext
from .tree import ConversationTree

__all__ = ['MessageNode', 'MessageRole', 'CompletionInfo', 'SessionContext', 'ConversationTree']
