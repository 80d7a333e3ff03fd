"""
Core data models for branching conversations
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import uuid


class MessageRole(Enum):
    """Roles accepted by the chat backend"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def from_string(cls, role: str) -> 'MessageRole':
        """Convert string to MessageRole, handling common variations"""
        if not role or not isinstance(role, str):
            return cls.USER

        role = role.lower().strip()
        role_map = {
            'human': cls.USER,
            'ai': cls.ASSISTANT,
            'bot': cls.ASSISTANT,
            'model': cls.ASSISTANT,
        }

        if role in role_map:
            return role_map[role]

        try:
            return cls(role)
        except ValueError:
            return cls.USER


def generate_message_id() -> str:
    """Generate a unique message ID"""
    return f"msg_{uuid.uuid4().hex}"


def _to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _from_epoch_ms(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return datetime.now()


@dataclass
class MessageNode:
    """A single message in a conversation tree.

    ``children`` holds ids in creation order; the tree store keeps it in
    sync with the ``parent_id`` of every other node.
    """
    id: str = field(default_factory=generate_message_id)
    role: MessageRole = MessageRole.USER
    content: str = ""
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    def is_root(self) -> bool:
        return self.parent_id is None

    def is_leaf(self) -> bool:
        return not self.children

    def append_content(self, delta: str) -> None:
        """Append a streamed content increment"""
        self.content += delta

    def to_chat_message(self) -> Dict[str, str]:
        """Role/content pair for the outgoing chat request"""
        return {'role': self.role.value, 'content': self.content}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the durable record format"""
        return {
            'id': self.id,
            'role': self.role.value,
            'content': self.content,
            'parentId': self.parent_id,
            'children': list(self.children),
            'createdAt': _to_epoch_ms(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MessageNode':
        """Create from a durable record (``parent_id`` is accepted too)"""
        return cls(
            id=data.get('id') or generate_message_id(),
            role=MessageRole.from_string(data.get('role', 'user')),
            content=data.get('content') or '',
            parent_id=data.get('parentId', data.get('parent_id')),
            children=list(data.get('children') or []),
            created_at=_from_epoch_ms(data.get('createdAt', data.get('created_at'))),
        )


@dataclass
class CompletionInfo:
    """Telemetry reported by the backend when a response finishes.

    Durations are nanoseconds, exactly as the backend reports them.
    ``response_time_ms`` is measured on the client side.
    """
    model: Optional[str] = None
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None
    response_time_ms: Optional[float] = None

    @property
    def tokens_per_second(self) -> Optional[float]:
        """Generation throughput, or None when it cannot be derived"""
        if not isinstance(self.eval_count, (int, float)):
            return None
        if not isinstance(self.eval_duration, (int, float)) or self.eval_duration <= 0:
            return None
        return self.eval_count / (self.eval_duration / 1e9)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any],
                     response_time_ms: Optional[float] = None) -> 'CompletionInfo':
        """Create from the completion event payload"""
        return cls(
            model=payload.get('model'),
            done_reason=payload.get('done_reason'),
            total_duration=payload.get('total_duration'),
            load_duration=payload.get('load_duration'),
            prompt_eval_count=payload.get('prompt_eval_count'),
            prompt_eval_duration=payload.get('prompt_eval_duration'),
            eval_count=payload.get('eval_count'),
            eval_duration=payload.get('eval_duration'),
            response_time_ms=response_time_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting unknown values"""
        data = {
            'model': self.model,
            'done_reason': self.done_reason,
            'total_duration': self.total_duration,
            'load_duration': self.load_duration,
            'prompt_eval_count': self.prompt_eval_count,
            'prompt_eval_duration': self.prompt_eval_duration,
            'eval_count': self.eval_count,
            'eval_duration': self.eval_duration,
            'response_time_ms': self.response_time_ms,
            'tokens_per_second': self.tokens_per_second,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class SessionContext:
    """Model and endpoint settings a chat session runs against"""
    model: str
    api_base_url: str = "http://localhost:5000/api"
    options: Dict[str, Any] = field(default_factory=dict)
    timeout: float = 120
