"""Pydantic models for conversations, messages and request state.

AppState is the persisted blob; RequestState is transient and owned by the
session controller.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

STATE_VERSION = 1


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class Message(BaseModel):
    """Single chat message. Use the user()/assistant() constructors."""
    id: str = Field(default_factory=_new_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    status: MessageStatus

    @classmethod
    def user(cls, content: str) -> "Message":
        """A user message starts out as sending until its request settles."""
        return cls(role=MessageRole.USER, content=content, status=MessageStatus.SENDING)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, status=MessageStatus.SENT)


class Conversation(BaseModel):
    """A titled, append-only sequence of messages."""
    id: str = Field(default_factory=_new_id)
    title: str
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class AppState(BaseModel):
    """Everything that gets persisted: sidebar order is newest first."""
    conversations: list[Conversation] = Field(default_factory=list)
    active_conversation_id: str | None = None
    version: int = STATE_VERSION


@dataclass
class RequestState:
    """Status of the one request a controller can have live.

    Attributes:
        status: Current RequestStatus.
        error: User-facing error text for the last failure, or None.
        retry_count: Retries performed so far for the current send.
        start_time: time.monotonic() when the send started, or None when idle.
    """
    status: RequestStatus = RequestStatus.IDLE
    error: str | None = None
    retry_count: int = 0
    start_time: float | None = None
