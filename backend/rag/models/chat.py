"""Chat transcript types read from the conversation store."""

from datetime import datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from backend.rag.models.common import KnowledgeScope


class ChatRole(str, Enum):
    """Speaker of a chat turn."""

    user = "user"
    assistant = "assistant"


class ChatTurn(BaseModel):
    """Chat message."""

    role: ChatRole = Field(description="Role: 'user' or 'assistant'")
    content: str = Field(description="Message content")
    created_at: datetime


class ChatHistoryReader(Protocol):
    """Read-only access to the conversation store."""

    def recent_turns(self, scope: KnowledgeScope, limit: int) -> list[ChatTurn]:
        """Return up to ``limit`` most recent turns, oldest first."""
        ...
