"""Operator-editable instruction header for answer synthesis."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from backend.rag.db.base import get_session
from backend.rag.db.models.rag_prompt import RagPrompt
from backend.rag.errors import DocumentNotFoundError, RagValidationError


class RagPromptStore:
    """CRUD over ``rag_prompt``; the newest active row is the live header."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def get_active_instruction(self) -> str:
        """Content of the most recently updated active prompt, or ``""``."""
        stmt = (
            select(RagPrompt.content)
            .where(RagPrompt.is_active.is_(True))
            .order_by(RagPrompt.updated_at.desc())
            .limit(1)
        )
        with get_session(self.session_factory) as session:
            content = session.scalars(stmt).first()
        return (content or "").strip()

    def create(self, name: str, content: str, is_active: bool = True) -> RagPrompt:
        if not content.strip():
            raise RagValidationError("prompt content must not be empty")
        with get_session(self.session_factory) as session:
            prompt = RagPrompt(name=name, content=content, is_active=is_active)
            session.add(prompt)
            session.flush()
            return prompt

    def update(self, prompt_id: UUID, content: str) -> RagPrompt:
        """Replace a prompt's content and bump its version."""
        if not content.strip():
            raise RagValidationError("prompt content must not be empty")
        with get_session(self.session_factory) as session:
            prompt = session.get(RagPrompt, prompt_id)
            if prompt is None:
                raise DocumentNotFoundError(f"prompt {prompt_id} not found")
            prompt.content = content
            prompt.version += 1
            session.flush()
            return prompt

    def deactivate(self, prompt_id: UUID) -> None:
        with get_session(self.session_factory) as session:
            prompt = session.get(RagPrompt, prompt_id)
            if prompt is None:
                raise DocumentNotFoundError(f"prompt {prompt_id} not found")
            prompt.is_active = False

    def list_prompts(self) -> list[RagPrompt]:
        stmt = select(RagPrompt).order_by(RagPrompt.updated_at.desc())
        with get_session(self.session_factory) as session:
            return list(session.scalars(stmt).all())
