"""Structured workspace data mirrored into internal knowledge documents."""

from datetime import datetime

from pydantic import BaseModel, Field


class CanvasNode(BaseModel):
    """Node placed on a canvas."""

    id: str
    type: str = Field(description="Node type, e.g. 'note', 'link', 'todo'")
    title: str | None = None
    subtitle: str | None = None

    @property
    def is_todo(self) -> bool:
        return self.type == "todo" or self.id.startswith("todo-")


class Memo(BaseModel):
    """Free-form memo attached to a canvas."""

    id: str
    content: str
    created_at: datetime


class Todo(BaseModel):
    """To-do item attached to a canvas."""

    id: str
    text: str
    completed: bool = False
    position: int = 0
