"""Notification de changement sur une table (flux local ou distant)."""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel

ChangeEvent = Literal["INSERT", "UPDATE", "DELETE"]


class TableChange(BaseModel):
    table: str
    event: ChangeEvent
    record_id: str | None = None
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None


# Type alias pour les handlers de changements
ChangeHandler = Callable[[TableChange], Awaitable[None]]
Unsubscribe = Callable[[], None]
