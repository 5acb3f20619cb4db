from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field as PydanticField
from sqlmodel import SQLModel, Field


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


class Todo(BaseModel):
    id: int
    name: str
    completed: bool = False


class TodoList(BaseModel):
    id: int
    name: str
    todos: List[Todo] = PydanticField(default_factory=list)


class SessionData(BaseModel):
    """Everything a single browser session owns: its lists plus flash messages."""
    lists: List[TodoList] = PydanticField(default_factory=list)
    error: Optional[str] = None
    success: Optional[str] = None

    def pop_flash(self) -> tuple[Optional[str], Optional[str]]:
        """Return (error, success) and clear both so they render only once."""
        error, success = self.error, self.success
        self.error = None
        self.success = None
        return error, success


class Session(SQLModel, table=True):
    """Server-side session row for the SQL session store.

    session_token is a secure random string stored in an HttpOnly cookie.
    data_json holds the serialized SessionData. Expired rows are removed when
    loaded and by purge_expired().
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    session_token: str = Field(sa_column_kwargs={"unique": True, "index": True})
    created_at: datetime | None = Field(default_factory=now_utc)
    modified_at: datetime | None = Field(default_factory=now_utc)
    expires_at: Optional[datetime] = Field(default=None, index=True)
    data_json: str = Field(default='{}')
