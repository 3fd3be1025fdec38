from datetime import datetime

from sqlmodel import Field, SQLModel

from db import local_now


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    name: str
    username: str = Field(unique=True, index=True)  # Case-sensitive, immutable
    password_hash: str  # pbkdf2$<iterations>$<salt>$<hash>
    created_at: datetime = Field(default_factory=local_now)


class Entry(SQLModel, table=True):
    __tablename__ = "entries"
    __table_args__ = {"sqlite_autoincrement": True}  # Ids never reused; notification cursors depend on it

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    code: str = Field(index=True)
    count: int = Field(default=1)
    comment: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=local_now, index=True)  # Local wall-clock time
