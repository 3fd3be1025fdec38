from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import SQLModel


class CamelModel(BaseModel):
    """Accepts both the camelCase wire names and the Python field names."""

    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    username: str
    password: str


class UserPublic(SQLModel):
    id: int
    name: str
    username: str


class UserResponse(BaseModel):
    user: UserPublic


class EntryCreate(CamelModel):
    user_id: int = Field(alias="userId")
    code: str = Field(min_length=1)
    count: int | None = None
    comment: str | None = None


class EntryUpdate(CamelModel):
    user_id: int = Field(alias="userId")
    code: str = Field(min_length=1)
    count: int
    comment: str | None = None


class EntryOwner(CamelModel):
    user_id: int = Field(alias="userId")


class EntryRead(SQLModel):
    id: int
    user_id: int
    code: str
    count: int
    comment: str | None = None
    created_at: datetime
    user_name: str


class DeleteResponse(BaseModel):
    success: bool


class DayStat(BaseModel):
    date: str  # YYYY-MM-DD
    code: str
    total: int


class SummaryRow(BaseModel):
    name: str
    code: str
    total: int


class RecentEntry(BaseModel):
    id: int
    code: str
    count: int
    created_at: datetime
    user_name: str


class BackupUser(BaseModel):
    id: int | None = None
    name: str
    username: str
    password: str  # Stored hash, never plaintext
    created_at: datetime | None = None


class BackupEntry(BaseModel):
    id: int
    user_id: int
    code: str
    count: int
    comment: str | None = None
    created_at: datetime | None = None

    @field_validator("comment")
    @classmethod
    def empty_comment_is_null(cls, v):
        return v or None


class BackupDocument(CamelModel):
    version: int
    export_date: datetime = Field(alias="exportDate")
    users: list[BackupUser]
    entries: list[BackupEntry]


class ImportRequest(BaseModel):
    # Records stay raw so one malformed row can't reject the whole document
    users: list[Any] | None = None
    entries: list[Any] | None = None


class ImportResult(CamelModel):
    users_imported: int = Field(alias="usersImported")
    entries_imported: int = Field(alias="entriesImported")
