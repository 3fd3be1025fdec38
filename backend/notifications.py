from sqlmodel import Session, select

from db import serialized
from models import Entry, User
from schemas import RecentEntry

# Hard cap, not a page size
NOTIFICATION_LIMIT = 10


@serialized
def recent_entries_since(session: Session, since_id: int | None, exclude_user_id: int | None) -> list[RecentEntry]:
    """Entries newer than since_id created by anyone but exclude_user_id, newest first."""
    stmt = (
        select(Entry, User.name)
        .join(User, Entry.user_id == User.id)
        .where(Entry.id > (since_id or 0))
    )
    if exclude_user_id is not None:
        stmt = stmt.where(Entry.user_id != exclude_user_id)
    stmt = stmt.order_by(Entry.id.desc()).limit(NOTIFICATION_LIMIT)

    return [
        RecentEntry(id=e.id, code=e.code, count=e.count, created_at=e.created_at, user_name=name)
        for e, name in session.exec(stmt).all()
    ]
