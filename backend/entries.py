import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from db import commit, day_bounds, execute, local_now, serialized
from errors import NotFoundError
from models import Entry, User
from schemas import EntryRead

logger = logging.getLogger(__name__)


@dataclass
class EntryFilter:
    """Optional constraints for list_entries. A None field imposes nothing."""

    user_id: int | None = None
    code: str | None = None
    start_date: date | None = None  # Inclusive
    end_date: date | None = None  # Inclusive
    search: str | None = None  # Substring of comment


def _joined():
    return select(Entry, User.name).join(User, Entry.user_id == User.id)


def _to_read(entry: Entry, user_name: str) -> EntryRead:
    return EntryRead(
        id=entry.id,
        user_id=entry.user_id,
        code=entry.code,
        count=entry.count,
        comment=entry.comment,
        created_at=entry.created_at,
        user_name=user_name,
    )


def _fetch(session: Session, entry_id: int) -> EntryRead | None:
    row = session.exec(_joined().where(Entry.id == entry_id)).first()
    if row is None:
        return None
    entry, user_name = row
    return _to_read(entry, user_name)


@serialized
def create_entry(
    session: Session, user_id: int, code: str, count: int | None = None, comment: str | None = None
) -> EntryRead:
    entry = Entry(user_id=user_id, code=code, count=count or 1, comment=comment or None, created_at=local_now())
    session.add(entry)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Rejected entry for unknown user {user_id}")
        raise NotFoundError(f"User {user_id} not found") from e
    commit(session)
    logger.info(f"Created entry {entry.id} for user {user_id}: {code} x{entry.count}")
    return _fetch(session, entry.id)


@serialized
def get_entry_by_id(session: Session, entry_id: int) -> EntryRead | None:
    return _fetch(session, entry_id)


@serialized
def update_entry(
    session: Session, entry_id: int, user_id: int, code: str, count: int, comment: str | None
) -> EntryRead | None:
    """Update an entry owned by user_id.

    Returns the current state of entry_id whether or not the owner matched,
    so a non-None result does not by itself mean the update was applied.
    """
    result = execute(
        session,
        update(Entry)
        .where(Entry.id == entry_id, Entry.user_id == user_id)
        .values(code=code, count=count, comment=comment or None),
    )
    commit(session)
    if result.rowcount:
        logger.info(f"Updated entry {entry_id} for user {user_id}")
    else:
        logger.info(f"Entry {entry_id} not updated: no row owned by user {user_id}")
    session.expire_all()
    return _fetch(session, entry_id)


@serialized
def delete_entry(session: Session, entry_id: int, user_id: int) -> bool:
    existing = session.exec(select(Entry.id).where(Entry.id == entry_id, Entry.user_id == user_id)).first()
    execute(session, delete(Entry).where(Entry.id == entry_id, Entry.user_id == user_id))
    commit(session)
    logger.info(f"Delete entry {entry_id} by user {user_id}: {'deleted' if existing is not None else 'no match'}")
    return existing is not None


@serialized
def delete_today_entries_for_user(session: Session, user_id: int) -> None:
    start, end = day_bounds(local_now().date())
    result = execute(
        session,
        delete(Entry).where(Entry.user_id == user_id, Entry.created_at >= start, Entry.created_at < end),
    )
    commit(session)
    logger.info(f"Deleted {result.rowcount} of today's entries for user {user_id}")


@serialized
def list_entries(session: Session, entry_filter: EntryFilter | None = None) -> list[EntryRead]:
    f = entry_filter or EntryFilter()
    stmt = _joined()

    if f.user_id is not None:
        stmt = stmt.where(Entry.user_id == f.user_id)
    if f.code:
        stmt = stmt.where(Entry.code == f.code)
    if f.start_date:
        stmt = stmt.where(Entry.created_at >= day_bounds(f.start_date)[0])
    if f.end_date:
        stmt = stmt.where(Entry.created_at < day_bounds(f.end_date)[1])
    if f.search:
        stmt = stmt.where(Entry.comment.contains(f.search, autoescape=True))

    stmt = stmt.order_by(Entry.created_at.desc(), Entry.id)
    return [_to_read(entry, user_name) for entry, user_name in session.exec(stmt).all()]
