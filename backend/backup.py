import logging
from datetime import UTC, datetime

from pydantic import ValidationError as SchemaError
from sqlmodel import Session, select

from db import commit, local_now, serialized
from errors import PerRecordImportError, PersistenceError
from models import Entry, User
from schemas import BackupDocument, BackupEntry, BackupUser, ImportResult

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


@serialized
def export_all(session: Session) -> BackupDocument:
    """Snapshot every user (with stored password hash) and every entry."""
    users = session.exec(select(User).order_by(User.id)).all()
    entries = session.exec(select(Entry).order_by(Entry.id)).all()

    logger.info(f"Exporting {len(users)} users and {len(entries)} entries")
    return BackupDocument(
        version=BACKUP_VERSION,
        export_date=datetime.now(UTC),
        users=[
            BackupUser(id=u.id, name=u.name, username=u.username, password=u.password_hash, created_at=u.created_at)
            for u in users
        ],
        entries=[
            BackupEntry(
                id=e.id, user_id=e.user_id, code=e.code, count=e.count, comment=e.comment, created_at=e.created_at
            )
            for e in entries
        ],
    )


def _key(raw, field: str):
    # Identify a record in logs without echoing its password hash
    return raw.get(field) if isinstance(raw, dict) else type(raw).__name__


def _import_user(session: Session, raw) -> bool:
    try:
        record = BackupUser.model_validate(raw)
    except SchemaError as e:
        raise PerRecordImportError("user", _key(raw, "username"), e) from e

    if session.exec(select(User.id).where(User.username == record.username)).first() is not None:
        return False

    session.add(
        User(
            name=record.name,
            username=record.username,
            password_hash=record.password,
            created_at=record.created_at or local_now(),
        )
    )
    try:
        commit(session)
    except PersistenceError as e:
        raise PerRecordImportError("user", _key(raw, "username"), e) from e
    return True


def _import_entry(session: Session, raw) -> bool:
    try:
        record = BackupEntry.model_validate(raw)
    except SchemaError as e:
        raise PerRecordImportError("entry", _key(raw, "id"), e) from e

    if session.get(Entry, record.id) is not None:
        return False

    session.add(
        Entry(
            id=record.id,
            user_id=record.user_id,
            code=record.code,
            count=record.count,
            comment=record.comment,
            created_at=record.created_at or local_now(),
        )
    )
    try:
        commit(session)
    except PersistenceError as e:
        raise PerRecordImportError("entry", _key(raw, "id"), e) from e
    return True


@serialized
def import_all(session: Session, users: list, entries: list) -> ImportResult:
    """Merge a backup into the store without duplicating existing rows.

    Users are matched by username and get a fresh id; entries are matched by
    id and keep it. Each record is committed on its own, so a bad record is
    logged and skipped without affecting the rest of the batch.
    """
    users_imported = 0
    entries_imported = 0

    for raw in users:
        try:
            if _import_user(session, raw):
                users_imported += 1
        except PerRecordImportError as e:
            logger.warning(str(e))

    for raw in entries:
        try:
            if _import_entry(session, raw):
                entries_imported += 1
        except PerRecordImportError as e:
            logger.warning(str(e))

    logger.info(f"Import finished: {users_imported} users, {entries_imported} entries")
    return ImportResult(users_imported=users_imported, entries_imported=entries_imported)
