import logging
from datetime import date

from sqlalchemy import func
from sqlmodel import Session, select

from db import day_bounds, serialized
from errors import ValidationError
from models import Entry, User
from schemas import DayStat, SummaryRow

logger = logging.getLogger(__name__)


def _day_key(value) -> str:
    # SQLite's date() yields a string, PostgreSQL a date
    return value.isoformat() if isinstance(value, date) else str(value)


@serialized
def stats_by_day(
    session: Session, start_date: date | None, end_date: date | None, user_id: int | None = None
) -> list[DayStat]:
    """Sum entry counts per (day, code) over the inclusive range, ordered by day then code."""
    if start_date is None or end_date is None:
        raise ValidationError("start_date and end_date are required")

    start, end = day_bounds(start_date, end_date)
    day = func.date(Entry.created_at).label("day")
    stmt = (
        select(day, Entry.code, func.sum(Entry.count).label("total"))
        .where(Entry.created_at >= start, Entry.created_at < end)
    )
    if user_id is not None:
        stmt = stmt.where(Entry.user_id == user_id)
    stmt = stmt.group_by(day, Entry.code).order_by(day, Entry.code)

    rows = session.exec(stmt).all()
    logger.info(f"Stats {start_date}..{end_date} (user={user_id}): {len(rows)} groups")
    return [DayStat(date=_day_key(d), code=code, total=total) for d, code, total in rows]


@serialized
def day_summary(session: Session, day: date) -> list[SummaryRow]:
    """Sum entry counts per (user, code) for one day, ordered by user name then code."""
    start, end = day_bounds(day)
    stmt = (
        select(User.name, Entry.code, func.sum(Entry.count).label("total"))
        .join(User, Entry.user_id == User.id)
        .where(Entry.created_at >= start, Entry.created_at < end)
        .group_by(User.id, User.name, Entry.code)
        .order_by(User.name, Entry.code)
    )
    rows = session.exec(stmt).all()
    logger.info(f"Day summary {day}: {len(rows)} rows")
    return [SummaryRow(name=name, code=code, total=total) for name, code, total in rows]
