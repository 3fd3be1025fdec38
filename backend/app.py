import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

import backup
import credentials
import entries
import notifications
import stats
from db import create_db_and_tables, engine, get_session, local_now
from errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from schemas import (
    BackupDocument,
    DayStat,
    DeleteResponse,
    EntryCreate,
    EntryOwner,
    EntryRead,
    EntryUpdate,
    ImportRequest,
    ImportResult,
    LoginRequest,
    RecentEntry,
    RegisterRequest,
    SummaryRow,
    UserPublic,
    UserResponse,
)
from seed import seed_database

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4


def parse_day(value: str | None, field: str) -> date | None:
    """Parse a YYYY-MM-DD query value, raising 400 on a malformed date."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        logger.error(f"Invalid date for {field}: {value}")
        raise HTTPException(status_code=400, detail=f"Invalid {field}. Use YYYY-MM-DD") from e


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()

    if os.getenv("SEED_DEMO_DATA", "").lower() in ("1", "true", "yes"):
        with Session(engine) as session:
            seed_database(session)

    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Delivery Log Tracker API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ AUTH ============


@app.post("/api/auth/register", response_model=UserResponse)
def register(request: RegisterRequest, session: Session = Depends(get_session)):
    """Register a new user; usernames are unique and case-sensitive."""
    logger.info(f"Register request for username: {request.username}")

    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if credentials.find_user_by_username(session, request.username):
        raise HTTPException(status_code=400, detail="Username already taken")

    try:
        user = credentials.create_user(session, request.name, request.username, request.password)
    except ConflictError as e:
        raise HTTPException(status_code=400, detail="Username already taken") from e
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return UserResponse(user=user)


@app.post("/api/auth/login", response_model=UserResponse)
def login(request: LoginRequest, session: Session = Depends(get_session)):
    logger.info(f"Login request for username: {request.username}")

    user = credentials.authenticate(session, request.username, request.password)
    if not user:
        logger.warning(f"Failed login for username: {request.username}")
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return UserResponse(user=UserPublic(id=user.id, name=user.name, username=user.username))


@app.get("/api/users", response_model=list[UserPublic])
def get_users(session: Session = Depends(get_session)):
    return credentials.list_users(session)


# ============ ENTRIES ============


@app.get("/api/entries", response_model=list[EntryRead])
def get_entries(
    user_id: int | None = Query(None, alias="userId"),
    code: str | None = Query(None),
    start_date: str | None = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: str | None = Query(None, alias="endDate", description="YYYY-MM-DD"),
    search: str | None = Query(None, description="Substring of the comment"),
    session: Session = Depends(get_session),
):
    """Get entries with optional filters, newest first."""
    logger.info(
        f"Entries request - user: {user_id}, code: {code}, from: {start_date}, to: {end_date}, search: {search}"
    )
    entry_filter = entries.EntryFilter(
        user_id=user_id,
        code=code or None,
        start_date=parse_day(start_date, "startDate"),
        end_date=parse_day(end_date, "endDate"),
        search=search or None,
    )
    return entries.list_entries(session, entry_filter)


@app.post("/api/entries", response_model=EntryRead)
def create_entry(request: EntryCreate, session: Session = Depends(get_session)):
    logger.info(f"Create entry request for user {request.user_id}: {request.code}")

    try:
        return entries.create_entry(session, request.user_id, request.code, request.count, request.comment)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.put("/api/entries/{entry_id}", response_model=EntryRead)
def update_entry(entry_id: int, request: EntryUpdate, session: Session = Depends(get_session)):
    """Update an entry owned by userId; returns the entry's current state."""
    logger.info(f"Update entry request for ID: {entry_id} by user {request.user_id}")

    try:
        entry = entries.update_entry(
            session, entry_id, request.user_id, request.code, request.count, request.comment
        )
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


@app.delete("/api/entries/today/{user_id}", response_model=DeleteResponse)
def delete_today_entries(user_id: int, session: Session = Depends(get_session)):
    """Delete all of a user's entries created today."""
    logger.info(f"Delete today's entries request for user {user_id}")

    try:
        entries.delete_today_entries_for_user(session, user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return DeleteResponse(success=True)


@app.delete("/api/entries/{entry_id}", response_model=DeleteResponse)
def delete_entry(entry_id: int, request: EntryOwner, session: Session = Depends(get_session)):
    logger.info(f"Delete entry request for ID: {entry_id} by user {request.user_id}")

    try:
        deleted = entries.delete_entry(session, entry_id, request.user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return DeleteResponse(success=deleted)


# ============ BACKUP ============


@app.get("/api/backup/export", response_model=BackupDocument)
def export_backup(response: Response, session: Session = Depends(get_session)):
    """Download every user and entry as one JSON document."""
    logger.info("Backup export request")

    filename = f"delivery-backup-{local_now().date().isoformat()}.json"
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return backup.export_all(session)


@app.post("/api/backup/import", response_model=ImportResult)
def import_backup(request: ImportRequest, session: Session = Depends(get_session)):
    """Merge a backup document, skipping users and entries that already exist."""
    if request.users is None or request.entries is None:
        raise HTTPException(status_code=400, detail="Backup must contain users and entries")

    logger.info(f"Backup import request: {len(request.users)} users, {len(request.entries)} entries")
    return backup.import_all(session, request.users, request.entries)


# ============ STATS ============


@app.get("/api/stats/days", response_model=list[DayStat])
def get_stats_by_day(
    start_date: str = Query(..., alias="startDate", description="YYYY-MM-DD"),
    end_date: str = Query(..., alias="endDate", description="YYYY-MM-DD"),
    user_id: int | None = Query(None, alias="userId"),
    session: Session = Depends(get_session),
):
    """Totals per day and code over an inclusive date range."""
    logger.info(f"Stats request - from: {start_date}, to: {end_date}, user: {user_id}")

    try:
        return stats.stats_by_day(
            session, parse_day(start_date, "startDate"), parse_day(end_date, "endDate"), user_id
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.get("/api/stats/summary/{day}", response_model=list[SummaryRow])
def get_day_summary(day: str, session: Session = Depends(get_session)):
    """Team totals per user and code for one day."""
    logger.info(f"Day summary request for: {day}")
    return stats.day_summary(session, parse_day(day, "date"))


@app.get("/api/notifications", response_model=list[RecentEntry])
def get_notifications(
    since_id: int = Query(0, alias="sinceId"),
    user_id: int | None = Query(None, alias="userId", description="Exclude this user's own entries"),
    session: Session = Depends(get_session),
):
    return notifications.recent_entries_since(session, since_id, user_id)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Delivery Log Tracker API", "docs": "/docs"}
