import base64
import hmac
import logging
import os
from hashlib import pbkdf2_hmac

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from db import commit, serialized
from errors import ConflictError
from models import User
from schemas import UserPublic

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 310_000


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def _unb64(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))


def hash_password(plain: str, *, iterations: int | None = None, salt: bytes | None = None) -> str:
    iterations = iterations or PBKDF2_ITERATIONS
    salt = salt or os.urandom(16)
    dk = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return f"pbkdf2${iterations}${_b64(salt)}${_b64(dk)}"


def verify_credential(plain: str, stored: str) -> bool:
    """Check a password against a stored hash. Malformed hashes never verify."""
    try:
        scheme, s_iter, s_salt, s_hash = stored.split("$", 3)
        if scheme != "pbkdf2":
            return False
        iterations = int(s_iter)
        if iterations < 1:
            return False
        salt = _unb64(s_salt)
        expected = _unb64(s_hash)
        test = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    except (AttributeError, ValueError, UnicodeError):
        return False
    return hmac.compare_digest(test, expected)


@serialized
def create_user(session: Session, name: str, username: str, password: str) -> UserPublic:
    """Insert a new user.

    Callers are expected to check find_user_by_username first; the unique
    index on username is the final word and surfaces as ConflictError.
    """
    user = User(name=name, username=username, password_hash=hash_password(password))
    session.add(user)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Username already taken: {username}")
        raise ConflictError(f"Username '{username}' is already taken") from e
    commit(session)
    session.refresh(user)
    logger.info(f"Created user {user.id} ({username})")
    return UserPublic(id=user.id, name=user.name, username=user.username)


@serialized
def find_user_by_username(session: Session, username: str) -> User | None:
    return session.exec(select(User).where(User.username == username)).first()


@serialized
def list_users(session: Session) -> list[UserPublic]:
    users = session.exec(select(User).order_by(User.id)).all()
    return [UserPublic(id=u.id, name=u.name, username=u.username) for u in users]


def authenticate(session: Session, username: str, password: str) -> User | None:
    """Return the user when username and password match, else None."""
    user = find_user_by_username(session, username)
    if not user or not verify_credential(password, user.password_hash):
        return None
    return user
