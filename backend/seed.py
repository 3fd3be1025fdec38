from datetime import timedelta

from sqlmodel import Session, select

from credentials import hash_password
from db import commit, local_now
from models import Entry, User


def seed_database(session: Session) -> bool:
    """Seed the database with demo users and entries. Returns False if data already exists."""
    # Check if data already exists
    existing = session.exec(select(User)).first()
    if existing:
        print("Database already has data, skipping seed.")
        return False

    alice = User(name="Alice Johnson", username="alice", password_hash=hash_password("alice1234"))
    bob = User(name="Bob Smith", username="bob", password_hash=hash_password("bob1234"))
    session.add_all([alice, bob])
    commit(session)

    now = local_now()
    yesterday = now - timedelta(days=1)
    sample_entries = [
        Entry(user_id=alice.id, code="PKG", count=12, comment="Morning route", created_at=yesterday),
        Entry(user_id=alice.id, code="RET", count=2, comment="Damaged box", created_at=yesterday),
        Entry(user_id=bob.id, code="PKG", count=9, created_at=yesterday),
        Entry(user_id=alice.id, code="PKG", count=7, created_at=now),
        Entry(user_id=bob.id, code="DOC", count=3, comment="Signed on delivery", created_at=now),
    ]

    session.add_all(sample_entries)
    commit(session)
    print(f"Seeded database with 2 users and {len(sample_entries)} sample entries.")
    return True


if __name__ == "__main__":
    from db import create_db_and_tables, engine

    create_db_and_tables()
    with Session(engine) as session:
        seed_database(session)
