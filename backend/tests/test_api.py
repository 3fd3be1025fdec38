from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, delete

from app import app
from db import create_db_and_tables, engine, get_session, local_now
from models import Entry, User


@pytest.fixture(scope="function")
def test_session():
    """Create a test database session."""
    create_db_and_tables()
    with Session(engine) as session:
        yield session
        # Clean up all test data after test
        session.exec(delete(Entry))
        session.exec(delete(User))
        session.commit()


@pytest.fixture(scope="function")
def client(test_session):
    """Create a test client with dependency override."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, name, username, password="secret"):
    response = client.post("/api/auth/register", json={"name": name, "username": username, "password": password})
    assert response.status_code == 200
    return response.json()["user"]


def add_entry(client, user_id, code, count=None, comment=None):
    payload = {"userId": user_id, "code": code}
    if count is not None:
        payload["count"] = count
    if comment is not None:
        payload["comment"] = comment
    response = client.post("/api/entries", json=payload)
    assert response.status_code == 200
    return response.json()


def test_register_and_login(client):
    user = register(client, "Alice", "alice")
    assert user["name"] == "Alice"
    assert "password" not in user

    response = client.post("/api/auth/login", json={"username": "alice", "password": "secret"})
    assert response.status_code == 200
    assert response.json()["user"] == user


def test_login_wrong_password(client):
    register(client, "Alice", "alice")

    response = client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    assert response.status_code == 401

    response = client.post("/api/auth/login", json={"username": "ghost", "password": "secret"})
    assert response.status_code == 401


def test_register_duplicate_username(client):
    register(client, "Alice", "alice")

    response = client.post("/api/auth/register", json={"name": "A2", "username": "alice", "password": "secret"})
    assert response.status_code == 400


def test_register_short_password(client):
    response = client.post("/api/auth/register", json={"name": "Alice", "username": "alice", "password": "abc"})
    assert response.status_code == 400


def test_register_missing_fields(client):
    response = client.post("/api/auth/register", json={"username": "alice", "password": "secret"})
    assert response.status_code == 422  # Validation error


def test_list_users(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")

    response = client.get("/api/users")
    assert response.status_code == 200
    assert response.json() == [alice, bob]


def test_create_entry_defaults(client):
    alice = register(client, "Alice", "alice")

    entry = add_entry(client, alice["id"], "X")
    assert entry["count"] == 1
    assert entry["comment"] is None
    assert entry["user_name"] == "Alice"
    assert entry["user_id"] == alice["id"]


def test_create_entry_requires_code(client):
    alice = register(client, "Alice", "alice")

    response = client.post("/api/entries", json={"userId": alice["id"]})
    assert response.status_code == 422


def test_create_entry_unknown_user(client):
    response = client.post("/api/entries", json={"userId": 424242, "code": "X"})
    assert response.status_code == 404


def test_get_entries_with_filters(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    add_entry(client, alice["id"], "X", 3, "front porch")
    add_entry(client, alice["id"], "Y", 2)
    add_entry(client, bob["id"], "X", 5, "back door")

    response = client.get("/api/entries")
    assert response.status_code == 200
    assert [e["count"] for e in response.json()] == [5, 2, 3]

    response = client.get(f"/api/entries?userId={alice['id']}&code=X")
    assert [e["count"] for e in response.json()] == [3]

    response = client.get("/api/entries?search=door")
    assert [e["user_name"] for e in response.json()] == ["Bob"]

    today = local_now().date()
    yesterday = today - timedelta(days=1)
    response = client.get(f"/api/entries?startDate={today}&endDate={today}")
    assert len(response.json()) == 3
    response = client.get(f"/api/entries?endDate={yesterday}")
    assert response.json() == []


def test_get_entries_invalid_date(client):
    response = client.get("/api/entries?startDate=invalid-date")
    assert response.status_code == 400


def test_update_entry(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    entry = add_entry(client, alice["id"], "X", 3)

    response = client.put(
        f"/api/entries/{entry['id']}", json={"userId": alice["id"], "code": "Y", "count": 4, "comment": "fixed"}
    )
    assert response.status_code == 200
    assert (response.json()["code"], response.json()["count"]) == ("Y", 4)

    # Wrong owner: nothing changes, current state is returned
    response = client.put(f"/api/entries/{entry['id']}", json={"userId": bob["id"], "code": "Z", "count": 99})
    assert response.status_code == 200
    assert (response.json()["code"], response.json()["count"]) == ("Y", 4)


def test_update_missing_entry(client):
    alice = register(client, "Alice", "alice")

    response = client.put("/api/entries/99999", json={"userId": alice["id"], "code": "X", "count": 1})
    assert response.status_code == 404


def test_delete_entry(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    entry = add_entry(client, alice["id"], "X")

    response = client.request("DELETE", f"/api/entries/{entry['id']}", json={"userId": bob["id"]})
    assert response.status_code == 200
    assert response.json() == {"success": False}

    response = client.request("DELETE", f"/api/entries/{entry['id']}", json={"userId": alice["id"]})
    assert response.json() == {"success": True}
    assert client.get("/api/entries").json() == []


def test_delete_today(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    add_entry(client, alice["id"], "X")
    add_entry(client, alice["id"], "Y")
    add_entry(client, bob["id"], "X")

    response = client.delete(f"/api/entries/today/{alice['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert [e["user_name"] for e in client.get("/api/entries").json()] == ["Bob"]


def test_stats_endpoints(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    add_entry(client, alice["id"], "X", 3)
    add_entry(client, alice["id"], "Y", 2)
    add_entry(client, bob["id"], "X", 5)
    today = local_now().date().isoformat()

    response = client.get(f"/api/stats/days?startDate={today}&endDate={today}")
    assert response.status_code == 200
    assert response.json() == [
        {"date": today, "code": "X", "total": 8},
        {"date": today, "code": "Y", "total": 2},
    ]

    response = client.get(f"/api/stats/days?startDate={today}&endDate={today}&userId={bob['id']}")
    assert response.json() == [{"date": today, "code": "X", "total": 5}]

    response = client.get(f"/api/stats/summary/{today}")
    assert response.json() == [
        {"name": "Alice", "code": "X", "total": 3},
        {"name": "Alice", "code": "Y", "total": 2},
        {"name": "Bob", "code": "X", "total": 5},
    ]


def test_stats_requires_range(client):
    response = client.get("/api/stats/days?startDate=2024-01-01")
    assert response.status_code == 422

    response = client.get("/api/stats/days?startDate=2024-01-01&endDate=")
    assert response.status_code == 400


def test_day_summary_invalid_date(client):
    response = client.get("/api/stats/summary/15-01-2024")
    assert response.status_code == 400


def test_notifications(client):
    alice = register(client, "Alice", "alice")
    bob = register(client, "Bob", "bob")
    seen = add_entry(client, bob["id"], "X")
    add_entry(client, alice["id"], "X")
    fresh = add_entry(client, bob["id"], "Y", 2)

    response = client.get(f"/api/notifications?sinceId={seen['id']}&userId={alice['id']}")
    assert response.status_code == 200
    data = response.json()
    assert [e["id"] for e in data] == [fresh["id"]]
    assert data[0]["user_name"] == "Bob"
    assert set(data[0]) == {"id", "code", "count", "created_at", "user_name"}


def test_backup_export_and_reimport(client):
    alice = register(client, "Alice", "alice")
    add_entry(client, alice["id"], "X", 3)

    response = client.get("/api/backup/export")
    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith("attachment; filename=delivery-backup-")
    data = response.json()
    assert data["version"] == 1
    assert "exportDate" in data
    assert len(data["users"]) == 1
    assert len(data["entries"]) == 1

    response = client.post("/api/backup/import", json=data)
    assert response.status_code == 200
    assert response.json() == {"usersImported": 0, "entriesImported": 0}


def test_backup_import_new_records(client):
    payload = {
        "users": [{"name": "Carol", "username": "carol", "password": "pbkdf2$1$a$b", "created_at": "2024-01-01T00:00:00"}],
        "entries": [],
    }
    response = client.post("/api/backup/import", json=payload)
    assert response.json() == {"usersImported": 1, "entriesImported": 0}
    assert [u["username"] for u in client.get("/api/users").json()] == ["carol"]


def test_backup_import_skips_non_object_rows(client):
    payload = {
        "users": ["junk", {"name": "Carol", "username": "carol", "password": "pbkdf2$1$a$b"}],
        "entries": [42],
    }
    response = client.post("/api/backup/import", json=payload)
    assert response.status_code == 200
    assert response.json() == {"usersImported": 1, "entriesImported": 0}


def test_login_with_imported_zero_iteration_hash(client):
    payload = {
        "users": [{"name": "Dave", "username": "dave", "password": "pbkdf2$0$c2FsdA==$aGFzaA=="}],
        "entries": [],
    }
    assert client.post("/api/backup/import", json=payload).json()["usersImported"] == 1

    response = client.post("/api/auth/login", json={"username": "dave", "password": "secret"})
    assert response.status_code == 401


def test_backup_import_requires_both_lists(client):
    response = client.post("/api/backup/import", json={"users": []})
    assert response.status_code == 400


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "docs" in data
