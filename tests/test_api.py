from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import make_session
from tasksync.db import get_db
from tasksync.main import app


@pytest.fixture
def client(engine):
    def _get_db():
        db = make_session(engine)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _register(client, name, email):
    r = client.post("/api/auth/register", json={"name": name, "email": email, "password": "secret123"})
    assert r.status_code == 201, r.text
    body = r.json()
    # Drop the cookie so each call below authenticates with an explicit bearer token.
    client.cookies.clear()
    return body["user"]["id"], {"Authorization": f"Bearer {body['accessToken']}"}


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _task_body(**overrides):
    body = {
        "title": "Prepare demo",
        "description": "Slides and a working build",
        "dueDate": "2031-03-01T12:00:00Z",
        "priority": "HIGH",
        "status": "TODO",
    }
    body.update(overrides)
    return body


def test_healthz_and_root(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert isinstance(r.json()["live_sessions"], int)
    assert client.get("/").json()["status"] == "running"


def test_register_login_me_logout(client):
    r = client.post("/api/auth/register", json={"name": "Ada", "email": "Ada@Example.com", "password": "secret123"})
    assert r.status_code == 201
    assert r.json()["user"]["email"] == "ada@example.com"
    assert "token" in r.cookies

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["name"] == "Ada"

    dup = client.post("/api/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "secret123"})
    assert dup.status_code == 400

    client.cookies.clear()
    bad = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "wrong"})
    assert bad.status_code == 401

    ok = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["tokenType"] == "bearer"

    out = client.post("/api/auth/logout")
    assert out.status_code == 200


def test_requests_without_token_are_rejected(client):
    r = client.get("/api/tasks/")
    assert r.status_code == 401
    assert r.json()["detail"] == "No token provided"

    r = client.get("/api/tasks/", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_profile_update_and_user_list(client):
    uid, h = _register(client, "Grace", "grace@example.com")
    _register(client, "Alan", "alan@example.com")

    r = client.put("/api/auth/profile", json={"name": "Grace H"}, headers=h)
    assert r.status_code == 200
    assert r.json()["user"]["name"] == "Grace H"

    users = client.get("/api/auth/users", headers=h).json()
    assert [u["name"] for u in users] == ["Alan", "Grace H"]


def test_task_crud_with_assignment_notifications(client):
    u1, h1 = _register(client, "Owner", "owner@example.com")
    u2, h2 = _register(client, "Helper", "helper@example.com")
    u3, h3 = _register(client, "Other", "other@example.com")

    r = client.post("/api/tasks/", json=_task_body(assignedToId=u2), headers=h1)
    assert r.status_code == 201, r.text
    task = r.json()
    assert task["creatorId"] == u1
    assert task["assignedToId"] == u2
    assert task["dueDate"] == "2031-03-01T12:00:00Z"

    notes = client.get("/api/notifications/", headers=h2).json()
    assert [n["message"] for n in notes] == ["You were assigned task Prepare demo"]
    assert client.get("/api/notifications/unread-count", headers=h2).json() == {"unread": 1}

    r = client.put(f"/api/tasks/{task['id']}", json={"assignedToId": u3}, headers=h1)
    assert r.status_code == 200
    assert r.json()["assignedToId"] == u3
    assert len(client.get("/api/notifications/", headers=h3).json()) == 1
    assert len(client.get("/api/notifications/", headers=h2).json()) == 1

    r = client.put(f"/api/tasks/{task['id']}", json={"status": "REVIEW"}, headers=h3)
    assert r.json()["status"] == "REVIEW"
    assert len(client.get("/api/notifications/", headers=h3).json()) == 1

    assert client.get(f"/api/tasks/{task['id']}", headers=h2).json()["title"] == "Prepare demo"

    r = client.delete(f"/api/tasks/{task['id']}", headers=h1)
    assert r.status_code == 204
    assert client.get(f"/api/tasks/{task['id']}", headers=h1).status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}", headers=h1).status_code == 404


def test_task_mutations_are_broadcast(client):
    u1, h1 = _register(client, "Owner", "owner@example.com")
    u2, _ = _register(client, "Helper", "helper@example.com")
    session = app.state.channel.connect(user_id=u1)
    try:
        task = client.post("/api/tasks/", json=_task_body(assignedToId=u2), headers=h1).json()
        client.put(f"/api/tasks/{task['id']}", json={"priority": "LOW"}, headers=h1)
        client.delete(f"/api/tasks/{task['id']}", headers=h1)

        names = [e.name for e in session.drain()]
    finally:
        app.state.channel.disconnect(session)

    assert names == ["task:created", "notification:created", "task:updated", "task:deleted"]


def test_update_rejects_null_and_unknown_task(client):
    _, h = _register(client, "Owner", "owner@example.com")
    task = client.post("/api/tasks/", json=_task_body(), headers=h).json()

    assert client.put(f"/api/tasks/{task['id']}", json={"assignedToId": None}, headers=h).status_code == 422
    assert client.put(f"/api/tasks/{task['id']}", json={"priority": "SOMEDAY"}, headers=h).status_code == 422
    r = client.put("/api/tasks/missing", json={"title": "x"}, headers=h)
    assert r.status_code == 404
    assert r.json()["detail"] == "Task not found"


def test_create_validates_payload(client):
    _, h = _register(client, "Owner", "owner@example.com")
    assert client.post("/api/tasks/", json=_task_body(title=""), headers=h).status_code == 422
    assert client.post("/api/tasks/", json=_task_body(priority="NOPE"), headers=h).status_code == 422
    body = _task_body()
    del body["dueDate"]
    assert client.post("/api/tasks/", json=body, headers=h).status_code == 422
    body = _task_body()
    del body["status"]
    assert client.post("/api/tasks/", json=body, headers=h).status_code == 422


def test_list_filters_and_sorting(client):
    _, h = _register(client, "Owner", "owner@example.com")
    client.post("/api/tasks/", json=_task_body(title="later", dueDate="2031-05-01T00:00:00Z"), headers=h)
    client.post("/api/tasks/", json=_task_body(title="sooner", dueDate="2031-04-01T00:00:00Z", priority="LOW"), headers=h)
    client.post("/api/tasks/", json=_task_body(title="done", status="COMPLETED"), headers=h)

    asc = client.get("/api/tasks/", params={"sort": "asc"}, headers=h).json()
    assert [t["title"] for t in asc] == ["done", "sooner", "later"]

    low = client.get("/api/tasks/", params={"priority": "LOW"}, headers=h).json()
    assert [t["title"] for t in low] == ["sooner"]

    done = client.get("/api/tasks/", params={"status": "COMPLETED"}, headers=h).json()
    assert [t["title"] for t in done] == ["done"]

    assert client.get("/api/tasks/", params={"status": "BOGUS"}, headers=h).status_code == 422


def test_dashboard_lists_mine_and_overdue(client):
    u1, h1 = _register(client, "Owner", "owner@example.com")
    u2, h2 = _register(client, "Helper", "helper@example.com")
    past = _iso(datetime.now(timezone.utc) - timedelta(days=1))

    late = client.post("/api/tasks/", json=_task_body(title="late", dueDate=past, assignedToId=u2), headers=h1).json()
    client.post("/api/tasks/", json=_task_body(title="future"), headers=h1)
    client.post("/api/tasks/", json=_task_body(title="late but done", dueDate=past, status="COMPLETED"), headers=h1)

    mine = client.get("/api/tasks/dashboard", headers=h2).json()
    assert [t["title"] for t in mine["mine"]] == ["late"]
    assert [t["id"] for t in mine["overdue"]] == [late["id"]]

    owner = client.get("/api/tasks/dashboard", headers=h1).json()
    assert {t["title"] for t in owner["mine"]} == {"late", "future", "late but done"}
    assert [t["title"] for t in owner["overdue"]] == ["late"]


def test_notification_read_and_delete(client):
    u1, h1 = _register(client, "Owner", "owner@example.com")
    u2, h2 = _register(client, "Helper", "helper@example.com")
    client.post("/api/tasks/", json=_task_body(assignedToId=u2), headers=h1)

    note = client.get("/api/notifications/", headers=h2).json()[0]
    assert note["read"] is False
    assert note["userId"] == u2

    r = client.put(f"/api/notifications/{note['id']}/read", headers=h2)
    assert r.status_code == 200
    assert r.json()["read"] is True
    assert client.get("/api/notifications/unread-count", headers=h2).json() == {"unread": 0}

    assert client.delete(f"/api/notifications/{note['id']}", headers=h2).status_code == 200
    assert client.get("/api/notifications/", headers=h2).json() == []
    assert client.put(f"/api/notifications/{note['id']}/read", headers=h2).status_code == 404
    assert client.delete(f"/api/notifications/{note['id']}", headers=h2).status_code == 404


def test_event_stream_rejects_unknown_event_names(client):
    _, h = _register(client, "Owner", "owner@example.com")
    r = client.get("/api/events/stream", params={"events": "task:created,task:exploded"}, headers=h)
    assert r.status_code == 400
    assert client.get("/api/events/stream").status_code == 401


def test_cors_preflight_allows_configured_client_origin(client):
    r = client.options(
        "/api/tasks/",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert r.headers["access-control-allow-credentials"] == "true"
    assert "POST" in r.headers["access-control-allow-methods"]


def test_cors_rejects_unlisted_origin(client):
    r = client.options(
        "/api/tasks/",
        headers={"Origin": "http://evil.example", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 400
    assert "access-control-allow-origin" not in r.headers

    simple = client.get("/healthz", headers={"Origin": "http://evil.example"})
    assert "access-control-allow-origin" not in simple.headers
    allowed = client.get("/healthz", headers={"Origin": "http://localhost:5173"})
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:5173"
