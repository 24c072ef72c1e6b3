import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import auth_header
from taskmanager import config
from taskmanager.models.task import Task


def _future(days=3):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def _past(days=1):
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def _create(client, token, **fields):
    payload = {"title": "A task", **fields}
    r = client.post("/api/tasks", json=payload, headers=auth_header(token))
    assert r.status_code == 201, r.text
    return r.json()["data"]["task"]


def test_create_task_with_defaults(client, register_user):
    token, user = register_user(name="Owner")
    r = client.post("/api/tasks", json={"title": "  Write report  "}, headers=auth_header(token))
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Task created successfully"
    task = body["data"]["task"]
    assert task["title"] == "Write report"
    assert task["description"] == ""
    assert task["completed"] is False
    assert task["priority"] == "medium"
    assert task["dueDate"] is None
    assert task["user"] == {"id": user["id"], "name": "Owner", "email": user["email"]}
    assert task["createdAt"].endswith("Z")


def test_create_task_owner_cannot_be_overridden(client, db, register_user):
    _, other = register_user()
    token, me = register_user()
    task = _create(client, token, user=other["id"], userId=other["id"], user_id=other["id"])
    assert task["user"]["id"] == me["id"]
    assert db.query(Task).filter(Task.id == task["id"]).one().user_id == me["id"]


def test_create_task_with_all_fields(client, register_user):
    token, _ = register_user()
    due = _future()
    task = _create(client, token, title="Ship", description="release v2", priority="high", dueDate=due)
    assert task["priority"] == "high"
    assert task["description"] == "release v2"
    assert task["dueDate"] is not None


def test_create_task_validation_errors(client, register_user):
    token, _ = register_user()
    r = client.post(
        "/api/tasks",
        json={"title": "", "description": "x" * 501, "priority": "urgent", "dueDate": "not a date"},
        headers=auth_header(token),
    )
    assert r.status_code == 400
    errors = r.json()["errors"]
    assert [e["field"] for e in errors] == ["title", "description", "priority", "dueDate"]
    assert errors[0]["message"] == "Title is required and must not exceed 100 characters"
    assert errors[3]["message"] == "Due date must be a valid date"


def test_missing_title_is_rejected(client, register_user):
    token, _ = register_user()
    r = client.post("/api/tasks", json={}, headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "title"


def test_past_due_date_rejected_on_create_and_update(client, register_user):
    token, _ = register_user()
    r = client.post("/api/tasks", json={"title": "Late", "dueDate": _past()}, headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"][0]["message"] == "Due date must be in the future"

    task = _create(client, token)
    r = client.put(f"/api/tasks/{task['id']}", json={"dueDate": _past()}, headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"][0]["message"] == "Due date must be in the future"


def test_create_requires_token(client):
    r = client.post("/api/tasks", json={"title": "Test Task"})
    assert r.status_code == 401


def test_get_task_and_not_found(client, register_user):
    token, _ = register_user()
    task = _create(client, token)

    r = client.get(f"/api/tasks/{task['id']}", headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["data"]["task"]["id"] == task["id"]

    r = client.get(f"/api/tasks/{uuid.uuid4()}", headers=auth_header(token))
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Task not found"}


def test_malformed_task_id_is_rejected(client, register_user):
    token, _ = register_user()
    expected = [{"field": "id", "message": "Invalid task ID", "location": "path"}]

    r = client.get("/api/tasks/123", headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"] == expected

    r = client.patch("/api/tasks/not-an-id/toggle", headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"] == expected


def test_tasks_are_isolated_between_users(client, register_user):
    token_a, _ = register_user()
    token_b, _ = register_user()
    task = _create(client, token_a, title="Private")

    r = client.get("/api/tasks", headers=auth_header(token_b))
    assert r.status_code == 200
    assert r.json()["data"]["tasks"] == []
    assert r.json()["data"]["pagination"]["total"] == 0

    path = f"/api/tasks/{task['id']}"
    assert client.get(path, headers=auth_header(token_b)).status_code == 404
    assert client.put(path, json={"title": "Mine"}, headers=auth_header(token_b)).status_code == 404
    assert client.patch(f"{path}/toggle", headers=auth_header(token_b)).status_code == 404
    assert client.delete(path, headers=auth_header(token_b)).status_code == 404

    r = client.get(path, headers=auth_header(token_a))
    assert r.json()["data"]["task"]["title"] == "Private"
    assert r.json()["data"]["task"]["completed"] is False


def test_update_task_changes_only_given_fields(client, register_user):
    token, _ = register_user()
    task = _create(client, token, title="Draft", description="keep me", dueDate=_future())

    r = client.put(
        f"/api/tasks/{task['id']}",
        json={"title": "Final", "completed": "true", "priority": "low"},
        headers=auth_header(token),
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Task updated successfully"
    updated = r.json()["data"]["task"]
    assert updated["title"] == "Final"
    assert updated["completed"] is True
    assert updated["priority"] == "low"
    assert updated["description"] == "keep me"
    assert updated["dueDate"] is not None

    r = client.put(f"/api/tasks/{task['id']}", json={"dueDate": None}, headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["data"]["task"]["dueDate"] is None


def test_null_description_is_stored_as_empty(client, register_user):
    token, _ = register_user()
    task = _create(client, token, description=None)
    assert task["description"] == ""

    task = _create(client, token, description="notes")
    r = client.put(f"/api/tasks/{task['id']}", json={"description": None}, headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["data"]["task"]["description"] == ""


def test_update_rejects_bad_completed_value(client, register_user):
    token, _ = register_user()
    task = _create(client, token)
    r = client.put(f"/api/tasks/{task['id']}", json={"completed": "maybe"}, headers=auth_header(token))
    assert r.status_code == 400
    assert r.json()["errors"][0]["message"] == "Completed must be a boolean value"


def test_toggle_is_reversible(client, register_user):
    token, _ = register_user()
    task = _create(client, token)
    path = f"/api/tasks/{task['id']}/toggle"

    r = client.patch(path, headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["message"] == "Task marked as completed"
    once = r.json()["data"]["task"]
    assert once["completed"] is True

    r = client.patch(path, headers=auth_header(token))
    assert r.json()["message"] == "Task marked as incomplete"
    twice = r.json()["data"]["task"]
    assert twice["completed"] is False
    for key in ("title", "description", "priority", "dueDate"):
        assert twice[key] == task[key]


def test_delete_task(client, register_user):
    token, _ = register_user()
    task = _create(client, token, title="Remove me")

    r = client.delete(f"/api/tasks/{task['id']}", headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["message"] == "Task deleted successfully"
    assert r.json()["data"]["task"]["title"] == "Remove me"

    assert client.get(f"/api/tasks/{task['id']}", headers=auth_header(token)).status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}", headers=auth_header(token)).status_code == 404


def test_pagination(client, register_user):
    token, _ = register_user()
    for i in range(15):
        _create(client, token, title=f"Task {i}")

    r = client.get("/api/tasks?page=2&limit=10", headers=auth_header(token))
    assert r.status_code == 200
    data = r.json()["data"]
    assert len(data["tasks"]) == 5
    assert data["pagination"] == {"current": 2, "pages": 2, "total": 15, "limit": 10}

    r = client.get("/api/tasks", headers=auth_header(token))
    data = r.json()["data"]
    assert len(data["tasks"]) == 10
    assert data["pagination"]["current"] == 1


def test_list_filters(client, register_user):
    token, _ = register_user()
    _create(client, token, title="Buy milk", priority="low")
    _create(client, token, title="Pay rent", description="before the 5th", priority="high")
    done = _create(client, token, title="Call mom", priority="high")
    client.patch(f"/api/tasks/{done['id']}/toggle", headers=auth_header(token))

    def titles(query):
        r = client.get(f"/api/tasks?{query}", headers=auth_header(token))
        assert r.status_code == 200, r.text
        return sorted(t["title"] for t in r.json()["data"]["tasks"])

    assert titles("completed=true") == ["Call mom"]
    assert titles("completed=false") == ["Buy milk", "Pay rent"]
    assert titles("priority=high") == ["Call mom", "Pay rent"]
    assert titles("priority=high&completed=false") == ["Pay rent"]
    assert titles("search=MILK") == ["Buy milk"]
    assert titles("search=5th") == ["Pay rent"]
    assert titles("search=%25") == []


def test_list_query_validation(client, register_user):
    token, _ = register_user()
    r = client.get("/api/tasks?completed=yes&priority=urgent&page=0&limit=101", headers=auth_header(token))
    assert r.status_code == 400
    errors = r.json()["errors"]
    assert [e["field"] for e in errors] == ["completed", "priority", "page", "limit"]
    assert all(e["location"] == "query" for e in errors)
    assert errors[3]["message"] == "Limit must be between 1 and 100"


def test_list_newest_first(client, db, register_user):
    token, _ = register_user()
    old = _create(client, token, title="old")
    _create(client, token, title="new")
    db.query(Task).filter(Task.id == old["id"]).update(
        {"created_at": datetime.now(timezone.utc) - timedelta(days=1)}
    )
    db.commit()

    r = client.get("/api/tasks", headers=auth_header(token))
    assert [t["title"] for t in r.json()["data"]["tasks"]] == ["new", "old"]


def test_stats(client, db, register_user):
    token, _ = register_user()
    _create(client, token, priority="low")
    _create(client, token, priority="high")
    late = _create(client, token, dueDate=_future())
    done = _create(client, token, priority="high")
    client.patch(f"/api/tasks/{done['id']}/toggle", headers=auth_header(token))
    db.query(Task).filter(Task.id == late["id"]).update(
        {"due_date": datetime.now(timezone.utc) - timedelta(days=1)}
    )
    db.commit()

    other_token, _ = register_user()
    _create(client, other_token)

    r = client.get("/api/tasks/stats", headers=auth_header(token))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["totalTasks"] == 4
    assert data["totalCompletedTasks"] == 1
    assert data["totalIncompletedTasks"] == 3
    assert data["byPriority"] == {"low": 1, "medium": 1, "high": 2}
    assert data["overdueTasks"] == 1


def test_database_fault_is_a_generic_server_error(client, register_user, monkeypatch):
    token, _ = register_user()

    def broken_commit(self):
        raise OperationalError("INSERT INTO tasks", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "commit", broken_commit)
    r = client.post("/api/tasks", json={"title": "Doomed"}, headers=auth_header(token))
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Server error while creating task"}

    monkeypatch.setattr(config, "APP_ENV", "development")
    r = client.post("/api/tasks", json={"title": "Doomed"}, headers=auth_header(token))
    assert r.status_code == 500
    assert "disk I/O error" in r.json()["error"]
