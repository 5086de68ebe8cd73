from http import HTTPStatus
from unittest.mock import MagicMock

from taskboard.cache import TODO_LIST_PATHS, views
from taskboard.dependencies import get_todo_repository
from taskboard.main import app
from taskboard.repositories import StorageError


def test_list_todos_paginates(client, todo_factory):
    for i in range(12):
        todo_factory(f"Todo {i:02d}")

    assert len(client.get("/api/todos").json()) == 10
    assert len(client.get("/api/todos?take=2&skip=0").json()) == 2
    assert len(client.get("/api/todos?take=5&skip=10").json()) == 2


def test_list_todos_rejects_bad_paging(client):
    resp = client.get("/api/todos?take=abc")
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json() == {"message": "take must be a non-negative integer"}

    resp = client.get("/api/todos?skip=-1")
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json() == {"message": "skip must be a non-negative integer"}


def test_create_todo_is_owned_by_caller(client, sign_in):
    sign_in("kate@example.com")
    user_id = client.get("/api/auth/session").json()["user"]["id"]

    resp = client.post("/api/todos", json={"description": "Buy milk"})

    assert resp.status_code == HTTPStatus.OK
    data = resp.json()
    assert data["description"] == "Buy milk"
    assert data["complete"] is False
    assert data["user_id"] == user_id


def test_create_todo_validation_errors(client):
    resp = client.post("/api/todos", json={"description": "   "})
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    errors = resp.json()["errors"]
    assert errors[0]["loc"] == "description"

    resp = client.post("/api/todos", json={"complete": True})
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json()["errors"][0]["loc"] == "description"

    resp = client.post(
        "/api/todos", content="not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json() == {"message": "Request body must be a JSON object"}


def test_create_todo_storage_failure_returns_500(client):
    repo = MagicMock()
    repo.create.side_effect = StorageError("Database commit failed in test")
    app.dependency_overrides[get_todo_repository] = lambda: repo

    resp = client.post("/api/todos", json={"description": "Should fail"})

    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert resp.json() == {"message": "Internal server error during todo creation."}
    assert repo.create.called


def test_single_todo_is_scoped_to_owner(client, user_factory, todo_factory, sign_in):
    owner = user_factory("liam@example.com")
    other = user_factory("mia@example.com")
    mine = todo_factory("Mine", user=owner)
    theirs = todo_factory("Theirs", user=other)

    assert client.get(f"/api/todos/{mine.id}").status_code == HTTPStatus.NOT_FOUND

    sign_in("liam@example.com")
    assert client.get(f"/api/todos/{mine.id}").json()["description"] == "Mine"

    resp = client.get(f"/api/todos/{theirs.id}")
    assert resp.status_code == HTTPStatus.NOT_FOUND
    assert resp.json() == {"message": f"Todo with id {theirs.id} does not exist"}
    assert client.delete(f"/api/todos/{theirs.id}").status_code == HTTPStatus.NOT_FOUND


def test_update_todo_and_revalidate_views(client, user_factory, todo_factory, sign_in):
    owner = user_factory("noah@example.com")
    todo = todo_factory("Walk the dog", user=owner)
    sign_in("noah@example.com")
    for path in TODO_LIST_PATHS:
        views.render(path, owner.id, lambda: "<cached>")

    resp = client.put(f"/api/todos/{todo.id}", json={"complete": True, "description": None})

    assert resp.status_code == HTTPStatus.OK
    assert resp.json()["complete"] is True
    assert resp.json()["description"] == "Walk the dog"
    assert not any(views.is_cached(path, owner.id) for path in TODO_LIST_PATHS)


def test_delete_todo(client, user_factory, todo_factory, sign_in):
    owner = user_factory("olga@example.com")
    todo = todo_factory("Throw away", user=owner)
    sign_in("olga@example.com")

    resp = client.delete(f"/api/todos/{todo.id}")

    assert resp.status_code == HTTPStatus.OK
    assert resp.json() == {"message": "Todo deleted"}
    assert client.get(f"/api/todos/{todo.id}").status_code == HTTPStatus.NOT_FOUND
