import pytest

from taskboard.db import Task


@pytest.fixture
def board(client, alice):
    board = client.post("/v1/boards", json={"name": "Sprint"}, headers=alice).json()
    todo = client.post("/v1/columns", json={"boardId": board["id"], "title": "Todo"}, headers=alice).json()
    done = client.post("/v1/columns", json={"boardId": board["id"], "title": "Done"}, headers=alice).json()
    return {"id": board["id"], "todo": todo["id"], "done": done["id"]}


def create_task(client, headers, column_id, title, **extra):
    res = client.post("/v1/tasks", json={"columnId": column_id, "title": title, **extra}, headers=headers)
    assert res.status_code == 201
    return res.json()


def titles(client, headers, column_id):
    res = client.get("/v1/tasks", params={"columnId": column_id}, headers=headers)
    assert res.status_code == 200
    return [t["title"] for t in res.json()]


def test_created_tasks_are_appended(client, alice, board):
    a = create_task(client, alice, board["todo"], "A", priority="HIGH", assigneeName="Sam")
    b = create_task(client, alice, board["todo"], "B")
    assert a["position"] == "1024"
    assert a["priority"] == "HIGH"
    assert a["assigneeName"] == "Sam"
    assert b["position"] == "2048"
    assert b["priority"] == "MEDIUM"


def test_reorder_task_to_top(client, alice, board):
    create_task(client, alice, board["todo"], "A")
    b = create_task(client, alice, board["todo"], "B")
    first = client.get("/v1/tasks", params={"columnId": board["todo"]}, headers=alice).json()[0]

    res = client.patch(
        f"/v1/tasks/{b['id']}/reorder",
        json={"columnId": board["todo"], "beforeId": None, "afterId": first["id"]},
        headers=alice,
    )
    assert res.status_code == 200
    assert res.json()["position"] == "512"
    assert titles(client, alice, board["todo"]) == ["B", "A"]


def test_reorder_rebalances_exhausted_gap(client, alice, board, session_factory):
    a = create_task(client, alice, board["todo"], "A")
    b = create_task(client, alice, board["todo"], "B")
    moving = create_task(client, alice, board["done"], "C")
    with session_factory() as session:
        session.get(Task, a["id"]).position = 100
        session.get(Task, b["id"]).position = 101
        session.commit()

    res = client.patch(
        f"/v1/tasks/{moving['id']}/reorder",
        json={"columnId": board["todo"], "beforeId": a["id"], "afterId": b["id"]},
        headers=alice,
    )
    assert res.status_code == 200
    assert res.json()["columnId"] == board["todo"]
    assert res.json()["position"] == "1536"

    tasks = client.get("/v1/tasks", params={"columnId": board["todo"]}, headers=alice).json()
    assert [(t["title"], t["position"]) for t in tasks] == [("A", "1024"), ("C", "1536"), ("B", "2048")]


def test_reorder_with_self_as_neighbor_is_bad_request(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    res = client.patch(
        f"/v1/tasks/{a['id']}/reorder",
        json={"columnId": board["todo"], "beforeId": a["id"]},
        headers=alice,
    )
    assert res.status_code == 400


def test_reorder_with_neighbor_in_other_column_is_bad_request(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    elsewhere = create_task(client, alice, board["done"], "X")
    res = client.patch(
        f"/v1/tasks/{a['id']}/reorder",
        json={"columnId": board["todo"], "afterId": elsewhere["id"]},
        headers=alice,
    )
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "afterId must belong to the destination column."


def test_reorder_with_inverted_neighbors_is_conflict(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    b = create_task(client, alice, board["todo"], "B")
    c = create_task(client, alice, board["todo"], "C")
    res = client.patch(
        f"/v1/tasks/{c['id']}/reorder",
        json={"columnId": board["todo"], "beforeId": b["id"], "afterId": a["id"]},
        headers=alice,
    )
    assert res.status_code == 409
    error = res.json()["error"]
    assert error["code"] == "CONFLICT"
    assert "hint" in error["details"]


def test_move_task_across_columns_keeps_source_positions(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    b = create_task(client, alice, board["todo"], "B")
    c = create_task(client, alice, board["todo"], "C")

    res = client.patch(f"/v1/tasks/{b['id']}/reorder", json={"columnId": board["done"]}, headers=alice)
    assert res.status_code == 200
    assert res.json()["columnId"] == board["done"]
    assert res.json()["position"] == "1024"

    remaining = client.get("/v1/tasks", params={"columnId": board["todo"]}, headers=alice).json()
    assert [(t["id"], t["position"]) for t in remaining] == [(a["id"], "1024"), (c["id"], "3072")]


def test_patch_column_id_appends_in_destination(client, alice, board):
    create_task(client, alice, board["done"], "Existing")
    a = create_task(client, alice, board["todo"], "A")
    res = client.patch(f"/v1/tasks/{a['id']}", json={"columnId": board["done"], "title": "A2"}, headers=alice)
    assert res.status_code == 200
    assert res.json()["title"] == "A2"
    assert res.json()["position"] == "2048"
    assert titles(client, alice, board["done"]) == ["Existing", "A2"]


def test_reorder_into_missing_column_is_not_found(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    res = client.patch(f"/v1/tasks/{a['id']}/reorder", json={"columnId": "missing"}, headers=alice)
    assert res.status_code == 404
    assert res.json()["error"]["message"] == "Destination column not found."


def test_other_user_cannot_touch_tasks(client, alice, bob, board):
    a = create_task(client, alice, board["todo"], "A")
    assert client.get("/v1/tasks", params={"columnId": board["todo"]}, headers=bob).status_code == 403
    assert client.delete(f"/v1/tasks/{a['id']}", headers=bob).status_code == 403
    res = client.patch(f"/v1/tasks/{a['id']}/reorder", json={"columnId": board["todo"]}, headers=bob)
    assert res.status_code == 403


def test_delete_task_leaves_siblings(client, alice, board):
    a = create_task(client, alice, board["todo"], "A")
    b = create_task(client, alice, board["todo"], "B")
    assert client.delete(f"/v1/tasks/{a['id']}", headers=alice).status_code == 204
    remaining = client.get("/v1/tasks", params={"columnId": board["todo"]}, headers=alice).json()
    assert [(t["id"], t["position"]) for t in remaining] == [(b["id"], "2048")]


def test_missing_task_is_not_found(client, alice, board):
    res = client.patch("/v1/tasks/ghost/reorder", json={"columnId": board["todo"]}, headers=alice)
    assert res.status_code == 404


def test_move_column_to_other_board(client, alice, board):
    other = client.post("/v1/boards", json={"name": "Backlog"}, headers=alice).json()
    res = client.patch(f"/v1/columns/{board['done']}", json={"boardId": other["id"]}, headers=alice)
    assert res.status_code == 200
    assert res.json()["boardId"] == other["id"]
    assert res.json()["position"] == "1024"

    columns = client.get("/v1/columns", params={"boardId": board["id"]}, headers=alice).json()
    assert [(c["title"], c["position"]) for c in columns] == [("Todo", "1024")]


def test_reorder_column_between_neighbors(client, alice, board):
    doing = client.post("/v1/columns", json={"boardId": board["id"], "title": "Doing"}, headers=alice).json()
    res = client.patch(
        f"/v1/columns/{doing['id']}/reorder",
        json={"boardId": board["id"], "beforeId": board["todo"], "afterId": board["done"]},
        headers=alice,
    )
    assert res.status_code == 200
    assert res.json()["position"] == "1536"
    columns = client.get("/v1/columns", params={"boardId": board["id"]}, headers=alice).json()
    assert [c["title"] for c in columns] == ["Todo", "Doing", "Done"]


def test_reorder_column_with_same_neighbors(client, alice, board):
    doing = client.post("/v1/columns", json={"boardId": board["id"], "title": "Doing"}, headers=alice).json()
    res = client.patch(
        f"/v1/columns/{doing['id']}/reorder",
        json={"boardId": board["id"], "beforeId": board["todo"], "afterId": board["todo"]},
        headers=alice,
    )
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "beforeId and afterId cannot reference the same column."
