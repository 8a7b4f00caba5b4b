"""Task API tests — scoping, filters, status changes, assignment, deletion."""

import pytest

from conftest import ADMIN, MANAGER, OTHER_MANAGER, OTHER_WORKER, WORKER
from taskboard.db.models import Task


# ═══════════════════════════════════════════════════════════
# Shared fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture
async def board(seed, people):
    alpha = await seed.project("Alpha", MANAGER["user_id"])
    beta = await seed.project("Beta", OTHER_MANAGER["user_id"])
    mine = await seed.task("Write spec", alpha.id, WORKER["user_id"])
    theirs = await seed.task("Review spec", alpha.id, OTHER_WORKER["user_id"], status="IN_PROGRESS")
    elsewhere = await seed.task("Ship it", beta.id, WORKER["user_id"], status="DONE")
    return {"alpha": alpha, "beta": beta, "mine": mine, "theirs": theirs, "elsewhere": elsewhere}


def _titles(response) -> set[str]:
    return {t["title"] for t in response.json()["data"]}


# ═══════════════════════════════════════════════════════════
# Listing & scoping
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_admin_lists_every_task(client, auth, board):
    r = await client.get("/api/tasks", headers=auth(**ADMIN))
    assert r.status_code == 200
    assert _titles(r) == {"Write spec", "Review spec", "Ship it"}


@pytest.mark.asyncio
async def test_manager_lists_tasks_in_managed_projects(client, auth, board):
    r = await client.get("/api/tasks", headers=auth(**MANAGER))
    assert _titles(r) == {"Write spec", "Review spec"}


@pytest.mark.asyncio
async def test_user_lists_only_assigned_tasks(client, auth, board):
    r = await client.get("/api/tasks", headers=auth(**WORKER))
    assert _titles(r) == {"Write spec", "Ship it"}


@pytest.mark.asyncio
async def test_tasks_carry_project_and_assignee(client, auth, board):
    r = await client.get(f"/api/tasks/{board['mine'].id}", headers=auth(**WORKER))
    assert r.status_code == 200
    task = r.json()["data"]
    assert task["project"] == {
        "id": board["alpha"].id,
        "name": "Alpha",
        "manager": {"id": MANAGER["user_id"], "email": MANAGER["email"]},
    }
    assert task["assignee"] == {"id": WORKER["user_id"], "email": WORKER["email"]}


@pytest.mark.asyncio
async def test_filter_by_status(client, auth, board):
    r = await client.get("/api/tasks", params={"status": "DONE"}, headers=auth(**ADMIN))
    assert _titles(r) == {"Ship it"}


@pytest.mark.asyncio
async def test_filter_by_unknown_status_is_400(client, auth, board):
    r = await client.get("/api/tasks", params={"status": "BLOCKED"}, headers=auth(**ADMIN))
    assert r.status_code == 400
    assert r.json() == {
        "success": False,
        "error": "Validation error",
        "message": "Valid status (TODO, IN_PROGRESS, DONE) is required",
    }


@pytest.mark.asyncio
async def test_filter_by_project(client, auth, board):
    r = await client.get(
        "/api/tasks", params={"projectId": board["alpha"].id}, headers=auth(**WORKER)
    )
    assert _titles(r) == {"Write spec"}


@pytest.mark.asyncio
async def test_user_cannot_read_someone_elses_task(client, auth, board):
    r = await client.get(f"/api/tasks/{board['theirs'].id}", headers=auth(**WORKER))
    assert r.status_code == 404
    assert r.json()["error"] == "Task not found"


@pytest.mark.asyncio
async def test_manager_cannot_read_task_in_other_project(client, auth, board):
    r = await client.get(f"/api/tasks/{board['elsewhere'].id}", headers=auth(**MANAGER))
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Status
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_user_moves_own_task(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/status",
        json={"status": "IN_PROGRESS"},
        headers=auth(**WORKER),
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Task status updated successfully"
    assert r.json()["data"]["status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_any_status_transition_is_allowed(client, auth, board):
    """Statuses are a flat set; DONE can go straight back to TODO."""
    r = await client.put(
        f"/api/tasks/{board['elsewhere'].id}/status",
        json={"status": "TODO"},
        headers=auth(**WORKER),
    )
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "TODO"


@pytest.mark.asyncio
async def test_user_cannot_move_someone_elses_task(client, auth, board, seed):
    r = await client.put(
        f"/api/tasks/{board['theirs'].id}/status",
        json={"status": "DONE"},
        headers=auth(**WORKER),
    )
    assert r.status_code == 404
    assert (await seed.get(Task, board["theirs"].id)).status == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_manager_moves_task_in_own_project(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['theirs'].id}/status",
        json={"status": "DONE"},
        headers=auth(**MANAGER),
    )
    assert r.status_code == 200


@pytest.mark.parametrize("body", [{"status": "BLOCKED"}, {"status": "done"}, {}])
@pytest.mark.asyncio
async def test_invalid_status_is_400(client, auth, board, body):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/status", json=body, headers=auth(**WORKER)
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Valid status (TODO, IN_PROGRESS, DONE) is required"


# ═══════════════════════════════════════════════════════════
# Assignment
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_manager_reassigns_task(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/assign",
        json={"assigneeId": OTHER_WORKER["user_id"]},
        headers=auth(**MANAGER),
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Task assignment updated successfully"
    assert r.json()["data"]["assignee"]["email"] == OTHER_WORKER["email"]


@pytest.mark.asyncio
async def test_null_assignee_unassigns(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/assign",
        json={"assigneeId": None},
        headers=auth(**MANAGER),
    )
    assert r.status_code == 200
    assert r.json()["data"]["assignee"] is None


@pytest.mark.asyncio
async def test_cannot_assign_to_manager(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/assign",
        json={"assigneeId": MANAGER["user_id"]},
        headers=auth(**MANAGER),
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Validation error"


@pytest.mark.asyncio
async def test_user_cannot_assign(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['mine'].id}/assign",
        json={"assigneeId": OTHER_WORKER["user_id"]},
        headers=auth(**WORKER),
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_manager_cannot_assign_in_other_project(client, auth, board):
    r = await client.put(
        f"/api/tasks/{board['elsewhere'].id}/assign",
        json={"assigneeId": OTHER_WORKER["user_id"]},
        headers=auth(**MANAGER),
    )
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_manager_deletes_task(client, auth, board, seed):
    r = await client.delete(f"/api/tasks/{board['mine'].id}", headers=auth(**MANAGER))
    assert r.status_code == 200
    assert r.json()["message"] == "Task deleted successfully"
    assert await seed.get(Task, board["mine"].id) is None


@pytest.mark.asyncio
async def test_admin_deletes_any_task(client, auth, board, seed):
    r = await client.delete(f"/api/tasks/{board['elsewhere'].id}", headers=auth(**ADMIN))
    assert r.status_code == 200
    assert await seed.get(Task, board["elsewhere"].id) is None


@pytest.mark.asyncio
async def test_user_cannot_delete_task(client, auth, board, seed):
    r = await client.delete(f"/api/tasks/{board['mine'].id}", headers=auth(**WORKER))
    assert r.status_code == 403
    assert await seed.get(Task, board["mine"].id) is not None


@pytest.mark.asyncio
async def test_manager_cannot_delete_task_in_other_project(client, auth, board):
    r = await client.delete(f"/api/tasks/{board['elsewhere'].id}", headers=auth(**MANAGER))
    assert r.status_code == 404
