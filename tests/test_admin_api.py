"""Admin API tests — user browsing, role changes, stats and IdP sync.

The IdP admin API is the FakeIdP from conftest; its users list and
response statuses are set per test.
"""

import pytest

from conftest import ADMIN, MANAGER, OTHER_MANAGER, OTHER_WORKER, WORKER
from taskboard.db.models import Project, Task, User
from taskboard.main import app
from taskboard.services.idp_client import IdPClient, get_idp_client


# ═══════════════════════════════════════════════════════════
# Shared fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture
async def board(seed, people):
    alpha = await seed.project("Alpha", MANAGER["user_id"], "Launch site")
    t1 = await seed.task("Copy", alpha.id, WORKER["user_id"], status="DONE")
    t2 = await seed.task("Images", alpha.id, WORKER["user_id"], status="IN_PROGRESS")
    t3 = await seed.task("Unassigned", alpha.id)
    return {"alpha": alpha, "tasks": [t1, t2, t3]}


def _by_id(users: list[dict]) -> dict[int, dict]:
    return {u["id"]: u for u in users}


# ═══════════════════════════════════════════════════════════
# Access
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize("who", [MANAGER, WORKER])
@pytest.mark.asyncio
async def test_admin_routes_need_admin(client, auth, people, who):
    for path in ("/api/admin/users", "/api/admin/stats", "/api/admin/sync-users"):
        r = await client.get(path, headers=auth(**who))
        assert r.status_code == 403, path


# ═══════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_users_with_counts(client, auth, board):
    r = await client.get("/api/admin/users", headers=auth(**ADMIN))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 10, "total": 5, "pages": 1}

    users = _by_id(data["users"])
    assert users[MANAGER["user_id"]]["_count"] == {"projectsOwned": 1, "tasksAssigned": 0}
    assert users[WORKER["user_id"]]["_count"] == {"projectsOwned": 0, "tasksAssigned": 2}
    assert users[WORKER["user_id"]]["emailVerified"] is True


@pytest.mark.asyncio
async def test_list_users_paginates(client, auth, people):
    r = await client.get("/api/admin/users", params={"limit": 2, "page": 3}, headers=auth(**ADMIN))
    data = r.json()["data"]
    assert data["pagination"] == {"page": 3, "limit": 2, "total": 5, "pages": 3}
    assert len(data["users"]) == 1


@pytest.mark.asyncio
async def test_list_users_search(client, auth, people):
    r = await client.get("/api/admin/users", params={"search": "other"}, headers=auth(**ADMIN))
    emails = {u["email"] for u in r.json()["data"]["users"]}
    assert emails == {OTHER_MANAGER["email"], OTHER_WORKER["email"]}


@pytest.mark.asyncio
async def test_list_users_search_matches_wildcards_literally(client, auth, people, seed):
    await seed.user(20, "first_last@example.com")
    for term, expected in (("_", {"first_last@example.com"}), ("%", set())):
        r = await client.get("/api/admin/users", params={"search": term}, headers=auth(**ADMIN))
        assert {u["email"] for u in r.json()["data"]["users"]} == expected
        assert r.json()["data"]["pagination"]["total"] == len(expected)


@pytest.mark.asyncio
async def test_list_users_role_filter(client, auth, people):
    r = await client.get("/api/admin/users", params={"role": "manager"}, headers=auth(**ADMIN))
    assert {u["role"] for u in r.json()["data"]["users"]} == {"MANAGER"}
    assert r.json()["data"]["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_unknown_role_filter_is_ignored(client, auth, people):
    r = await client.get("/api/admin/users", params={"role": "wizard"}, headers=auth(**ADMIN))
    assert r.json()["data"]["pagination"]["total"] == 5


@pytest.mark.asyncio
async def test_user_detail(client, auth, board):
    r = await client.get(f"/api/admin/users/{MANAGER['user_id']}", headers=auth(**ADMIN))
    assert r.status_code == 200
    user = r.json()["data"]
    assert user["email"] == MANAGER["email"]
    assert user["tasksAssigned"] == []
    [project] = user["projectsOwned"]
    assert project["name"] == "Alpha"
    assert project["_count"] == {"tasks": 3}


@pytest.mark.asyncio
async def test_user_detail_lists_assigned_tasks(client, auth, board):
    r = await client.get(f"/api/admin/users/{WORKER['user_id']}", headers=auth(**ADMIN))
    tasks = r.json()["data"]["tasksAssigned"]
    assert {t["title"] for t in tasks} == {"Copy", "Images"}
    assert all(t["project"] == {"id": board["alpha"].id, "name": "Alpha"} for t in tasks)


@pytest.mark.asyncio
async def test_user_detail_missing(client, auth, people):
    r = await client.get("/api/admin/users/999", headers=auth(**ADMIN))
    assert r.status_code == 404
    assert r.json()["error"] == "User not found"


# ═══════════════════════════════════════════════════════════
# Role changes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_change_role_updates_idp_then_local(client, auth, people, idp, seed):
    headers = auth(**ADMIN)
    r = await client.put(
        f"/api/admin/users/{OTHER_WORKER['user_id']}/role",
        json={"role": "MANAGER"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["message"] == "User role successfully updated to MANAGER"
    assert r.json()["data"]["role"] == "MANAGER"

    [sent] = idp.requests
    assert sent.method == "PUT"
    assert sent.url.path == f"/api/admin/users/{OTHER_WORKER['user_id']}/role"
    # The admin's own credentials are forwarded to the IdP
    assert sent.headers["Authorization"] == headers["Authorization"]

    assert (await seed.get(User, OTHER_WORKER["user_id"])).role == "MANAGER"


@pytest.mark.asyncio
async def test_cannot_change_own_role(client, auth, people, idp):
    r = await client.put(
        f"/api/admin/users/{ADMIN['user_id']}/role",
        json={"role": "USER"},
        headers=auth(**ADMIN),
    )
    assert r.status_code == 400
    assert r.json() == {
        "success": False,
        "error": "Invalid operation",
        "message": "You cannot change your own role",
    }
    assert idp.requests == []


@pytest.mark.parametrize("body", [{"role": "OWNER"}, {"role": "admin"}, {}])
@pytest.mark.asyncio
async def test_role_must_be_valid(client, auth, people, body):
    r = await client.put(
        f"/api/admin/users/{WORKER['user_id']}/role", json=body, headers=auth(**ADMIN)
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Valid role is required"


@pytest.mark.asyncio
async def test_role_change_unknown_user(client, auth, people):
    r = await client.put("/api/admin/users/999/role", json={"role": "USER"}, headers=auth(**ADMIN))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_manager_with_projects_cannot_become_user(client, auth, board, idp, seed):
    r = await client.put(
        f"/api/admin/users/{MANAGER['user_id']}/role",
        json={"role": "USER"},
        headers=auth(**ADMIN),
    )
    assert r.status_code == 400
    assert "manages 1 project" in r.json()["message"]
    assert idp.requests == []
    assert (await seed.get(User, MANAGER["user_id"])).role == "MANAGER"


@pytest.mark.asyncio
async def test_user_with_tasks_cannot_leave_user_role(client, auth, board, idp):
    r = await client.put(
        f"/api/admin/users/{WORKER['user_id']}/role",
        json={"role": "MANAGER"},
        headers=auth(**ADMIN),
    )
    assert r.status_code == 400
    assert "2 assigned task" in r.json()["message"]
    assert idp.requests == []


@pytest.mark.asyncio
async def test_manager_without_projects_can_be_promoted(client, auth, board):
    r = await client.put(
        f"/api/admin/users/{OTHER_MANAGER['user_id']}/role",
        json={"role": "ADMIN"},
        headers=auth(**ADMIN),
    )
    assert r.status_code == 200
    assert r.json()["data"]["role"] == "ADMIN"


@pytest.mark.asyncio
async def test_idp_rejection_leaves_local_role(client, auth, people, idp, seed):
    idp.role_status = 403
    r = await client.put(
        f"/api/admin/users/{OTHER_WORKER['user_id']}/role",
        json={"role": "MANAGER"},
        headers=auth(**ADMIN),
    )
    assert r.status_code == 403
    assert r.json() == {
        "success": False,
        "error": "IdP Error",
        "message": "Role update refused",
    }
    assert (await seed.get(User, OTHER_WORKER["user_id"])).role == "USER"


# ═══════════════════════════════════════════════════════════
# Stats
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_local_stats(client, auth, board):
    r = await client.get("/api/admin/stats", headers=auth(**ADMIN))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["overview"] == {"totalUsers": 5, "totalProjects": 1, "totalTasks": 3}
    assert data["usersByRole"] == {"ADMIN": 1, "MANAGER": 2, "USER": 2}
    assert data["tasksByStatus"] == {"TODO": 1, "IN_PROGRESS": 1, "DONE": 1}
    recent = data["recentActivity"]
    assert len(recent) == 3
    assert recent[0]["title"] == "Unassigned"
    assert recent[0]["project"]["manager"]["email"] == MANAGER["email"]


@pytest.mark.asyncio
async def test_recent_activity_capped_at_ten(client, auth, board, seed):
    for i in range(12):
        await seed.task(f"Extra {i}", board["alpha"].id)
    r = await client.get("/api/admin/stats", headers=auth(**ADMIN))
    assert len(r.json()["data"]["recentActivity"]) == 10


@pytest.mark.asyncio
async def test_dashboard_stats_count_idp_users(client, auth, board, idp):
    idp.users = [
        {"id": 1, "email": "admin@example.com", "role": "ROLE_ADMIN"},
        {"id": 20, "email": "a@example.com", "role": "ROLE_USER"},
        {"id": 21, "email": "b@example.com", "role": "ROLE_USER"},
        {"id": 22, "email": "c@example.com"},
    ]
    r = await client.get("/api/admin/dashboard-stats", headers=auth(**ADMIN))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["overview"] == {"totalUsers": 4, "totalProjects": 1, "totalTasks": 3}
    assert data["usersByRole"] == {"ADMIN": 1, "USER": 3}
    assert data["recentActivity"] is None


# ═══════════════════════════════════════════════════════════
# Sync
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sync_users_reconciles_with_idp(client, auth, board, idp, seed):
    """IdP list drops MANAGER (still managing Alpha) and WORKER (holding tasks)."""
    idp.users = [
        {"id": ADMIN["user_id"], "email": ADMIN["email"], "role": "ADMIN", "emailVerified": True},
        {"id": OTHER_MANAGER["user_id"], "email": "renamed@example.com", "role": "ROLE_MANAGER"},
        {"id": OTHER_WORKER["user_id"], "email": OTHER_WORKER["email"], "role": "USER"},
        {"id": 30, "email": "newcomer@example.com", "role": "SCOPE_ROLE_USER",
         "createdAt": "2026-01-02T03:04:05+00:00"},
    ]
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 200
    assert r.json()["message"] == "User data synchronized successfully with IdP."
    assert r.json()["data"] == {
        "created": 1, "updated": 3, "deleted": 1, "skipped": 1, "renamed": 0
    }

    # Deleted: the worker, whose tasks are now unassigned
    assert await seed.get(User, WORKER["user_id"]) is None
    for task in board["tasks"]:
        assert (await seed.get(Task, task.id)).assignee_id is None

    # Kept: the manager, since Alpha would be orphaned otherwise
    assert await seed.get(User, MANAGER["user_id"]) is not None

    renamed = await seed.get(User, OTHER_MANAGER["user_id"])
    assert renamed.email == "renamed@example.com"
    assert renamed.role == "MANAGER"

    newcomer = await seed.get(User, 30)
    assert newcomer.role == "USER"
    assert newcomer.created_at.year == 2026


@pytest.mark.asyncio
async def test_sync_releases_email_of_kept_manager(client, auth, board, idp, seed):
    """The IdP moved the manager's email to a new id; the old row still owns Alpha."""
    idp.users = [
        {"id": ADMIN["user_id"], "email": ADMIN["email"], "role": "ADMIN"},
        {"id": 9, "email": MANAGER["email"], "role": "MANAGER"},
    ]
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 200
    assert r.json()["data"] == {
        "created": 1, "updated": 1, "deleted": 3, "skipped": 1, "renamed": 1
    }

    assert (await seed.get(User, 9)).email == MANAGER["email"]
    kept = await seed.get(User, MANAGER["user_id"])
    assert kept.email == f"deleted+{MANAGER['user_id']}@example.com"
    alpha = await seed.get(Project, board["alpha"].id)
    assert alpha.manager_id == MANAGER["user_id"]


@pytest.mark.asyncio
async def test_sync_handles_swapped_emails(client, auth, people, idp, seed):
    idp.users = [
        {"id": who["user_id"], "email": who["email"], "role": who["role"]}
        for who in (ADMIN, MANAGER, OTHER_MANAGER)
    ] + [
        {"id": WORKER["user_id"], "email": OTHER_WORKER["email"], "role": "USER"},
        {"id": OTHER_WORKER["user_id"], "email": WORKER["email"], "role": "USER"},
    ]
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 200
    assert r.json()["data"] == {
        "created": 0, "updated": 5, "deleted": 0, "skipped": 0, "renamed": 0
    }
    assert (await seed.get(User, WORKER["user_id"])).email == OTHER_WORKER["email"]
    assert (await seed.get(User, OTHER_WORKER["user_id"])).email == WORKER["email"]


@pytest.mark.asyncio
async def test_sync_forwards_admin_credentials(client, auth, people, idp):
    idp.users = [{"id": ADMIN["user_id"], "email": ADMIN["email"], "role": "ADMIN"}]
    headers = auth(**ADMIN)
    await client.get("/api/admin/sync-users", headers=headers)
    assert idp.requests[0].headers["Authorization"] == headers["Authorization"]


@pytest.mark.asyncio
async def test_sync_idp_error_status_passes_through(client, auth, people, idp, seed):
    idp.list_status = 401
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 401
    assert r.json()["error"] == "IdP Error"
    assert r.json()["message"] == "IdP refused"
    # Nothing was touched
    assert await seed.get(User, WORKER["user_id"]) is not None


@pytest.mark.asyncio
async def test_sync_rejects_non_array_payload(client, auth, people, idp):
    idp.list_body = {"users": []}
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 502
    assert r.json() == {
        "success": False,
        "error": "IdP Error",
        "message": "IdP did not return a valid user array.",
    }


@pytest.mark.asyncio
async def test_sync_without_idp_url_is_500(client, auth, people):
    app.dependency_overrides[get_idp_client] = lambda: IdPClient("")
    r = await client.get("/api/admin/sync-users", headers=auth(**ADMIN))
    assert r.status_code == 500
    assert r.json()["error"] == "Server configuration error"
