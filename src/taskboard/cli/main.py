"""Taskboard CLI — manage projects, tasks and users from the terminal.

Usage:
    taskboard projects                           # Projects visible to you
    taskboard create-project "Website" -d "Q3"   # Create a project (MANAGER/ADMIN)
    taskboard tasks --status TODO                # List tasks
    taskboard create-task 3 "Write copy" -a 12   # Add a task to project 3
    taskboard set-status 7 DONE                  # Move a task
    taskboard users --role MANAGER               # Admin: page through users
    taskboard set-role 12 MANAGER                # Admin: change a role
    taskboard stats                              # Admin: dashboard numbers

Credentials come from TASKBOARD_ACCESS_TOKEN / TASKBOARD_REFRESH_TOKEN.
Expired access tokens are refreshed at TASKBOARD_IDP_URL automatically.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click

from taskboard import __version__
from taskboard.client import ApiError, SessionExpiredError, TaskboardClient
from taskboard.db.models import ROLE_VALUES, TASK_STATUS_VALUES

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3001"
DEFAULT_IDP_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("TASKBOARD_API_URL", DEFAULT_API_URL).rstrip("/")


def _idp_url() -> str:
    return os.environ.get("TASKBOARD_IDP_URL", DEFAULT_IDP_URL).rstrip("/")


def _client() -> TaskboardClient:
    """Build an API client from the TASKBOARD_* environment."""
    return TaskboardClient(
        _api_url(),
        idp_url=_idp_url(),
        access_token=os.environ.get("TASKBOARD_ACCESS_TOKEN"),
        refresh_token=os.environ.get("TASKBOARD_REFRESH_TOKEN"),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an async test) by offloading to a thread. API failures are
    printed and turned into exit code 1.
    """
    try:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()
    except SessionExpiredError as e:
        click.secho(f"Session expired: {e}. Log in again at {_idp_url()}.", fg="red", err=True)
        sys.exit(1)
    except ApiError as e:
        msg = f"Error {e.status}: {e.error}"
        if e.message:
            msg += f" — {e.message}"
        click.secho(msg, fg="red", err=True)
        sys.exit(1)


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(
            str(row.get(k) if row.get(k) is not None else "—")[:w].ljust(w)
            for _, k, w in columns
        )
        click.echo(line)


def _status_color(status: str) -> str:
    """Map task statuses and roles to click colors."""
    colors = {
        "TODO": "white",
        "IN_PROGRESS": "yellow",
        "DONE": "green",
        "USER": "white",
        "MANAGER": "cyan",
        "ADMIN": "magenta",
    }
    return colors.get(status, "white")


def _task_rows(tasks: list[dict]) -> list[dict]:
    """Flatten nested project/assignee objects for table output."""
    rows = []
    for t in tasks:
        rows.append({
            "id": t["id"],
            "status": t["status"],
            "project": (t.get("project") or {}).get("name"),
            "assignee": (t.get("assignee") or {}).get("email"),
            "title": t["title"],
        })
    return rows


_TASK_COLUMNS = [
    ("ID", "id", 6),
    ("Status", "status", 12),
    ("Project", "project", 20),
    ("Assignee", "assignee", 28),
    ("Title", "title", 50),
]


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="taskboard")
def main():
    """Taskboard — role-based project and task management."""


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@main.command()
def projects():
    """List the projects you can see."""
    _run(_projects_impl())


async def _projects_impl():
    async with _client() as c:
        items = await c.list_projects()

    if not items:
        click.echo("No projects found.")
        return

    click.secho(f"Projects ({len(items)}):", bold=True)
    click.echo()
    rows = [
        {
            "id": p["id"],
            "name": p["name"],
            "manager": (p.get("manager") or {}).get("email"),
            "tasks": len(p.get("tasks") or []),
        }
        for p in items
    ]
    _print_table(rows, [
        ("ID", "id", 6),
        ("Name", "name", 30),
        ("Manager", "manager", 30),
        ("Tasks", "tasks", 6),
    ])


@main.command()
@click.argument("project_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def project(project_id: int, as_json: bool):
    """Show one project with its tasks."""
    _run(_project_impl(project_id, as_json))


async def _project_impl(project_id: int, as_json: bool):
    async with _client() as c:
        p = await c.get_project(project_id)

    if as_json:
        click.echo(_pretty_json(p))
        return

    click.secho(f"#{p['id']} {p['name']}", bold=True)
    if p.get("description"):
        click.echo(f"  {p['description']}")
    click.echo(f"  Manager: {(p.get('manager') or {}).get('email', '—')}")
    click.echo()

    tasks = p.get("tasks") or []
    click.secho(f"Tasks ({len(tasks)}):", bold=True)
    if not tasks:
        click.echo("  (none)")
        return
    for t in tasks:
        status_str = click.style(t["status"], fg=_status_color(t["status"]))
        assignee = (t.get("assignee") or {}).get("email", "unassigned")
        click.echo(f"  #{t['id']:5d}  {status_str:22s}  {t['title'][:50]:50s}  → {assignee}")


@main.command("create-project")
@click.argument("name")
@click.option("--description", "-d", help="Project description")
@click.option("--manager-id", "-m", type=int, help="Manager user id (ADMIN only)")
def create_project(name: str, description: Optional[str], manager_id: Optional[int]):
    """Create a project (MANAGER or ADMIN)."""
    _run(_create_project_impl(name, description, manager_id))


async def _create_project_impl(name: str, description: Optional[str], manager_id: Optional[int]):
    async with _client() as c:
        p = await c.create_project(name, description=description, manager_id=manager_id)
    click.secho(f"Project #{p['id']} created: {p['name']}", fg="green")


@main.command("delete-project")
@click.argument("project_id", type=int)
@click.confirmation_option(prompt="Delete this project and all of its tasks?")
def delete_project(project_id: int):
    """Delete a project and its tasks."""
    _run(_delete_project_impl(project_id))


async def _delete_project_impl(project_id: int):
    async with _client() as c:
        message = await c.delete_project(project_id)
    click.secho(message or f"Project #{project_id} deleted", fg="green")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--status", "-s", "status_filter",
    type=click.Choice(TASK_STATUS_VALUES), help="Filter by status",
)
@click.option("--project-id", "-p", type=int, help="Filter by project")
def tasks(status_filter: Optional[str], project_id: Optional[int]):
    """List the tasks you can see."""
    _run(_tasks_impl(status_filter, project_id))


async def _tasks_impl(status_filter: Optional[str], project_id: Optional[int]):
    async with _client() as c:
        items = await c.list_tasks(status=status_filter, project_id=project_id)

    if not items:
        click.echo("No tasks found.")
        return

    click.secho(f"Tasks ({len(items)}):", bold=True)
    click.echo()
    _print_table(_task_rows(items), _TASK_COLUMNS)


@main.command("create-task")
@click.argument("project_id", type=int)
@click.argument("title")
@click.option("--assignee", "-a", "assignee_id", type=int, help="Assign to this USER id")
def create_task(project_id: int, title: str, assignee_id: Optional[int]):
    """Add a task to a project (MANAGER or ADMIN)."""
    _run(_create_task_impl(project_id, title, assignee_id))


async def _create_task_impl(project_id: int, title: str, assignee_id: Optional[int]):
    async with _client() as c:
        t = await c.create_task(project_id, title, assignee_id=assignee_id)
    click.secho(f"Task #{t['id']} created in project #{project_id}", fg="green")


@main.command("set-status")
@click.argument("task_id", type=int)
@click.argument("new_status", type=click.Choice(TASK_STATUS_VALUES))
def set_status(task_id: int, new_status: str):
    """Move a task to TODO, IN_PROGRESS or DONE."""
    _run(_set_status_impl(task_id, new_status))


async def _set_status_impl(task_id: int, new_status: str):
    async with _client() as c:
        t = await c.update_task_status(task_id, new_status)
    status_str = click.style(t["status"], fg=_status_color(t["status"]))
    click.echo(f"Task #{task_id} is now {status_str}")


@main.command()
@click.argument("task_id", type=int)
@click.argument("user_id", type=int, required=False)
def assign(task_id: int, user_id: Optional[int]):
    """Assign a task to a USER; omit USER_ID to unassign."""
    _run(_assign_impl(task_id, user_id))


async def _assign_impl(task_id: int, user_id: Optional[int]):
    async with _client() as c:
        t = await c.assign_task(task_id, user_id)
    assignee = (t.get("assignee") or {}).get("email")
    if assignee:
        click.secho(f"Task #{task_id} assigned to {assignee}", fg="green")
    else:
        click.secho(f"Task #{task_id} unassigned", fg="green")


@main.command("delete-task")
@click.argument("task_id", type=int)
def delete_task(task_id: int):
    """Delete a task (MANAGER or ADMIN)."""
    _run(_delete_task_impl(task_id))


async def _delete_task_impl(task_id: int):
    async with _client() as c:
        message = await c.delete_task(task_id)
    click.secho(message or f"Task #{task_id} deleted", fg="green")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@main.command()
@click.option("--page", default=1, help="Page number")
@click.option("--limit", "-l", default=10, help="Users per page")
@click.option("--search", "-q", default="", help="Filter by email substring")
@click.option("--role", "-r", type=click.Choice(ROLE_VALUES), help="Filter by role")
def users(page: int, limit: int, search: str, role: Optional[str]):
    """Page through users with their workload (ADMIN)."""
    _run(_users_impl(page, limit, search, role))


async def _users_impl(page: int, limit: int, search: str, role: Optional[str]):
    async with _client() as c:
        result = await c.list_users(page=page, limit=limit, search=search, role=role or "")

    items = result["users"]
    pagination = result["pagination"]
    if not items:
        click.echo("No users found.")
        return

    click.secho(
        f"Users (page {pagination['page']}/{max(pagination['pages'], 1)}, "
        f"{pagination['total']} total):",
        bold=True,
    )
    click.echo()
    rows = [
        {
            "id": u["id"],
            "email": u["email"],
            "role": u["role"],
            "projects": u["_count"]["projectsOwned"],
            "tasks": u["_count"]["tasksAssigned"],
        }
        for u in items
    ]
    _print_table(rows, [
        ("ID", "id", 6),
        ("Email", "email", 32),
        ("Role", "role", 8),
        ("Projects", "projects", 8),
        ("Tasks", "tasks", 6),
    ])


@main.command("set-role")
@click.argument("user_id", type=int)
@click.argument("role", type=click.Choice(ROLE_VALUES))
def set_role(user_id: int, role: str):
    """Change a user's role at the IdP and locally (ADMIN)."""
    _run(_set_role_impl(user_id, role))


async def _set_role_impl(user_id: int, role: str):
    async with _client() as c:
        u = await c.update_user_role(user_id, role)
    role_str = click.style(u["role"], fg=_status_color(u["role"]))
    click.echo(f"{u['email']} is now {role_str}")


@main.command()
@click.option("--idp", "from_idp", is_flag=True, help="Count users at the IdP instead of locally")
def stats(from_idp: bool):
    """Show dashboard statistics (ADMIN)."""
    _run(_stats_impl(from_idp))


async def _stats_impl(from_idp: bool):
    async with _client() as c:
        data = await (c.dashboard_stats() if from_idp else c.admin_stats())

    overview = data["overview"]
    click.secho("Overview", bold=True)
    click.echo(f"  Users:    {overview['totalUsers']}")
    click.echo(f"  Projects: {overview['totalProjects']}")
    click.echo(f"  Tasks:    {overview['totalTasks']}")

    click.echo()
    click.secho("Users by role", bold=True)
    for role, count in sorted(data["usersByRole"].items()):
        click.echo(f"  {click.style(role, fg=_status_color(role)):20s}  {count}")

    click.echo()
    click.secho("Tasks by status", bold=True)
    for task_status, count in sorted(data["tasksByStatus"].items()):
        click.echo(f"  {click.style(task_status, fg=_status_color(task_status)):20s}  {count}")

    recent = data.get("recentActivity")
    if recent:
        click.echo()
        click.secho("Recent activity", bold=True)
        _print_table(_task_rows(recent), _TASK_COLUMNS)


@main.command("sync-users")
def sync_users():
    """Reconcile local users with the IdP (ADMIN)."""
    _run(_sync_users_impl())


async def _sync_users_impl():
    async with _client() as c:
        result = await c.sync_users()
    click.secho("Users synchronized with the IdP", fg="green")
    for key in ("created", "updated", "deleted", "skipped", "renamed"):
        click.echo(f"  {key.capitalize():8s} {result.get(key, 0)}")


if __name__ == "__main__":
    main()
