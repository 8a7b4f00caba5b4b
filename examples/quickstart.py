#!/usr/bin/env python3
"""
Taskboard Quickstart — a manager's day in one script.

Creates a project → adds tasks → assigns one → moves it along → cleans up.
Run with: python examples/quickstart.py

Requires: pip install -e .
Backend must be running: http://localhost:3001
TASKBOARD_ACCESS_TOKEN must hold a MANAGER or ADMIN token from the IdP
(TASKBOARD_REFRESH_TOKEN too, if you want expired tokens refreshed).
Optionally TASKBOARD_ASSIGNEE_ID names a USER to assign the first task to.
"""

import asyncio
import os
import sys

from taskboard.client import ApiError, SessionExpiredError, TaskboardClient

API_URL = os.environ.get("TASKBOARD_API_URL", "http://localhost:3001")
IDP_URL = os.environ.get("TASKBOARD_IDP_URL", "http://localhost:8080")


async def main():
    token = os.environ.get("TASKBOARD_ACCESS_TOKEN")
    if not token:
        print("Set TASKBOARD_ACCESS_TOKEN to a MANAGER or ADMIN access token.")
        sys.exit(1)

    async with TaskboardClient(
        API_URL,
        idp_url=IDP_URL,
        access_token=token,
        refresh_token=os.environ.get("TASKBOARD_REFRESH_TOKEN"),
    ) as c:
        health = await c.health()
        print(f"Backend: {health['message']} ({health['environment']}, v{health['version']})")

        # ── Project ───────────────────────────────────────────────
        print("\n1. Creating project...")
        project = await c.create_project("Quickstart", description="Created by examples/quickstart.py")
        print(f"   Project #{project['id']}: {project['name']} (manager {project['manager']['email']})")

        # ── Tasks ─────────────────────────────────────────────────
        print("\n2. Adding tasks...")
        assignee = os.environ.get("TASKBOARD_ASSIGNEE_ID")
        first = await c.create_task(
            project["id"], "Outline the plan", assignee_id=int(assignee) if assignee else None
        )
        second = await c.create_task(project["id"], "Review the plan")
        for t in (first, second):
            who = (t["assignee"] or {}).get("email", "unassigned")
            print(f"   Task #{t['id']}: {t['title']} [{t['status']}] → {who}")

        # ── Status ────────────────────────────────────────────────
        print("\n3. Moving the first task along...")
        for status in ("IN_PROGRESS", "DONE"):
            t = await c.update_task_status(first["id"], status)
            print(f"   #{t['id']} → {t['status']}")

        # ── Review ────────────────────────────────────────────────
        print("\n4. Project as it stands:")
        for t in (await c.get_project(project["id"]))["tasks"]:
            print(f"   #{t['id']:<5} {t['status']:<12} {t['title']}")

        # ── Clean up ──────────────────────────────────────────────
        print("\n5. Cleaning up...")
        print(f"   {await c.delete_project(project['id'])}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except SessionExpiredError as e:
        print(f"Session expired: {e}")
        sys.exit(1)
    except ApiError as e:
        print(f"API error: {e}")
        sys.exit(1)
