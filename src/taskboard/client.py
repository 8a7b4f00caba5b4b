"""Async API client for the Taskboard backend.

TaskboardClient exposes one coroutine per REST operation and unwraps the
{success, data|error, message} envelope. Authentication is handled by
RefreshingTokenAuth, an httpx.Auth flow that:

- sends the current access token as a Bearer header
- on a 401, refreshes the token at the IdP and retries the request once
- keeps at most one refresh call in flight; concurrent 401s wait for it
- clears the session when the refresh fails, failing every waiter
  with SessionExpiredError

Usage:
    async with TaskboardClient(api_url, idp_url=idp_url,
                               access_token=..., refresh_token=...) as c:
        projects = await c.list_projects()
"""

import asyncio
from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 10.0
REFRESH_PATH = "/api/auth/refresh-token"


class SessionExpiredError(Exception):
    """The access token was rejected and could not be refreshed."""


class ApiError(Exception):
    """A non-2xx response from the API."""

    def __init__(self, status: int, error: str, message: Optional[str] = None):
        self.status = status
        self.error = error
        self.message = message
        super().__init__(f"{status} {error}" + (f": {message}" if message else ""))


class TokenSession:
    """The access/refresh token pair for one logged-in user."""

    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
        self.access_token = access_token
        self.refresh_token = refresh_token

    @property
    def active(self) -> bool:
        return self.access_token is not None

    def update(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        self.access_token = access_token
        if refresh_token:
            self.refresh_token = refresh_token

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None


def _pick(payload: Any, *keys: str) -> Optional[str]:
    """First of `keys` found in the payload or its `data` object."""
    if not isinstance(payload, dict):
        return None
    sources = [payload]
    if isinstance(payload.get("data"), dict):
        sources.insert(0, payload["data"])
    for source in sources:
        for key in keys:
            if source.get(key):
                return source[key]
    return None


class RefreshingTokenAuth(httpx.Auth):
    """Bearer auth that refreshes an expired access token once per 401."""

    def __init__(
        self,
        session: TokenSession,
        refresh_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.session = session
        self.refresh_url = refresh_url
        self._transport = transport
        self._timeout = timeout
        self._pending: Optional[asyncio.Task] = None
        self.refresh_count = 0

    def _authorize(self, request: httpx.Request, token: Optional[str]) -> None:
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            request.headers.pop("Authorization", None)

    async def async_auth_flow(self, request: httpx.Request):
        sent_with = self.session.access_token
        self._authorize(request, sent_with)
        response = yield request

        if response.status_code != 401:
            return

        token = await self._fresh_token(sent_with)
        self._authorize(request, token)
        yield request

    async def _fresh_token(self, stale: Optional[str]) -> str:
        """A token newer than `stale`, refreshing only if nobody else has."""
        current = self.session.access_token
        if current and current != stale:
            return current

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._refresh())
        # shield: one waiter being cancelled must not cancel the refresh for the rest
        return await asyncio.shield(self._pending)

    async def _refresh(self) -> str:
        try:
            refresh_token = self.session.refresh_token
            if not refresh_token:
                raise SessionExpiredError("No refresh token available")

            self.refresh_count += 1
            logger.info("client.token_refresh", url=self.refresh_url)
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.post(
                    self.refresh_url, json={"refreshToken": refresh_token}
                )

            if response.is_error:
                raise SessionExpiredError(
                    f"Token refresh rejected with status {response.status_code}"
                )
            payload = response.json()
            access_token = _pick(payload, "accessToken", "access_token")
            if not access_token:
                raise SessionExpiredError("Token refresh returned no access token")

            self.session.update(access_token, _pick(payload, "refreshToken", "refresh_token"))
            return access_token
        except (httpx.HTTPError, ValueError) as e:
            self.session.clear()
            logger.warning("client.token_refresh_failed", error=str(e))
            raise SessionExpiredError(f"Token refresh failed: {e}") from e
        except SessionExpiredError as e:
            self.session.clear()
            logger.warning("client.token_refresh_failed", error=str(e))
            raise
        finally:
            self._pending = None


class TaskboardClient:
    """One method per Taskboard REST operation."""

    def __init__(
        self,
        base_url: str,
        *,
        idp_url: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.session = TokenSession(access_token, refresh_token)
        self.auth = RefreshingTokenAuth(
            self.session,
            idp_url.rstrip("/") + REFRESH_PATH,
            transport=transport,
            timeout=timeout,
        )
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=self.auth,
            transport=transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "TaskboardClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send a request and return the decoded envelope."""
        response = await self._http.request(method, path, **kwargs)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"data": payload}

        if response.is_error:
            raise ApiError(
                response.status_code,
                payload.get("error") or response.reason_phrase,
                payload.get("message"),
            )
        return payload

    async def _data(self, method: str, path: str, **kwargs) -> Any:
        return (await self._request(method, path, **kwargs)).get("data")

    # ─── Health ──────────────────────────────────────────

    async def health(self) -> dict:
        return await self._request("GET", "/health")

    # ─── Projects ────────────────────────────────────────

    async def list_projects(self) -> list[dict]:
        return await self._data("GET", "/api/projects")

    async def get_project(self, project_id: int) -> dict:
        return await self._data("GET", f"/api/projects/{project_id}")

    async def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        manager_id: Optional[int] = None,
    ) -> dict:
        body: dict = {"name": name, "description": description}
        if manager_id is not None:
            body["managerId"] = manager_id
        return await self._data("POST", "/api/projects", json=body)

    async def update_project(
        self,
        project_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> dict:
        return await self._data(
            "PUT",
            f"/api/projects/{project_id}",
            json={"name": name, "description": description},
        )

    async def delete_project(self, project_id: int) -> Optional[str]:
        return (await self._request("DELETE", f"/api/projects/{project_id}")).get("message")

    # ─── Tasks ───────────────────────────────────────────

    async def list_tasks(
        self, status: Optional[str] = None, project_id: Optional[int] = None
    ) -> list[dict]:
        params: dict = {}
        if status:
            params["status"] = status
        if project_id is not None:
            params["projectId"] = project_id
        return await self._data("GET", "/api/tasks", params=params)

    async def get_task(self, task_id: int) -> dict:
        return await self._data("GET", f"/api/tasks/{task_id}")

    async def create_task(
        self, project_id: int, title: str, assignee_id: Optional[int] = None
    ) -> dict:
        return await self._data(
            "POST",
            f"/api/projects/{project_id}/tasks",
            json={"title": title, "assigneeId": assignee_id},
        )

    async def update_task_status(self, task_id: int, status: str) -> dict:
        return await self._data("PUT", f"/api/tasks/{task_id}/status", json={"status": status})

    async def assign_task(self, task_id: int, assignee_id: Optional[int]) -> dict:
        return await self._data(
            "PUT", f"/api/tasks/{task_id}/assign", json={"assigneeId": assignee_id}
        )

    async def delete_task(self, task_id: int) -> Optional[str]:
        return (await self._request("DELETE", f"/api/tasks/{task_id}")).get("message")

    # ─── Admin ───────────────────────────────────────────

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        role: str = "",
    ) -> dict:
        params: dict = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if role:
            params["role"] = role
        return await self._data("GET", "/api/admin/users", params=params)

    async def get_user(self, user_id: int) -> dict:
        return await self._data("GET", f"/api/admin/users/{user_id}")

    async def update_user_role(self, user_id: int, role: str) -> dict:
        return await self._data("PUT", f"/api/admin/users/{user_id}/role", json={"role": role})

    async def admin_stats(self) -> dict:
        return await self._data("GET", "/api/admin/stats")

    async def dashboard_stats(self) -> dict:
        return await self._data("GET", "/api/admin/dashboard-stats")

    async def sync_users(self) -> dict:
        return await self._data("GET", "/api/admin/sync-users")
