"""HTTP client for the identity provider's admin API.

The IdP owns users and roles. We call it for two things:
- GET  /api/admin/users              → authoritative user list
- PUT  /api/admin/users/{id}/role    → role change

Calls are made on behalf of the admin performing the request, so the
caller's Authorization header is forwarded as-is.
"""

from typing import Optional

import httpx
import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from taskboard.config import settings
from taskboard.schemas.user import IdPUser
from taskboard.services.errors import ConfigurationError, IdPError

logger = structlog.get_logger()

_user_list = TypeAdapter(list[IdPUser])


class IdPClient:
    """Thin async wrapper around the IdP admin endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.idp_api_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout or settings.idp_timeout_seconds

    def _client(self) -> httpx.AsyncClient:
        if not self.base_url:
            logger.error("idp.url_missing")
            raise ConfigurationError("TASKBOARD_IDP_API_URL is not set")
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, fallback: str) -> None:
        if response.is_success:
            return
        message = fallback
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("message"):
                message = body["message"]
        except ValueError:
            pass
        logger.warning(
            "idp.error_response", status=response.status_code, body=response.text[:500]
        )
        raise IdPError(message, status_code=response.status_code)

    async def list_users(self, authorization: Optional[str]) -> list[IdPUser]:
        """Fetch the authoritative user list."""
        async with self._client() as c:
            try:
                r = await c.get(
                    "/api/admin/users",
                    headers=_auth_headers(authorization),
                )
            except httpx.HTTPError as e:
                logger.error("idp.request_failed", error=str(e))
                raise IdPError("The request to the IdP failed.")

        self._raise_for_status(r, "Failed to fetch authoritative user list from IdP.")
        try:
            return _user_list.validate_python(r.json())
        except (ValueError, PydanticValidationError):
            raise IdPError("IdP did not return a valid user array.")

    async def update_role(
        self,
        user_id: int,
        role: str,
        authorization: Optional[str],
    ) -> None:
        """Change a user's role at the IdP."""
        async with self._client() as c:
            try:
                r = await c.put(
                    f"/api/admin/users/{user_id}/role",
                    json={"role": role},
                    headers=_auth_headers(authorization),
                )
            except httpx.HTTPError as e:
                logger.error("idp.request_failed", error=str(e))
                raise IdPError("The request to the IdP failed.")

        self._raise_for_status(r, "Failed to update role in the Identity Provider.")


def _auth_headers(authorization: Optional[str]) -> dict:
    return {"Authorization": authorization} if authorization else {}


def get_idp_client() -> IdPClient:
    """FastAPI dependency — overridden in tests with a mock transport."""
    return IdPClient()
