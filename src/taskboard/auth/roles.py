"""Role normalization.

Different IdPs put roles in different claims and formats: a plain
"ADMIN", Spring-style "ROLE_MANAGER", space-separated scope strings
("SCOPE_ROLE_USER ROLE_ADMIN"), or lists. Everything collapses to one
of USER | MANAGER | ADMIN, preferring the most privileged role found.
"""

import re
from typing import Any, Optional

from taskboard.db.models import Role

# Checked in this order, both for substring matching and list preference.
PREFERRED_ORDER = [Role.ADMIN.value, Role.MANAGER.value, Role.USER.value]

# Claim names tried in order.
ROLE_CLAIMS = ("role", "roles", "authorities", "scopes", "scope")


def _map_single(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    upper = value.upper()
    for role in PREFERRED_ORDER:
        if role in upper:
            return role
    return None


def to_simple_role(raw: Any) -> Optional[str]:
    """Collapse one raw claim value into a role, or None."""
    if not raw:
        return None

    if isinstance(raw, (list, tuple)):
        mapped = [_map_single(r) for r in raw]
        for role in PREFERRED_ORDER:
            if role in mapped:
                return role
        return None

    if isinstance(raw, str):
        parts = [p for p in re.split(r"[\s,]+", raw) if p]
        if len(parts) > 1:
            return to_simple_role(parts)
        return _map_single(raw)

    return None


def normalize_role(claims: dict) -> Optional[str]:
    """Find the caller's role in a decoded token's claims."""
    for claim in ROLE_CLAIMS:
        role = to_simple_role(claims.get(claim))
        if role:
            return role
    return None
