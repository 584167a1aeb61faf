# medbill/modules/login/model.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

# action -> allowed for staff; admins may do everything
STAFF_PERMISSIONS = frozenset({
    "billing:create",
    "billing:view",
    "inventory:view",
    "customer:view",
    "customer:create",
})


@dataclass(frozen=True)
class UserSession:
    """
    App-facing user object (no secrets).
    """
    user_id: int
    username: str
    full_name: Optional[str] = None
    role: Optional[str] = None
    last_login: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "UserSession":
        """
        Build from any dict/mapping with the expected keys.
        """
        return cls(
            user_id=int(m["user_id"]),
            username=str(m["username"]),
            full_name=m.get("full_name"),
            role=m.get("role"),
            last_login=m.get("last_login"),
        )


def has_permission(session: Optional[UserSession], action: str) -> bool:
    if session is None:
        return False
    if session.is_admin:
        return True
    return session.role == "staff" and action in STAFF_PERMISSIONS
