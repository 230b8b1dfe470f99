from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    MANAGEMENT = "MANAGEMENT"
    BRANCH_ADMIN = "BRANCH_ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    ADMIN_AFFAIRS = "ADMIN_AFFAIRS"
    BRANCH_MANAGER = "BRANCH_MANAGER"
    CS_SUPERVISOR = "CS_SUPERVISOR"
    CS_AGENT = "CS_AGENT"
    BRANCH_TECH = "BRANCH_TECH"
    TECHNICIAN = "TECHNICIAN"
    CENTER_MANAGER = "CENTER_MANAGER"


KNOWN_ROLES = frozenset(role.value for role in Role)


def normalize_role(role: str | None) -> str:
    return (role or "").strip().upper()


@dataclass(frozen=True)
class Principal:
    """Caller identity handed in by the authentication layer for one request."""

    user_id: str
    role: str
    branch_id: str | None = None
    authorized_branch_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def branch_ids(self) -> frozenset[str]:
        if self.authorized_branch_ids:
            return self.authorized_branch_ids
        if self.branch_id:
            return frozenset({self.branch_id})
        return frozenset()

    @property
    def has_home_branch(self) -> bool:
        return bool(self.branch_id)


def build_principal(
    *,
    user_id: str,
    role: str | None,
    branch_id: str | None = None,
    authorized_branch_ids=None,
) -> Principal:
    branch = str(branch_id) if branch_id else None
    authorized = {str(item) for item in (authorized_branch_ids or [])}
    if branch and authorized:
        authorized.add(branch)
    return Principal(
        user_id=str(user_id),
        role=normalize_role(role),
        branch_id=branch,
        authorized_branch_ids=frozenset(authorized),
    )

