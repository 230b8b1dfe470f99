from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from app.branchops.core.config import settings
from app.branchops.core.context import KNOWN_ROLES, Principal, normalize_role
from app.branchops.core.error_catalog import ConfigurationError


class OperationKind(str, Enum):
    COLLECTION_READ = "COLLECTION_READ"
    UNIQUE_READ = "UNIQUE_READ"
    UNIQUE_WRITE = "UNIQUE_WRITE"


def unique_operation_kind(for_update: bool) -> OperationKind:
    return OperationKind.UNIQUE_WRITE if for_update else OperationKind.UNIQUE_READ


class FilterMode(str, Enum):
    AUTO_FILTER = "AUTO_FILTER"
    NO_FILTER = "NO_FILTER"
    FORBID_IMPLICIT_FILTER = "FORBID_IMPLICIT_FILTER"


@dataclass(frozen=True)
class ScopeDecision:
    mode: FilterMode
    reason: str


@dataclass(frozen=True)
class RoleConfiguration:
    global_roles: frozenset[str]
    branch_bound_admin_roles: frozenset[str]

    @classmethod
    def build(cls, global_roles: Iterable[str], branch_bound_admin_roles: Iterable[str]) -> RoleConfiguration:
        global_set = frozenset(normalize_role(role) for role in global_roles)
        admin_set = frozenset(normalize_role(role) for role in branch_bound_admin_roles)
        unknown = (global_set | admin_set) - KNOWN_ROLES
        if unknown:
            raise ConfigurationError(f"unknown roles in scope configuration: {sorted(unknown)}")
        if not global_set:
            raise ConfigurationError("at least one global role must be configured")
        overlap = global_set & admin_set
        if overlap:
            raise ConfigurationError(f"roles cannot be both global and branch-bound: {sorted(overlap)}")
        return cls(global_roles=global_set, branch_bound_admin_roles=admin_set)

    @classmethod
    def from_settings(cls) -> RoleConfiguration:
        return cls.build(settings.global_roles, settings.branch_bound_admin_roles)


class ScopePolicy:
    """Pure branch-scope decisions; holds no state beyond its role configuration."""

    def __init__(self, roles: RoleConfiguration):
        self.roles = roles

    def is_global(self, principal: Principal) -> bool:
        return normalize_role(principal.role) in self.roles.global_roles

    def is_branch_bound_admin(self, principal: Principal) -> bool:
        return normalize_role(principal.role) in self.roles.branch_bound_admin_roles

    def may_bypass(self, principal: Principal) -> bool:
        if self.is_global(principal):
            return True
        # Cross-branch administrative accounts have no home branch to scope to.
        return self.is_branch_bound_admin(principal) and not principal.has_home_branch

    def decide(self, operation_kind: OperationKind, principal: Principal) -> ScopeDecision:
        kind = OperationKind(operation_kind)
        if kind in (OperationKind.UNIQUE_READ, OperationKind.UNIQUE_WRITE):
            return ScopeDecision(FilterMode.FORBID_IMPLICIT_FILTER, "unique_lookup")
        if self.is_global(principal):
            return ScopeDecision(FilterMode.NO_FILTER, "global_role")
        return ScopeDecision(FilterMode.AUTO_FILTER, "branch_scoped")

    def owns_branch(self, principal: Principal, branch_id) -> bool:
        if self.is_global(principal):
            return True
        if branch_id is None:
            return False
        return str(branch_id) in principal.branch_ids

    def can_originate_from(self, principal: Principal, branch_id) -> bool:
        if self.owns_branch(principal, branch_id):
            return True
        return self.is_branch_bound_admin(principal) and not principal.has_home_branch


def default_policy() -> ScopePolicy:
    return ScopePolicy(RoleConfiguration.from_settings())
