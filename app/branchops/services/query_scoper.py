import logging

from app.branchops.core.context import Principal
from app.branchops.core.error_catalog import ConfigurationError, ErrorCatalog, ForbiddenError
from app.branchops.core.filters import CollectionFilter, UniqueLookup, branch_fields_for
from app.branchops.core.logging import log_json
from app.branchops.core.scope import FilterMode, OperationKind, ScopePolicy, default_policy
from app.branchops.services.audit import AuditEventPayload, AuditService

logger = logging.getLogger(__name__)


class QueryScoper:
    """Applies branch scope to every collection read before it reaches a repository.

    Unique lookups are never filtered here; callers authorize the fetched row
    with ``authorize_entity`` so that a row outside the caller's scope reports
    FORBIDDEN instead of looking absent.
    """

    def __init__(self, db, policy: ScopePolicy | None = None, *, trace_id: str | None = None):
        self.db = db
        self.policy = policy or default_policy()
        self.trace_id = trace_id

    def scope_collection_query(
        self,
        flt: CollectionFilter,
        principal: Principal,
        operation: str | None = None,
    ) -> CollectionFilter:
        if not isinstance(flt, CollectionFilter):
            self._contract_violation("collection read requires a CollectionFilter", principal, operation)
        operation_name = operation or flt.operation or f"list_{flt.entity.lower()}"
        if not flt.branch_fields:
            self._contract_violation(f"entity {flt.entity} is not branch scoped", principal, operation_name)

        if flt.bypass_scope is not False:
            return self._apply_bypass(flt, principal, operation_name)

        decision = self.policy.decide(OperationKind.COLLECTION_READ, principal)
        if decision.mode == FilterMode.NO_FILTER:
            return flt

        authorized = principal.branch_ids
        requested = flt.explicit_branch_ids()
        if requested is not None:
            outside = requested - authorized
            if outside:
                log_json(
                    logger,
                    {
                        "event": "scope_denied",
                        "operation": operation_name,
                        "entity": flt.entity,
                        "user_id": principal.user_id,
                        "role": principal.role,
                        "requested_branch_ids": sorted(outside),
                        "trace_id": self.trace_id,
                    },
                    level=logging.WARNING,
                )
                raise ForbiddenError(
                    "Requested branch is outside the caller's scope",
                    error=ErrorCatalog.BRANCH_SCOPE_MISMATCH,
                )
        return flt.scoped_to(authorized)

    def scope_unique_lookup(
        self,
        lookup: UniqueLookup,
        principal: Principal,
        operation_kind: OperationKind = OperationKind.UNIQUE_READ,
    ) -> UniqueLookup:
        if not isinstance(lookup, UniqueLookup):
            self._contract_violation("unique operation requires a UniqueLookup", principal, None)
        decision = self.policy.decide(operation_kind, principal)
        if decision.mode != FilterMode.FORBID_IMPLICIT_FILTER:
            self._contract_violation("unique lookups must not be branch filtered", principal, None)
        return lookup

    def authorize_entity(self, entity, principal: Principal, entity_name: str, fields: tuple[str, ...] | None = None):
        if self.policy.is_global(principal):
            return entity
        branch_fields = fields or branch_fields_for(entity_name)
        authorized = principal.branch_ids
        for name in branch_fields:
            value = getattr(entity, name, None)
            if value is not None and str(value) in authorized:
                return entity
        raise ForbiddenError(f"{entity_name} belongs to another branch", error=ErrorCatalog.BRANCH_SCOPE_MISMATCH)

    def _apply_bypass(self, flt: CollectionFilter, principal: Principal, operation_name: str) -> CollectionFilter:
        if not isinstance(flt.bypass_scope, bool):
            self._contract_violation("bypass_scope marker must be a boolean", principal, operation_name)
        if not self.policy.may_bypass(principal):
            self._contract_violation(
                f"role {principal.role} may not bypass branch scope",
                principal,
                operation_name,
            )
        AuditService(self.db).record_event(
            AuditEventPayload(
                actor=principal.user_id,
                actor_role=principal.role,
                branch_id=principal.branch_id,
                action="scope.bypass",
                entity_type=flt.entity,
                entity_id=None,
                trace_id=self.trace_id,
                detail={"operation": operation_name, "entity": flt.entity},
            ),
            autocommit=True,
        )
        log_json(
            logger,
            {
                "event": "scope_bypass",
                "operation": operation_name,
                "entity": flt.entity,
                "user_id": principal.user_id,
                "role": principal.role,
                "trace_id": self.trace_id,
            },
            level=logging.WARNING,
        )
        return flt.without_bypass()

    def _contract_violation(self, message: str, principal: Principal, operation: str | None):
        log_json(
            logger,
            {
                "event": "scope_configuration_error",
                "message": message,
                "operation": operation,
                "user_id": getattr(principal, "user_id", None),
                "role": getattr(principal, "role", None),
                "trace_id": self.trace_id,
            },
            level=logging.ERROR,
        )
        raise ConfigurationError(message)
