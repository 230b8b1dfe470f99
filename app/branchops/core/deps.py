import uuid

from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError

from app.branchops.core.context import Principal, build_principal
from app.branchops.core.error_catalog import AppError, ErrorCatalog
from app.branchops.core.scope import ScopePolicy, default_policy
from app.branchops.core.security import TokenData, decode_token, oauth2_scheme
from app.branchops.db.session import get_db
from app.branchops.repos.branches import BranchRepository


def get_current_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData:
    if not token:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_scope_policy() -> ScopePolicy:
    return default_policy()


def require_principal(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
    db=Depends(get_db),
) -> Principal:
    branch_id = token_data.branch_id or None
    authorized: set[str] = set()
    if branch_id:
        try:
            branch_uuid = uuid.UUID(branch_id)
        except ValueError as exc:
            raise AppError(ErrorCatalog.INVALID_TOKEN) from exc
        authorized = BranchRepository(db).descendant_ids(branch_uuid)
    principal = build_principal(
        user_id=token_data.sub,
        role=token_data.role,
        branch_id=branch_id,
        authorized_branch_ids=authorized,
    )
    request.state.principal = principal
    return principal


def get_trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


__all__ = [
    "get_current_token_data",
    "get_scope_policy",
    "require_principal",
    "get_trace_id",
]
