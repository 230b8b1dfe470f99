from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.branchops.core.security import decode_token


class PrincipalContextMiddleware(BaseHTTPMiddleware):
    """Expose the caller's identity claims on ``request.state`` for request logging.

    Authorization never reads these values; routes resolve a full principal
    through ``require_principal``.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.user_id = None
        request.state.role = None
        request.state.branch_id = None

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.lower().startswith("bearer "):
            token = auth_header.split(" ", 1)[1]
            try:
                payload = decode_token(token)
            except JWTError:
                payload = {}
            request.state.user_id = payload.get("sub")
            request.state.role = payload.get("role")
            request.state.branch_id = payload.get("branch_id")

        return await call_next(request)
