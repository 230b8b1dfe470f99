from typing import Any

from fastapi.security import OAuth2PasswordBearer
from jose import jwt
from pydantic import BaseModel

from app.branchops.core.config import settings

# Tokens are issued by the external identity service; this side only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/branchops/auth/token", auto_error=False)


class TokenData(BaseModel):
    sub: str
    role: str
    branch_id: str | None = None


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
