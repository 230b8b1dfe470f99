from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    FORBIDDEN = ErrorDefinition(
        "FORBIDDEN",
        "Access denied",
        status.HTTP_403_FORBIDDEN,
    )
    BRANCH_SCOPE_MISMATCH = ErrorDefinition(
        "BRANCH_SCOPE_MISMATCH",
        "Branch scope mismatch",
        status.HTTP_403_FORBIDDEN,
    )
    NOT_FOUND = ErrorDefinition(
        "NOT_FOUND",
        "Resource not found",
        status.HTTP_404_NOT_FOUND,
    )
    CONFLICT = ErrorDefinition(
        "CONFLICT",
        "Conflicting state",
        status.HTTP_409_CONFLICT,
    )
    TERMINAL_STATE = ErrorDefinition(
        "TERMINAL_STATE",
        "Entity is in a terminal state",
        status.HTTP_409_CONFLICT,
    )
    ASSET_FROZEN = ErrorDefinition(
        "ASSET_FROZEN",
        "Asset is frozen by another operation",
        status.HTTP_409_CONFLICT,
    )
    LOST_RACE = ErrorDefinition(
        "LOST_RACE",
        "Concurrent update lost the race",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class ValidationError(AppError):
    """Business-rule violation; always carries every violation found."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            ErrorCatalog.VALIDATION_ERROR,
            details={"errors": self.errors, "warnings": self.warnings},
        )


class NotFoundError(AppError):
    def __init__(self, entity_name: str, key: object | None = None):
        self.entity_name = entity_name
        super().__init__(
            ErrorCatalog.NOT_FOUND,
            details={"message": f"{entity_name} not found", "key": str(key) if key is not None else None},
        )


class ForbiddenError(AppError):
    def __init__(self, message: str = "Access denied", error: ErrorDefinition = ErrorCatalog.FORBIDDEN):
        super().__init__(error, details={"message": message})


class ConflictError(AppError):
    def __init__(
        self,
        message: str,
        *,
        serials: list[str] | None = None,
        error: ErrorDefinition = ErrorCatalog.CONFLICT,
        errors: list[str] | None = None,
    ):
        self.serials = list(serials or [])
        details: dict = {"message": message}
        if self.serials:
            details["serials"] = self.serials
        if errors:
            details["errors"] = list(errors)
        super().__init__(error, details=details)


class LostRaceError(ConflictError):
    def __init__(self, message: str, *, serials: list[str] | None = None):
        super().__init__(message, serials=serials, error=ErrorCatalog.LOST_RACE)


class ConfigurationError(Exception):
    """Programming-contract violation inside the scoping layer; never a user error."""


class AuditImmutableError(Exception):
    """Raised when code tries to update or delete an audit row."""
