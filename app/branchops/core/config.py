from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_roles(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(item.strip().upper() for item in items if item and item.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "BRANCHOPS"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    DATABASE_URL: str = "sqlite+pysqlite:///./branchops.db"
    LOG_LEVEL: str = "INFO"
    GLOBAL_ROLES: str = "SUPER_ADMIN,MANAGEMENT"
    BRANCH_BOUND_ADMIN_ROLES: str = "ADMIN_AFFAIRS,CS_SUPERVISOR,CENTER_MANAGER"
    APPROVAL_COST_THRESHOLD: float = 500.0
    TRANSITION_RETRY_LIMIT: int = 1
    HEAD_OFFICE_BRANCH_CODE: str = "HQ"
    HEAD_OFFICE_BRANCH_NAME: str = "Head Office"

    @field_validator("TRANSITION_RETRY_LIMIT")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("TRANSITION_RETRY_LIMIT must be >= 0")
        return value

    @property
    def global_roles(self) -> tuple[str, ...]:
        return _split_roles(self.GLOBAL_ROLES)

    @property
    def branch_bound_admin_roles(self) -> tuple[str, ...]:
        return _split_roles(self.BRANCH_BOUND_ADMIN_ROLES)


settings = Settings()
