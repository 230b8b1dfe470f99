import pytest
from pydantic import ValidationError

from app.branchops.core.config import Settings
from app.branchops.core.error_catalog import ConfigurationError
from app.branchops.core.scope import RoleConfiguration


def test_role_lists_are_split_and_normalized():
    settings = Settings(GLOBAL_ROLES="super_admin, management ,", BRANCH_BOUND_ADMIN_ROLES="cs_supervisor")
    assert settings.global_roles == ("SUPER_ADMIN", "MANAGEMENT")
    assert settings.branch_bound_admin_roles == ("CS_SUPERVISOR",)


def test_defaults():
    settings = Settings()
    assert settings.APPROVAL_COST_THRESHOLD == 500.0
    assert settings.TRANSITION_RETRY_LIMIT == 1
    assert "SUPER_ADMIN" in settings.global_roles


def test_negative_retry_limit_is_rejected():
    with pytest.raises(ValidationError):
        Settings(TRANSITION_RETRY_LIMIT=-1)


def test_overlapping_role_settings_fail_fast():
    settings = Settings(GLOBAL_ROLES="SUPER_ADMIN,CS_SUPERVISOR", BRANCH_BOUND_ADMIN_ROLES="CS_SUPERVISOR")
    with pytest.raises(ConfigurationError):
        RoleConfiguration.build(settings.global_roles, settings.branch_bound_admin_roles)
