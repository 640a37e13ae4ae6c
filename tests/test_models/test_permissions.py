"""
角色与权限判定测试
"""

import pytest

from bookproof.core.permissions import AdminRole, Principal, UserRole, is_authorized


def principal(role, admin_role=None, permissions=()):
    return Principal(user_id="user_1", role=role, admin_role=admin_role, permissions=frozenset(permissions))


class TestIsAuthorized:

    def test_anonymous_is_never_authorized(self):
        assert is_authorized(None) is False
        assert is_authorized(None, roles=[UserRole.AUTHOR]) is False

    def test_no_requirements_allows_any_principal(self):
        assert is_authorized(principal(UserRole.READER)) is True

    @pytest.mark.parametrize("role,expected", [
        (UserRole.AUTHOR, True),
        (UserRole.AFFILIATE, True),
        (UserRole.READER, False),
        (UserRole.ADMIN, False),
    ])
    def test_role_must_match(self, role, expected):
        assert is_authorized(principal(role), roles=[UserRole.AUTHOR, UserRole.AFFILIATE]) is expected

    def test_admin_roles_require_admin(self):
        finance = [AdminRole.SUPER_ADMIN]

        assert is_authorized(principal(UserRole.ADMIN, AdminRole.SUPER_ADMIN), admin_roles=finance) is True
        assert is_authorized(principal(UserRole.ADMIN, AdminRole.MODERATOR), admin_roles=finance) is False
        # 非管理员即使带有子角色也不通过
        assert is_authorized(principal(UserRole.AUTHOR, AdminRole.SUPER_ADMIN), admin_roles=finance) is False

    def test_all_permissions_required(self):
        required = ["payments:record", "credits:write"]

        assert is_authorized(principal(UserRole.AUTHOR, permissions=required), permissions=required) is True
        assert is_authorized(
            principal(UserRole.AUTHOR, permissions=["payments:record"]),
            permissions=required
        ) is False
