"""
角色与权限判定

认证中间件负责把 Principal 挂到 request.state 上；
这里只做纯粹的授权判断，不依赖任何框架的依赖注入容器。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional


class UserRole(str, Enum):
    """平台用户角色"""
    AUTHOR = "AUTHOR"
    READER = "READER"
    AFFILIATE = "AFFILIATE"
    CLOSER = "CLOSER"
    ADMIN = "ADMIN"


class AdminRole(str, Enum):
    """管理员子角色（SUPER_ADMIN 可访问财务数据）"""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    SUPPORT = "SUPPORT"


@dataclass(frozen=True)
class Principal:
    """已认证的请求主体"""

    user_id: str
    role: UserRole
    admin_role: Optional[AdminRole] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    email: Optional[str] = None
    profile_id: Optional[str] = None  # 作者/联盟档案ID，随角色而定


def is_authorized(
    principal: Optional[Principal],
    roles: Optional[Iterable[UserRole]] = None,
    admin_roles: Optional[Iterable[AdminRole]] = None,
    permissions: Optional[Iterable[str]] = None,
) -> bool:
    """
    判断主体是否满足访问要求

    - roles: 主体角色须在其中之一
    - admin_roles: 仅对 ADMIN 生效，子角色须在其中之一
    - permissions: 主体须拥有全部权限
    """
    if principal is None:
        return False

    if roles and principal.role not in set(roles):
        return False

    if admin_roles:
        if principal.role != UserRole.ADMIN:
            return False
        if principal.admin_role not in set(admin_roles):
            return False

    if permissions and not set(permissions).issubset(principal.permissions):
        return False

    return True
