"""认证主体 - 由认证层注入的调用者身份"""
from __future__ import annotations

from dataclasses import dataclass

from domain.common.exceptions import ForbiddenException


ADMIN_ROLES = frozenset({"ADMIN", "SUPER_ADMIN"})


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = "CUSTOMER"

    @property
    def is_admin(self) -> bool:
        return self.role.upper() in ADMIN_ROLES

    def can_access(self, owner_id: str) -> bool:
        """资源所有者或管理员可访问"""
        return self.is_admin or self.user_id == owner_id

    def ensure_owner_or_admin(self, owner_id: str) -> None:
        if not self.can_access(owner_id):
            raise ForbiddenException()

    def ensure_admin(self) -> None:
        if not self.is_admin:
            raise ForbiddenException("Admin privileges required")
