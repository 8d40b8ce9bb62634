from __future__ import annotations

import secrets

from .errors import ForbiddenError
from .models import Actor, UserRole


class AuthorizationGuard:
    """Ownership and role-elevation checks.

    The admin secret is handed in at construction; ``None`` means no request
    can ever be promoted to ADMIN.
    """

    def __init__(self, admin_secret: str | None = None) -> None:
        self._admin_secret = admin_secret

    def is_owner_or_elevated(self, target_user_id: int | None, actor: Actor | None) -> bool:
        if actor is None:
            return False
        if actor.role == UserRole.ADMIN:
            return True
        return target_user_id is not None and actor.user_id == target_user_id

    def require_owner_or_elevated(self, target_user_id: int | None, actor: Actor | None, action: str) -> None:
        if not self.is_owner_or_elevated(target_user_id, actor):
            raise ForbiddenError(f"Only owning user or admin may {action}")

    def can_elevate_role(self, requested_role: UserRole | None, presented_secret: str | None) -> bool:
        if requested_role != UserRole.ADMIN:
            return True
        if presented_secret is None or self._admin_secret is None:
            return False
        return secrets.compare_digest(presented_secret.encode("utf-8"), self._admin_secret.encode("utf-8"))

    def require_role_elevation(self, requested_role: UserRole | None, presented_secret: str | None) -> None:
        if not self.can_elevate_role(requested_role, presented_secret):
            raise ForbiddenError("Admin role requires a valid X-Admin-Secret")
