"""
Access assertions used by the administrative surface.
"""

from typing import FrozenSet, Iterable, Optional

from shared.errors import AuthorizationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .evaluator import AccessEvaluator
from .models import AccessLevel


_RANK = {AccessLevel.NONE: 0, AccessLevel.READ_ONLY: 1, AccessLevel.FULL: 2}


def satisfies(level: AccessLevel, required: AccessLevel) -> bool:
    return _RANK[level] >= _RANK[required]


class AuthorizationGuard:
    """Raises ``AuthorizationError`` when a caller lacks the required level.

    Geographic checks skip callers whose role is administrator-equivalent and
    anonymous internal calls (no user ID). Role checks skip nobody.
    """

    def __init__(
        self,
        evaluator: AccessEvaluator,
        admin_roles: Iterable[str] = ("ADMINISTRATOR",),
        metrics: Optional[MetricsCollector] = None,
        editor_roles: Iterable[str] = ("ADMINISTRATOR", "EDITOR"),
    ):
        self.evaluator = evaluator
        self.admin_roles = frozenset(admin_roles)
        self.editor_roles = frozenset(editor_roles) | self.admin_roles
        self.metrics = metrics
        self.logger = get_logger("geo_authz.guard")

    def bypasses(self, user_id: Optional[str], role: Optional[str]) -> bool:
        return user_id is None or role in self.admin_roles

    def require_role(
        self,
        user_id: Optional[str],
        role: Optional[str],
        allowed: FrozenSet[str],
        resource_type: str,
        action: str,
    ) -> None:
        if role in allowed:
            return

        self.log_denial(user_id, resource_type, None, action, reason="FORBIDDEN")
        raise AuthorizationError(
            "Insufficient permissions",
            {"required": sorted(allowed), "user_role": role},
            code="FORBIDDEN"
        )

    def require_admin(self, user_id: Optional[str], role: Optional[str], action: str = "manage") -> None:
        """Rule management is reserved for administrator roles."""
        self.require_role(user_id, role, self.admin_roles, "authorization_rule", action)

    def require_editor(self, user_id: Optional[str], role: Optional[str], action: str = "write") -> None:
        """Area writes need an editor or administrator role."""
        self.require_role(user_id, role, self.editor_roles, "geographic_area", action)

    async def require_access(
        self,
        user_id: Optional[str],
        role: Optional[str],
        area_id: str,
        required: AccessLevel = AccessLevel.FULL,
        action: str = "read",
    ) -> None:
        if self.bypasses(user_id, role):
            return

        level = await self.evaluator.evaluate(user_id, area_id)
        if not satisfies(level, required):
            self.log_denial(user_id, "geographic_area", area_id, action)
            raise AuthorizationError(
                "You do not have permission to access this geographic area",
                {"area_id": area_id, "required": required.value, "actual": level.value}
            )

    async def require_create(self, user_id: Optional[str], role: Optional[str], parent_area_id: Optional[str]) -> None:
        """Restricted users may only create areas under a FULL-access parent."""
        if self.bypasses(user_id, role):
            return

        if parent_area_id is None:
            rules = await self.evaluator.rules.find_by_user(user_id)
            if rules:
                self.log_denial(user_id, "geographic_area", None, "create", reason="CANNOT_CREATE_TOP_LEVEL_AREA")
                raise AuthorizationError(
                    "Users with geographic restrictions cannot create top-level geographic areas",
                    code="CANNOT_CREATE_TOP_LEVEL_AREA"
                )
            return

        await self.require_access(user_id, role, parent_area_id, AccessLevel.FULL, action="create")

    def log_denial(
        self,
        user_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        reason: str = "GEOGRAPHIC_AUTHORIZATION_DENIED",
    ) -> None:
        self.logger.warning(
            "Business event",
            event_type="authorization_denied",
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            reason=reason
        )
        if self.metrics is not None:
            self.metrics.increment_counter("authorization_denials_total", resource_type=resource_type)
            self.metrics.record_business_event("authorization_denied")
