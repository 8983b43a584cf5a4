"""
CRUD over per-user geographic authorization rules.
"""

import uuid
from typing import List, Optional

from shared.errors import NotFoundError
from shared.logging import get_logger
from ..persistence.base import AreaRepository, RuleRepository
from .models import AuthorizationRule, RuleType


class RuleStore:
    """Rule persistence with the (user, area) uniqueness invariant.

    Cascades (dropping rules when a user or area goes away) are not handled
    here.
    """

    def __init__(self, rule_repository: RuleRepository, area_repository: AreaRepository):
        self.rules = rule_repository
        self.areas = area_repository
        self.logger = get_logger("geo_authz.rule_store")

    async def rules_for_user(self, user_id: str) -> List[AuthorizationRule]:
        return await self.rules.find_by_user(user_id)

    async def get(self, rule_id: str) -> Optional[AuthorizationRule]:
        return await self.rules.get(rule_id)

    async def create(
        self,
        user_id: str,
        area_id: str,
        rule_type: RuleType,
        created_by: str,
    ) -> AuthorizationRule:
        """Create a rule; a second rule for the same pair is rejected."""
        if await self.areas.get_area(area_id) is None:
            raise NotFoundError("Geographic area not found", {"area_id": area_id})

        rule = AuthorizationRule(
            rule_id=str(uuid.uuid4()),
            user_id=user_id,
            geographic_area_id=area_id,
            rule_type=RuleType(rule_type),
            created_by=created_by,
        )
        # The repository raises ConflictError on a duplicate (user, area)
        rule = await self.rules.insert(rule)

        self.logger.info(
            "Rule created",
            rule_id=rule.rule_id,
            user_id=user_id,
            area_id=area_id,
            rule_type=rule.rule_type.value,
            created_by=created_by
        )
        return rule

    async def delete(self, rule_id: str, user_id: Optional[str] = None) -> AuthorizationRule:
        """Delete a rule by ID.

        When ``user_id`` is given the rule must belong to that user, so a
        rule ID cannot be deleted through another user's path.
        """
        rule = await self.rules.get(rule_id)
        if rule is None or (user_id is not None and rule.user_id != user_id):
            raise NotFoundError("Authorization rule not found", {"rule_id": rule_id})

        if not await self.rules.delete(rule_id):
            raise NotFoundError("Authorization rule not found", {"rule_id": rule_id})

        self.logger.info("Rule deleted", rule_id=rule_id, user_id=rule.user_id)
        return rule

    async def delete_for_area(self, user_id: str, area_id: str) -> AuthorizationRule:
        rule = await self.rules.find_by_user_and_area(user_id, area_id)
        if rule is None:
            raise NotFoundError(
                "Authorization rule not found",
                {"user_id": user_id, "area_id": area_id}
            )
        return await self.delete(rule.rule_id)
