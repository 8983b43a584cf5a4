"""
Access evaluation for a (user, area) pair.

Precedence, given the user's rules R and path(A) = root..A:

1. R empty                      -> FULL (user is unrestricted)
2. DENY anywhere on path(A)     -> NONE (absolute, beats any ALLOW)
3. ALLOW anywhere on path(A)    -> FULL
4. some strict descendant FULL  -> READ_ONLY (navigation only)
5. otherwise                    -> NONE
"""

import time
from dataclasses import dataclass
from typing import Dict, Iterable

from shared.logging import get_logger
from ..hierarchy.tree import AreaTree
from ..persistence.base import AreaRepository, RuleRepository
from .models import AccessLevel, RuleSet


@dataclass(frozen=True)
class AuthorizationContext:
    """Request-scoped view: one rule fetch and one tree snapshot.

    Never keep one of these across requests; rules may change in between.
    """
    user_id: str
    tree: AreaTree
    rules: RuleSet


class AccessEvaluator:
    """Resolves access levels against current rules and hierarchy."""

    def __init__(self, area_repository: AreaRepository, rule_repository: RuleRepository):
        self.areas = area_repository
        self.rules = rule_repository
        self.logger = get_logger("geo_authz.evaluator")

    async def load_context(self, user_id: str) -> AuthorizationContext:
        rules = await self.rules.find_by_user(user_id)
        areas = await self.areas.list_areas()
        return AuthorizationContext(user_id=user_id, tree=AreaTree(areas), rules=RuleSet(rules))

    async def evaluate(self, user_id: str, area_id: str) -> AccessLevel:
        """Access level of ``user_id`` on ``area_id``.

        Raises ``NotFoundError`` if the area does not exist, whether or not
        the user has rules.
        """
        start_time = time.time()
        context = await self.load_context(user_id)
        level = self.resolve(context, area_id)

        self.logger.debug(
            "Access evaluated",
            user_id=user_id,
            area_id=area_id,
            access_level=level.value,
            rule_count=len(context.rules),
            evaluation_time_ms=round((time.time() - start_time) * 1000, 3)
        )
        return level

    async def evaluate_many(self, user_id: str, area_ids: Iterable[str]) -> Dict[str, AccessLevel]:
        """Levels for every known ID in ``area_ids``; unknown IDs are skipped."""
        context = await self.load_context(user_id)
        return {
            area_id: self.resolve(context, area_id)
            for area_id in area_ids
            if area_id in context.tree
        }

    def resolve(self, context: AuthorizationContext, area_id: str) -> AccessLevel:
        path = context.tree.path_to_root(area_id)
        rules = context.rules

        if rules.is_empty:
            return AccessLevel.FULL

        if rules.has_deny(path):
            return AccessLevel.NONE

        if rules.has_allow(path):
            return AccessLevel.FULL

        if self._has_full_descendant(context, area_id):
            return AccessLevel.READ_ONLY

        return AccessLevel.NONE

    def _has_full_descendant(self, context: AuthorizationContext, area_id: str) -> bool:
        """Whether some strict descendant of ``area_id`` resolves to FULL.

        Only called once path(area_id) is known to carry no rule at all, so a
        descendant D is FULL exactly when an ALLOW area X sits in the subtree
        and path(X) holds no DENY. Walking up from each ALLOW area avoids a
        full subtree scan.
        """
        tree, rules = context.tree, context.rules
        for allow_id in rules.allow_area_ids:
            if allow_id == area_id or allow_id not in tree:
                continue
            path = tree.path_to_root(allow_id)
            if area_id in path and not rules.has_deny(path):
                return True
        return False
