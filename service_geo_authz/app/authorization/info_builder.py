"""
Derivation of the per-user authorized area set.
"""

from collections import deque
from typing import List, Set

from shared.logging import get_logger
from .evaluator import AccessEvaluator, AuthorizationContext
from .models import AuthorizationInfo, AuthorizedArea


class AuthorizationInfoBuilder:
    """Builds the flat FULL-access area set consumed by query services.

    Seeds are ALLOW areas whose own path carries no DENY. From each seed a
    breadth-first walk adds every descendant, stopping at (and excluding)
    any node with a DENY rule. The result matches the evaluator exactly:
    an area is in ``authorized_area_ids`` iff it evaluates to FULL.
    """

    def __init__(self, evaluator: AccessEvaluator):
        self.evaluator = evaluator
        self.logger = get_logger("geo_authz.info_builder")

    async def build_info(self, user_id: str) -> AuthorizationInfo:
        context = await self.evaluator.load_context(user_id)
        info = self.build_from_context(context)

        self.logger.debug(
            "Authorization info built",
            user_id=user_id,
            has_restrictions=info.has_restrictions,
            authorized_count=len(info.authorized_area_ids),
            read_only_count=len(info.read_only_area_ids)
        )
        return info

    def build_from_context(self, context: AuthorizationContext) -> AuthorizationInfo:
        if context.rules.is_empty:
            return AuthorizationInfo(has_restrictions=False)

        seeds = self._seeds(context)
        authorized = self._expand(context, seeds)

        read_only: Set[str] = set()
        for seed in seeds:
            read_only.update(context.tree.path_to_root(seed)[:-1])
        read_only -= authorized

        return AuthorizationInfo(
            has_restrictions=True,
            authorized_area_ids=frozenset(authorized),
            read_only_area_ids=frozenset(read_only),
        )

    def _seeds(self, context: AuthorizationContext) -> List[str]:
        tree, rules = context.tree, context.rules
        seeds = []
        for area_id in rules.allow_area_ids:
            # Rules can outlive their area
            if area_id not in tree:
                continue
            if not rules.has_deny(tree.path_to_root(area_id)):
                seeds.append(area_id)
        return seeds

    @staticmethod
    def _expand(context: AuthorizationContext, seeds: List[str]) -> Set[str]:
        tree, rules = context.tree, context.rules
        authorized: Set[str] = set()
        queue = deque(seeds)

        while queue:
            area_id = queue.popleft()
            if area_id in authorized or rules.is_denied(area_id):
                continue
            authorized.add(area_id)
            queue.extend(tree.child_ids(area_id))

        return authorized

    async def authorized_areas(self, user_id: str) -> List[AuthorizedArea]:
        """Explicitly ruled areas with their effective access level."""
        context = await self.evaluator.load_context(user_id)
        result = []
        for area_id in context.rules.area_ids:
            area = context.tree.get(area_id)
            if area is None:
                continue
            result.append(AuthorizedArea(
                area_id=area.id,
                area_name=area.name,
                area_type=area.area_type,
                rule_type=context.rules.rule_for(area_id),
                access_level=self.evaluator.resolve(context, area_id),
            ))

        result.sort(key=lambda a: (a.area_name, a.area_id))
        return result
