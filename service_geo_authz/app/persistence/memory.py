"""
Dict-backed repositories, used for local runs and the test suites.
"""

import asyncio
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from shared.errors import ConflictError
from shared.logging import get_logger
from ..authorization.models import AuthorizationRule
from ..hierarchy.models import GeographicArea
from .base import AreaRepository, RuleRepository


class InMemoryAreaRepository(AreaRepository):
    """Areas held in a dict. Rows are copied in and out."""

    def __init__(self, areas: Iterable[GeographicArea] = ()):
        self.logger = get_logger("geo_authz.persistence.memory")
        self._areas: Dict[str, GeographicArea] = {a.id: replace(a) for a in areas}

    async def list_areas(self) -> List[GeographicArea]:
        return [replace(a) for a in self._areas.values()]

    async def get_area(self, area_id: str) -> Optional[GeographicArea]:
        area = self._areas.get(area_id)
        return replace(area) if area else None

    async def create_area(self, area: GeographicArea) -> GeographicArea:
        if area.id in self._areas:
            raise ConflictError("Geographic area already exists", {"area_id": area.id})
        self._areas[area.id] = replace(area)
        return replace(area)

    async def update_area(self, area: GeographicArea) -> GeographicArea:
        self._areas[area.id] = replace(area)
        return replace(area)

    async def delete_area(self, area_id: str) -> bool:
        return self._areas.pop(area_id, None) is not None

    async def count_children(self, area_id: str) -> int:
        return sum(1 for a in self._areas.values() if a.parent_area_id == area_id)


class InMemoryRuleRepository(RuleRepository):
    """Rules held in a dict, with a lock around check-then-insert."""

    def __init__(self, rules: Iterable[AuthorizationRule] = ()):
        self.logger = get_logger("geo_authz.persistence.memory")
        self._rules: Dict[str, AuthorizationRule] = {}
        self._lock = asyncio.Lock()
        for rule in rules:
            self._rules[rule.rule_id] = replace(rule)

    async def find_by_user(self, user_id: str) -> List[AuthorizationRule]:
        rules = [replace(r) for r in self._rules.values() if r.user_id == user_id]
        rules.sort(key=lambda r: r.created_at)
        return rules

    async def find_by_user_and_area(self, user_id: str, area_id: str) -> Optional[AuthorizationRule]:
        for rule in self._rules.values():
            if rule.user_id == user_id and rule.geographic_area_id == area_id:
                return replace(rule)
        return None

    async def get(self, rule_id: str) -> Optional[AuthorizationRule]:
        rule = self._rules.get(rule_id)
        return replace(rule) if rule else None

    async def insert(self, rule: AuthorizationRule) -> AuthorizationRule:
        async with self._lock:
            if await self.find_by_user_and_area(rule.user_id, rule.geographic_area_id):
                raise ConflictError(
                    "Authorization rule already exists for this user and geographic area",
                    {"user_id": rule.user_id, "geographic_area_id": rule.geographic_area_id}
                )
            self._rules[rule.rule_id] = replace(rule)
        return replace(rule)

    async def delete(self, rule_id: str) -> bool:
        async with self._lock:
            return self._rules.pop(rule_id, None) is not None

    async def count_for_area(self, area_id: str) -> int:
        return sum(1 for r in self._rules.values() if r.geographic_area_id == area_id)
