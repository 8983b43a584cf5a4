"""
Administrative operations on geographic areas.
"""

import uuid
from dataclasses import replace
from typing import List, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..persistence.base import AreaRepository, RuleRepository
from .batch import validate_area_id
from .models import GeographicArea, utcnow
from .tree import AreaTree


_UNSET = object()


class GeographicAreaService:
    """Creates, edits and removes areas while keeping the forest acyclic.

    Deletion is blocked while the area still has children or authorization
    rules pointing at it.
    """

    def __init__(self, area_repository: AreaRepository, rule_repository: RuleRepository):
        self.areas = area_repository
        self.rules = rule_repository
        self.logger = get_logger("geo_authz.areas")

    async def get_area(self, area_id: str) -> GeographicArea:
        area = await self.areas.get_area(area_id)
        if area is None:
            raise NotFoundError("Geographic area not found", {"area_id": area_id})
        return area

    async def create_area(self, name: str, area_type: str, parent_area_id: Optional[str] = None) -> GeographicArea:
        if not name or not name.strip():
            raise ValidationError("Geographic area name is required")
        if not area_type or not area_type.strip():
            raise ValidationError("Geographic area type is required")

        if parent_area_id is not None:
            validate_area_id(parent_area_id)
            if await self.areas.get_area(parent_area_id) is None:
                raise NotFoundError("Parent geographic area not found", {"area_id": parent_area_id})

        area = GeographicArea(
            id=str(uuid.uuid4()),
            name=name.strip(),
            area_type=area_type.strip(),
            parent_area_id=parent_area_id,
        )
        area = await self.areas.create_area(area)

        self.logger.info(
            "Area created",
            area_id=area.id,
            name=area.name,
            area_type=area.area_type,
            parent_area_id=parent_area_id
        )
        return area

    async def update_area(
        self,
        area_id: str,
        name: Optional[str] = None,
        area_type: Optional[str] = None,
        parent_area_id=_UNSET,
    ) -> GeographicArea:
        """Update fields; ``parent_area_id=None`` moves the area to the top level."""
        existing = await self.get_area(area_id)
        changes = {}

        if name is not None:
            if not name.strip():
                raise ValidationError("Geographic area name is required")
            changes["name"] = name.strip()

        if area_type is not None:
            if not area_type.strip():
                raise ValidationError("Geographic area type is required")
            changes["area_type"] = area_type.strip()

        if parent_area_id is not _UNSET:
            if parent_area_id is not None:
                await self._check_reparent(area_id, parent_area_id)
            changes["parent_area_id"] = parent_area_id

        updated = replace(existing, updated_at=utcnow(), **changes)
        updated = await self.areas.update_area(updated)

        self.logger.info("Area updated", area_id=area_id, fields=sorted(changes))
        return updated

    async def _check_reparent(self, area_id: str, parent_area_id: str) -> None:
        validate_area_id(parent_area_id)
        if parent_area_id == area_id:
            raise ValidationError("Geographic area cannot be its own parent", {"area_id": area_id})

        tree = AreaTree(await self.areas.list_areas())
        if parent_area_id not in tree:
            raise NotFoundError("Parent geographic area not found", {"area_id": parent_area_id})

        if tree.is_ancestor_of(area_id, parent_area_id):
            raise ValidationError(
                "Cannot create circular parent-child relationship",
                {"area_id": area_id, "parent_area_id": parent_area_id}
            )

    async def delete_area(self, area_id: str) -> None:
        await self.get_area(area_id)

        child_count = await self.areas.count_children(area_id)
        if child_count > 0:
            raise ConflictError(
                f"Cannot delete geographic area. It has {child_count} child geographic area(s)",
                {"area_id": area_id, "child_count": child_count}
            )

        rule_count = await self.rules.count_for_area(area_id)
        if rule_count > 0:
            raise ConflictError(
                f"Cannot delete geographic area. It is referenced by {rule_count} authorization rule(s)",
                {"area_id": area_id, "rule_count": rule_count}
            )

        if not await self.areas.delete_area(area_id):
            raise NotFoundError("Geographic area not found", {"area_id": area_id})

        self.logger.info("Area deleted", area_id=area_id)

    async def get_children(self, area_id: str) -> List[GeographicArea]:
        tree = AreaTree(await self.areas.list_areas())
        return tree.children_of(area_id)

    async def get_ancestors(self, area_id: str) -> List[GeographicArea]:
        """Full ancestor chain, closest first."""
        tree = AreaTree(await self.areas.list_areas())
        return tree.ancestors_of(area_id)
