"""
Bulk hierarchy lookups with authorization-aware filtering.

Missing or unauthorized IDs are omitted from the result maps instead of
failing the whole call.
"""

import uuid
from typing import Dict, Iterable, List, Optional, Sequence, Set

from shared.errors import ValidationError
from shared.logging import get_logger
from ..authorization.evaluator import AccessEvaluator, AuthorizationContext
from ..authorization.models import AccessLevel
from ..persistence.base import AreaRepository
from .models import AreaDetail
from .tree import AreaTree


MAX_BATCH_SIZE = 100


def validate_area_id(area_id: object) -> str:
    if not isinstance(area_id, str):
        raise ValidationError("Invalid id format", {"area_id": area_id})
    try:
        uuid.UUID(area_id)
    except ValueError:
        raise ValidationError("Invalid id format", {"area_id": area_id})
    return area_id


class BatchHierarchyQuery:
    """Descendant, ancestor and detail lookups over many areas at once."""

    def __init__(
        self,
        area_repository: AreaRepository,
        evaluator: AccessEvaluator,
        admin_roles: Iterable[str] = ("ADMINISTRATOR",),
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        self.areas = area_repository
        self.evaluator = evaluator
        self.admin_roles = frozenset(admin_roles)
        self.max_batch_size = max_batch_size
        self.logger = get_logger("geo_authz.batch")

    async def batch_descendants(self, area_ids: Iterable[str]) -> Set[str]:
        """Strict descendants of all inputs, minus the inputs themselves."""
        tree = AreaTree(await self.areas.list_areas())
        return tree.descendants_of(area_ids)

    async def batch_ancestors(
        self,
        area_ids: Sequence[str],
        user_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        """Immediate parent of each input ID (one hop, not the chain)."""
        ids = self._validate(area_ids)
        bypass = self._bypasses(user_id, role)
        tree, context = await self._load(user_id, bypass)

        result: Dict[str, Optional[str]] = {}
        for area_id in ids:
            if area_id not in tree:
                continue
            if not bypass and self.evaluator.resolve(context, area_id) == AccessLevel.NONE:
                continue
            result[area_id] = tree.parent_of(area_id)

        self.logger.debug(
            "Batch ancestors resolved",
            requested=len(ids),
            returned=len(result),
            filtered=not bypass
        )
        return result

    async def batch_details(
        self,
        area_ids: Sequence[str],
        user_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Dict[str, AreaDetail]:
        """Detail rows for the requested IDs that exist and are visible."""
        ids = self._validate(area_ids)
        bypass = self._bypasses(user_id, role)
        tree, context = await self._load(user_id, bypass)

        result: Dict[str, AreaDetail] = {}
        for area_id in ids:
            area = tree.get(area_id)
            if area is None:
                continue
            if not bypass and self.evaluator.resolve(context, area_id) == AccessLevel.NONE:
                continue
            result[area_id] = AreaDetail.from_area(area, tree.child_count(area_id))

        self.logger.debug(
            "Batch details resolved",
            requested=len(ids),
            returned=len(result),
            filtered=not bypass
        )
        return result

    def _bypasses(self, user_id: Optional[str], role: Optional[str]) -> bool:
        return user_id is None or role in self.admin_roles

    async def _load(self, user_id: Optional[str], bypass: bool):
        if bypass:
            return AreaTree(await self.areas.list_areas()), None
        context: AuthorizationContext = await self.evaluator.load_context(user_id)
        return context.tree, context

    def _validate(self, area_ids: Sequence[str]) -> List[str]:
        if area_ids is None or len(area_ids) == 0:
            raise ValidationError("At least one area ID is required")
        if len(area_ids) > self.max_batch_size:
            raise ValidationError(
                f"Cannot request more than {self.max_batch_size} area IDs at once",
                {"size": len(area_ids), "max": self.max_batch_size}
            )

        ids: List[str] = []
        seen: Set[str] = set()
        for area_id in area_ids:
            validate_area_id(area_id)
            if area_id not in seen:
                seen.add(area_id)
                ids.append(area_id)
        return ids
