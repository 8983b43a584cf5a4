"""
Storage interfaces consumed by the authorization engine.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..authorization.models import AuthorizationRule
from ..hierarchy.models import GeographicArea


class AreaRepository(ABC):
    """Read/write access to geographic areas."""

    async def start(self):
        """Open connections. No-op by default."""

    async def stop(self):
        """Release connections. No-op by default."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def list_areas(self) -> List[GeographicArea]:
        """Every area; the evaluator materializes its tree from this."""

    @abstractmethod
    async def get_area(self, area_id: str) -> Optional[GeographicArea]:
        ...

    @abstractmethod
    async def create_area(self, area: GeographicArea) -> GeographicArea:
        ...

    @abstractmethod
    async def update_area(self, area: GeographicArea) -> GeographicArea:
        ...

    @abstractmethod
    async def delete_area(self, area_id: str) -> bool:
        ...

    @abstractmethod
    async def count_children(self, area_id: str) -> int:
        ...


class RuleRepository(ABC):
    """Per-user authorization rule rows.

    Implementations must enforce (user_id, geographic_area_id) uniqueness
    atomically and raise ``ConflictError`` on a duplicate insert.
    """

    async def start(self):
        """Open connections. No-op by default."""

    async def stop(self):
        """Release connections. No-op by default."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def find_by_user(self, user_id: str) -> List[AuthorizationRule]:
        ...

    @abstractmethod
    async def find_by_user_and_area(self, user_id: str, area_id: str) -> Optional[AuthorizationRule]:
        ...

    @abstractmethod
    async def get(self, rule_id: str) -> Optional[AuthorizationRule]:
        ...

    @abstractmethod
    async def insert(self, rule: AuthorizationRule) -> AuthorizationRule:
        ...

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        ...

    @abstractmethod
    async def count_for_area(self, area_id: str) -> int:
        """Number of rules (any user) referencing an area."""
