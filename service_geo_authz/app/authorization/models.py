"""
Authorization rule data models.
"""

from typing import Dict, Optional, List, FrozenSet, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..hierarchy.models import utcnow


class RuleType(str, Enum):
    """Rule types."""
    ALLOW = "ALLOW"
    DENY = "DENY"


class AccessLevel(str, Enum):
    """Resolved permission of a user on an area. Derived, never stored."""
    NONE = "NONE"
    READ_ONLY = "READ_ONLY"
    FULL = "FULL"


@dataclass
class AuthorizationRule:
    """Per-user, per-area ALLOW or DENY record."""
    rule_id: str
    user_id: str
    geographic_area_id: str
    rule_type: RuleType
    created_by: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class RuleSet:
    """A user's rules indexed by area.

    (user, area) is unique, so each area maps to at most one rule type.
    """

    def __init__(self, rules: Iterable[AuthorizationRule] = ()):
        self._by_area: Dict[str, RuleType] = {
            rule.geographic_area_id: rule.rule_type for rule in rules
        }

    def __len__(self) -> int:
        return len(self._by_area)

    @property
    def is_empty(self) -> bool:
        return not self._by_area

    def rule_for(self, area_id: str) -> Optional[RuleType]:
        return self._by_area.get(area_id)

    def is_denied(self, area_id: str) -> bool:
        return self._by_area.get(area_id) == RuleType.DENY

    def is_allowed(self, area_id: str) -> bool:
        return self._by_area.get(area_id) == RuleType.ALLOW

    def has_deny(self, path: Iterable[str]) -> bool:
        return any(self.is_denied(area_id) for area_id in path)

    def has_allow(self, path: Iterable[str]) -> bool:
        return any(self.is_allowed(area_id) for area_id in path)

    @property
    def allow_area_ids(self) -> List[str]:
        return [a for a, t in self._by_area.items() if t == RuleType.ALLOW]

    @property
    def area_ids(self) -> List[str]:
        return list(self._by_area)


@dataclass(frozen=True)
class AuthorizationInfo:
    """Per-user snapshot for bulk result filtering.

    ``has_restrictions=False`` with an empty set means "apply no filter",
    never "nothing is visible".
    """
    has_restrictions: bool
    authorized_area_ids: FrozenSet[str] = frozenset()
    read_only_area_ids: FrozenSet[str] = frozenset()


@dataclass
class AuthorizedArea:
    """An explicitly ruled area annotated with its effective access level."""
    area_id: str
    area_name: str
    area_type: str
    rule_type: RuleType
    access_level: AccessLevel


class RuleCreateRequest(BaseModel):
    """Request model for creating a rule."""
    geographic_area_id: str = Field(..., description="Geographic area ID")
    rule_type: RuleType = Field(..., description="ALLOW or DENY")


class RuleResponse(BaseModel):
    """Response model for rule operations."""
    rule_id: str
    user_id: str
    geographic_area_id: str
    rule_type: RuleType
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_rule(cls, rule: AuthorizationRule) -> "RuleResponse":
        return cls(
            rule_id=rule.rule_id,
            user_id=rule.user_id,
            geographic_area_id=rule.geographic_area_id,
            rule_type=rule.rule_type,
            created_by=rule.created_by,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class RuleListResponse(BaseModel):
    """Response model for rule list."""
    rules: List[RuleResponse]
    total: int


class AccessLevelResponse(BaseModel):
    user_id: str
    area_id: str
    access_level: AccessLevel


class AuthorizationInfoResponse(BaseModel):
    has_restrictions: bool
    authorized_area_ids: List[str]
    read_only_area_ids: List[str]

    @classmethod
    def from_info(cls, info: AuthorizationInfo) -> "AuthorizationInfoResponse":
        return cls(
            has_restrictions=info.has_restrictions,
            authorized_area_ids=sorted(info.authorized_area_ids),
            read_only_area_ids=sorted(info.read_only_area_ids),
        )


class AuthorizedAreaResponse(BaseModel):
    area_id: str
    area_name: str
    area_type: str
    rule_type: RuleType
    access_level: AccessLevel
