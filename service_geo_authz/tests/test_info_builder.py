"""
Unit tests for AuthorizationInfoBuilder.
"""

import pytest

from service_geo_authz.app.authorization.evaluator import AccessEvaluator
from service_geo_authz.app.authorization.info_builder import AuthorizationInfoBuilder
from service_geo_authz.app.authorization.models import AccessLevel, RuleType
from service_geo_authz.app.persistence.memory import InMemoryAreaRepository, InMemoryRuleRepository
from service_geo_authz.tests.factories import TestDataFactory

ALLOW = RuleType.ALLOW
DENY = RuleType.DENY
USER = "user-1"


def make_builder(hierarchy, rules=()):
    rule_rows = [
        TestDataFactory.create_rule(USER, hierarchy[name], rule_type)
        for name, rule_type in rules
    ]
    evaluator = AccessEvaluator(InMemoryAreaRepository(hierarchy.areas), InMemoryRuleRepository(rule_rows))
    return AuthorizationInfoBuilder(evaluator)


RULE_SETS = [
    [("country", ALLOW)],
    [("block1", ALLOW)],
    [("block2", DENY)],
    [("country", ALLOW), ("city1", DENY)],
    [("block1", ALLOW), ("city2", DENY)],
    [("province1", DENY), ("block1", ALLOW), ("neighbourhood2", ALLOW)],
    [("country", DENY), ("province2", ALLOW)],
    [("province1", ALLOW), ("city1", DENY), ("block1", ALLOW), ("city2", ALLOW)],
    [("country", ALLOW), ("neighbourhood1", DENY), ("neighbourhood2", DENY)],
]


class TestAuthorizationInfoBuilder:
    """Test cases for AuthorizationInfoBuilder."""

    @pytest.fixture
    def chain(self):
        """Create the five-level chain."""
        return TestDataFactory.create_chain()

    @pytest.fixture
    def branches(self):
        """Create the two-branch hierarchy."""
        return TestDataFactory.create_two_branches()

    @pytest.mark.asyncio
    async def test_no_rules_means_no_restrictions(self, chain):
        """Test authorization info with no rules."""
        builder = make_builder(chain)

        info = await builder.build_info(USER)

        assert info.has_restrictions is False
        assert info.authorized_area_ids == frozenset()
        assert info.read_only_area_ids == frozenset()

    @pytest.mark.asyncio
    async def test_allow_country_deny_city(self, chain):
        """Test ALLOW on country with DENY on city."""
        builder = make_builder(chain, [("country", ALLOW), ("city", DENY)])

        info = await builder.build_info(USER)

        assert info.has_restrictions is True
        assert info.authorized_area_ids == {chain["country"], chain["province"]}

    @pytest.mark.asyncio
    async def test_allow_block_read_only_ancestors(self, chain):
        """Test read-only ancestors of an ALLOW on block."""
        builder = make_builder(chain, [("block", ALLOW)])

        info = await builder.build_info(USER)

        assert info.authorized_area_ids == {chain["block"]}
        assert info.read_only_area_ids == {
            chain["country"], chain["province"], chain["city"], chain["neighbourhood"]
        }

    @pytest.mark.asyncio
    async def test_deny_only_is_restricted_and_empty(self, chain):
        """Test DENY-only rules."""
        builder = make_builder(chain, [("block", DENY)])

        info = await builder.build_info(USER)

        assert info.has_restrictions is True
        assert info.authorized_area_ids == frozenset()
        assert info.read_only_area_ids == frozenset()

    @pytest.mark.asyncio
    async def test_allow_shadowed_by_ancestor_deny_is_not_a_seed(self, chain):
        """Test ALLOW shadowed by an ancestor DENY."""
        builder = make_builder(chain, [("city", DENY), ("block", ALLOW)])

        info = await builder.build_info(USER)

        assert info.authorized_area_ids == frozenset()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rules", RULE_SETS)
    async def test_set_matches_evaluator(self, branches, rules):
        """Test authorized and read-only sets match evaluation."""
        builder = make_builder(branches, rules)

        info = await builder.build_info(USER)

        for area_id in branches.ids.values():
            level = await builder.evaluator.evaluate(USER, area_id)
            assert (area_id in info.authorized_area_ids) == (level == AccessLevel.FULL)
            assert (area_id in info.read_only_area_ids) == (level == AccessLevel.READ_ONLY)

    @pytest.mark.asyncio
    async def test_authorized_areas_lists_explicit_rules(self, chain):
        """Test listing explicitly ruled areas."""
        builder = make_builder(chain, [("country", ALLOW), ("city", DENY)])

        areas = await builder.authorized_areas(USER)

        by_id = {a.area_id: a for a in areas}
        assert set(by_id) == {chain["country"], chain["city"]}
        assert by_id[chain["country"]].access_level == AccessLevel.FULL
        assert by_id[chain["country"]].rule_type == ALLOW
        assert by_id[chain["city"]].access_level == AccessLevel.NONE
        assert by_id[chain["city"]].area_type == "CITY"

    @pytest.mark.asyncio
    async def test_authorized_areas_effective_level_for_shadowed_allow(self, chain):
        """Test effective level of a shadowed ALLOW."""
        builder = make_builder(chain, [("province", DENY), ("block", ALLOW)])

        areas = await builder.authorized_areas(USER)

        block = next(a for a in areas if a.area_id == chain["block"])
        assert block.rule_type == ALLOW
        assert block.access_level == AccessLevel.NONE

    @pytest.mark.asyncio
    async def test_authorized_areas_empty_without_rules(self, chain):
        """Test listing with no rules."""
        builder = make_builder(chain)

        assert await builder.authorized_areas(USER) == []
