"""
Geographic Authorization service.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import Depends, Header, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .authorization.evaluator import AccessEvaluator
from .authorization.guard import AuthorizationGuard
from .authorization.info_builder import AuthorizationInfoBuilder
from .authorization.models import (
    AccessLevel, AccessLevelResponse, AuthorizationInfoResponse,
    AuthorizedAreaResponse, RuleCreateRequest, RuleListResponse, RuleResponse,
)
from .authorization.rule_store import RuleStore
from .hierarchy.batch import BatchHierarchyQuery, validate_area_id
from .hierarchy.models import (
    AreaCreateRequest, AreaDetail, AreaUpdateRequest, BatchAncestorsResponse,
    BatchAreaRequest, BatchDescendantsResponse, BatchDetailsResponse, GeographicArea,
)
from .hierarchy.service import GeographicAreaService
from .hierarchy.tree import AreaTree
from .persistence.base import AreaRepository, RuleRepository
from .persistence.memory import InMemoryAreaRepository, InMemoryRuleRepository
from .persistence.postgres import PostgresAreaRepository, PostgresDatabase, PostgresRuleRepository


SERVICE_NAME = "geo_authz"
SERVICE_PORT = 8020


@dataclass
class Caller:
    """Identity forwarded by the upstream gateway."""
    user_id: Optional[str]
    role: Optional[str]


async def get_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Caller:
    return Caller(user_id=x_user_id, role=x_user_role)


def build_repositories(config: ServiceConfig):
    """Pick repositories for the configured backend."""
    if config.persistence_backend == "postgres":
        db = PostgresDatabase(
            config.postgres_dsn,
            min_size=config.postgres_min_pool_size,
            max_size=config.postgres_max_pool_size,
            command_timeout=config.postgres_command_timeout,
        )
        return PostgresAreaRepository(db), PostgresRuleRepository(db)
    return InMemoryAreaRepository(), InMemoryRuleRepository()


class GeoAuthorizationService(BaseService):
    """Geographic authorization service implementation."""

    def __init__(
        self,
        area_repository: Optional[AreaRepository] = None,
        rule_repository: Optional[RuleRepository] = None,
        config: Optional[ServiceConfig] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)

        if area_repository is None or rule_repository is None:
            default_areas, default_rules = build_repositories(self.config)
            area_repository = area_repository or default_areas
            rule_repository = rule_repository or default_rules

        self.area_repository = area_repository
        self.rule_repository = rule_repository

        self.evaluator = AccessEvaluator(area_repository, rule_repository)
        self.rule_store = RuleStore(rule_repository, area_repository)
        self.info_builder = AuthorizationInfoBuilder(self.evaluator)
        self.batch_query = BatchHierarchyQuery(
            area_repository,
            self.evaluator,
            admin_roles=self.config.admin_roles,
            max_batch_size=self.config.batch_max_size,
        )
        self.area_service = GeographicAreaService(area_repository, rule_repository)
        self.guard = AuthorizationGuard(
            self.evaluator,
            self.config.admin_roles,
            self.metrics,
            editor_roles=self.config.editor_roles,
        )

        self._setup_authorization_routes()
        self._setup_area_routes()

    def _setup_authorization_routes(self):
        """Set up authorization routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Geographic Authorization Service",
                "version": "1.0.0",
                "capabilities": ["access_evaluation", "authorization_info", "batch_hierarchy"]
            }

        @self.app.get("/users/{user_id}/access/{area_id}", response_model=AccessLevelResponse)
        async def evaluate_access(user_id: str, area_id: str):
            """Access level of a user on one area."""
            with self.metrics.time_operation("access_evaluation_duration_seconds", operation="evaluate"):
                level = await self.evaluator.evaluate(user_id, area_id)

            self.metrics.increment_counter("access_evaluations_total", level=level.value)
            return AccessLevelResponse(user_id=user_id, area_id=area_id, access_level=level)

        @self.app.get("/users/{user_id}/authorization-info", response_model=AuthorizationInfoResponse)
        async def authorization_info(user_id: str):
            """Authorized area set for bulk filtering."""
            with self.metrics.time_operation("access_evaluation_duration_seconds", operation="build_info"):
                info = await self.info_builder.build_info(user_id)
            return AuthorizationInfoResponse.from_info(info)

        @self.app.get("/users/{user_id}/authorized-areas", response_model=List[AuthorizedAreaResponse])
        async def authorized_areas(user_id: str, caller: Caller = Depends(get_caller)):
            """Explicitly ruled areas with effective access levels."""
            self.guard.require_admin(caller.user_id, caller.role, action="read")
            areas = await self.info_builder.authorized_areas(user_id)
            return [
                AuthorizedAreaResponse(
                    area_id=a.area_id,
                    area_name=a.area_name,
                    area_type=a.area_type,
                    rule_type=a.rule_type,
                    access_level=a.access_level,
                )
                for a in areas
            ]

        @self.app.get("/users/{user_id}/geographic-authorizations", response_model=RuleListResponse)
        async def list_rules(user_id: str, caller: Caller = Depends(get_caller)):
            """List a user's rules."""
            self.guard.require_admin(caller.user_id, caller.role, action="read")
            rules = await self.rule_store.rules_for_user(user_id)
            return RuleListResponse(
                rules=[RuleResponse.from_rule(r) for r in rules],
                total=len(rules)
            )

        @self.app.post(
            "/users/{user_id}/geographic-authorizations",
            response_model=RuleResponse,
            status_code=201,
        )
        async def create_rule(user_id: str, request: RuleCreateRequest, caller: Caller = Depends(get_caller)):
            """Create a rule for a user."""
            self.guard.require_admin(caller.user_id, caller.role, action="create")
            validate_area_id(request.geographic_area_id)
            rule = await self.rule_store.create(
                user_id,
                request.geographic_area_id,
                request.rule_type,
                created_by=caller.user_id or "system",
            )
            self.metrics.record_business_event("rule_created")
            return RuleResponse.from_rule(rule)

        @self.app.delete("/users/{user_id}/geographic-authorizations/{rule_id}", status_code=204)
        async def delete_rule(user_id: str, rule_id: str, caller: Caller = Depends(get_caller)):
            """Delete one of a user's rules."""
            self.guard.require_admin(caller.user_id, caller.role, action="delete")
            await self.rule_store.delete(rule_id, user_id=user_id)
            self.metrics.record_business_event("rule_deleted")
            return Response(status_code=204)

        @self.app.post("/geographic-areas/batch-descendants", response_model=BatchDescendantsResponse)
        async def batch_descendants(request: BatchAreaRequest):
            """Strict descendants of the given areas."""
            descendants = await self.batch_query.batch_descendants(request.area_ids)
            return BatchDescendantsResponse(descendant_ids=sorted(descendants))

        @self.app.post("/geographic-areas/batch-ancestors", response_model=BatchAncestorsResponse)
        async def batch_ancestors(request: BatchAreaRequest, caller: Caller = Depends(get_caller)):
            """Immediate parent of each visible area."""
            parents = await self.batch_query.batch_ancestors(request.area_ids, caller.user_id, caller.role)
            return BatchAncestorsResponse(parents=parents)

        @self.app.post("/geographic-areas/batch-details", response_model=BatchDetailsResponse)
        async def batch_details(request: BatchAreaRequest, caller: Caller = Depends(get_caller)):
            """Detail rows for each visible area."""
            details = await self.batch_query.batch_details(request.area_ids, caller.user_id, caller.role)
            return BatchDetailsResponse(areas=details)

    def _setup_area_routes(self):
        """Set up geographic area administration routes."""

        @self.app.post("/geographic-areas", response_model=AreaDetail, status_code=201)
        async def create_area(request: AreaCreateRequest, caller: Caller = Depends(get_caller)):
            self.guard.require_editor(caller.user_id, caller.role, action="create")
            await self.guard.require_create(caller.user_id, caller.role, request.parent_area_id)
            area = await self.area_service.create_area(request.name, request.area_type, request.parent_area_id)
            return AreaDetail.from_area(area, 0)

        @self.app.get("/geographic-areas/{area_id}", response_model=AreaDetail)
        async def get_area(area_id: str, caller: Caller = Depends(get_caller)):
            area = await self.area_service.get_area(area_id)
            await self.guard.require_access(caller.user_id, caller.role, area_id, AccessLevel.READ_ONLY)
            return AreaDetail.from_area(area, await self.area_repository.count_children(area_id))

        @self.app.put("/geographic-areas/{area_id}", response_model=AreaDetail)
        async def update_area(area_id: str, request: AreaUpdateRequest, caller: Caller = Depends(get_caller)):
            self.guard.require_editor(caller.user_id, caller.role, action="update")
            await self.area_service.get_area(area_id)
            await self.guard.require_access(caller.user_id, caller.role, area_id, AccessLevel.FULL, action="update")

            kwargs = {"name": request.name, "area_type": request.area_type}
            if "parent_area_id" in request.model_fields_set:
                await self.guard.require_create(caller.user_id, caller.role, request.parent_area_id)
                kwargs["parent_area_id"] = request.parent_area_id

            area = await self.area_service.update_area(area_id, **kwargs)
            return AreaDetail.from_area(area, await self.area_repository.count_children(area_id))

        @self.app.delete("/geographic-areas/{area_id}", status_code=204)
        async def delete_area(area_id: str, caller: Caller = Depends(get_caller)):
            self.guard.require_editor(caller.user_id, caller.role, action="delete")
            await self.area_service.get_area(area_id)
            await self.guard.require_access(caller.user_id, caller.role, area_id, AccessLevel.FULL, action="delete")
            await self.area_service.delete_area(area_id)
            return Response(status_code=204)

        @self.app.get("/geographic-areas/{area_id}/children", response_model=List[AreaDetail])
        async def get_children(area_id: str, caller: Caller = Depends(get_caller)):
            await self.guard.require_access(caller.user_id, caller.role, area_id, AccessLevel.READ_ONLY)
            children = await self.area_service.get_children(area_id)
            visible = await self._visible(children, caller)
            return await self._details(visible)

        @self.app.get("/geographic-areas/{area_id}/ancestors", response_model=List[AreaDetail])
        async def get_ancestors(area_id: str, caller: Caller = Depends(get_caller)):
            await self.guard.require_access(caller.user_id, caller.role, area_id, AccessLevel.READ_ONLY)
            ancestors = await self.area_service.get_ancestors(area_id)
            return await self._details(ancestors)

    async def _visible(self, areas: List[GeographicArea], caller: Caller) -> List[GeographicArea]:
        if self.guard.bypasses(caller.user_id, caller.role):
            return areas
        levels: Dict[str, AccessLevel] = await self.evaluator.evaluate_many(caller.user_id, [a.id for a in areas])
        return [a for a in areas if levels.get(a.id, AccessLevel.NONE) != AccessLevel.NONE]

    async def _details(self, areas: List[GeographicArea]) -> List[AreaDetail]:
        tree = AreaTree(await self.area_repository.list_areas())
        return [AreaDetail.from_area(a, tree.child_count(a.id)) for a in areas]

    async def _check_dependencies(self):
        """Check service dependencies."""
        dependencies = {}

        try:
            ok = await self.area_repository.health_check() and await self.rule_repository.health_check()
            dependencies[self.config.persistence_backend] = "ok" if ok else "error"
        except Exception:
            dependencies[self.config.persistence_backend] = "error"

        return dependencies

    async def start(self):
        """Start persistence."""
        await self.area_repository.start()
        await self.rule_repository.start()
        self.logger.info("Geographic authorization service started", backend=self.config.persistence_backend)

    async def stop(self):
        """Stop persistence."""
        await self.area_repository.stop()
        await self.rule_repository.stop()
        self.logger.info("Geographic authorization service stopped")


def create_app():
    """Create geographic authorization service application."""
    service = GeoAuthorizationService()
    return service.app


if __name__ == "__main__":
    service = GeoAuthorizationService()
    service.run()
