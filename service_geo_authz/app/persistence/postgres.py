"""
PostgreSQL persistence layer for the Geographic Authorization service.
"""

from typing import List, Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import ConflictError, ServiceError
from ..authorization.models import AuthorizationRule, RuleType
from ..hierarchy.models import GeographicArea
from .base import AreaRepository, RuleRepository


SCHEMA = """
    CREATE TABLE IF NOT EXISTS geographic_areas (
        id UUID PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        area_type VARCHAR(100) NOT NULL,
        parent_area_id UUID REFERENCES geographic_areas(id),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS idx_geographic_areas_parent
        ON geographic_areas(parent_area_id);

    CREATE TABLE IF NOT EXISTS user_geographic_authorizations (
        rule_id UUID PRIMARY KEY,
        user_id VARCHAR(255) NOT NULL,
        geographic_area_id UUID NOT NULL REFERENCES geographic_areas(id),
        rule_type VARCHAR(10) NOT NULL CHECK (rule_type IN ('ALLOW', 'DENY')),
        created_by VARCHAR(255) NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT uq_user_geographic_area UNIQUE (user_id, geographic_area_id)
    );

    CREATE INDEX IF NOT EXISTS idx_user_geographic_authorizations_user
        ON user_geographic_authorizations(user_id);
"""

AREA_COLUMNS = "id::text AS id, name, area_type, parent_area_id::text AS parent_area_id, created_at, updated_at"
RULE_COLUMNS = (
    "rule_id::text AS rule_id, user_id, geographic_area_id::text AS geographic_area_id, "
    "rule_type, created_by, created_at, updated_at"
)


class PostgresDatabase:
    """Connection pool shared by the area and rule repositories."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("geo_authz.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool and create tables if they don't exist."""
        if self.pool is not None:
            return
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)

            self.logger.info("PostgreSQL persistence started")

        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise ServiceError("Failed to start PostgreSQL persistence", {"error": str(e)})

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def health_check(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (OSError, asyncpg.PostgresError):
            return False

    def acquire(self):
        if self.pool is None:
            raise ServiceError("PostgreSQL persistence not started")
        return self.pool.acquire()


class PostgresAreaRepository(AreaRepository):
    """Geographic areas stored in PostgreSQL."""

    def __init__(self, db: PostgresDatabase):
        self.db = db
        self.logger = get_logger("geo_authz.persistence.postgres")

    async def start(self):
        await self.db.start()

    async def stop(self):
        await self.db.stop()

    async def health_check(self) -> bool:
        return await self.db.health_check()

    async def list_areas(self) -> List[GeographicArea]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(f"SELECT {AREA_COLUMNS} FROM geographic_areas")
        return [self._row_to_area(row) for row in rows]

    async def get_area(self, area_id: str) -> Optional[GeographicArea]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {AREA_COLUMNS} FROM geographic_areas WHERE id::text = $1",
                area_id
            )
        return self._row_to_area(row) if row else None

    async def create_area(self, area: GeographicArea) -> GeographicArea:
        try:
            async with self.db.acquire() as conn:
                await conn.execute("""
                    INSERT INTO geographic_areas (id, name, area_type, parent_area_id, created_at, updated_at)
                    VALUES ($1::uuid, $2, $3, $4::uuid, $5, $6)
                """,
                    area.id, area.name, area.area_type, area.parent_area_id,
                    area.created_at, area.updated_at
                )
        except asyncpg.UniqueViolationError:
            raise ConflictError("Geographic area already exists", {"area_id": area.id})

        self.logger.info("Area saved", area_id=area.id, name=area.name)
        return area

    async def update_area(self, area: GeographicArea) -> GeographicArea:
        async with self.db.acquire() as conn:
            await conn.execute("""
                UPDATE geographic_areas
                SET name = $2, area_type = $3, parent_area_id = $4::uuid, updated_at = $5
                WHERE id = $1::uuid
            """,
                area.id, area.name, area.area_type, area.parent_area_id, area.updated_at
            )
        return area

    async def delete_area(self, area_id: str) -> bool:
        try:
            async with self.db.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM geographic_areas WHERE id = $1::uuid", area_id
                )
        except asyncpg.ForeignKeyViolationError:
            # A child or rule was added after the service-level checks
            raise ConflictError(
                "Cannot delete geographic area while it is still referenced",
                {"area_id": area_id}
            )
        return result == "DELETE 1"

    async def count_children(self, area_id: str) -> int:
        async with self.db.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM geographic_areas WHERE parent_area_id::text = $1",
                area_id
            )
        return count or 0

    @staticmethod
    def _row_to_area(row) -> GeographicArea:
        return GeographicArea(
            id=row["id"],
            name=row["name"],
            area_type=row["area_type"],
            parent_area_id=row["parent_area_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class PostgresRuleRepository(RuleRepository):
    """Authorization rules stored in PostgreSQL.

    Uniqueness of (user_id, geographic_area_id) is the table constraint's
    job; a violation surfaces as ``ConflictError``.
    """

    def __init__(self, db: PostgresDatabase):
        self.db = db
        self.logger = get_logger("geo_authz.persistence.postgres")

    async def start(self):
        await self.db.start()

    async def stop(self):
        await self.db.stop()

    async def health_check(self) -> bool:
        return await self.db.health_check()

    async def find_by_user(self, user_id: str) -> List[AuthorizationRule]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT {RULE_COLUMNS} FROM user_geographic_authorizations
                WHERE user_id = $1
                ORDER BY created_at ASC
            """, user_id)
        return [self._row_to_rule(row) for row in rows]

    async def find_by_user_and_area(self, user_id: str, area_id: str) -> Optional[AuthorizationRule]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {RULE_COLUMNS} FROM user_geographic_authorizations
                WHERE user_id = $1 AND geographic_area_id::text = $2
            """, user_id, area_id)
        return self._row_to_rule(row) if row else None

    async def get(self, rule_id: str) -> Optional[AuthorizationRule]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {RULE_COLUMNS} FROM user_geographic_authorizations WHERE rule_id::text = $1",
                rule_id
            )
        return self._row_to_rule(row) if row else None

    async def insert(self, rule: AuthorizationRule) -> AuthorizationRule:
        try:
            async with self.db.acquire() as conn:
                await conn.execute("""
                    INSERT INTO user_geographic_authorizations (
                        rule_id, user_id, geographic_area_id, rule_type, created_by, created_at, updated_at
                    ) VALUES ($1::uuid, $2, $3::uuid, $4, $5, $6, $7)
                """,
                    rule.rule_id, rule.user_id, rule.geographic_area_id, rule.rule_type.value,
                    rule.created_by, rule.created_at, rule.updated_at
                )
        except asyncpg.UniqueViolationError:
            raise ConflictError(
                "Authorization rule already exists for this user and geographic area",
                {"user_id": rule.user_id, "geographic_area_id": rule.geographic_area_id}
            )

        self.logger.info("Rule saved", rule_id=rule.rule_id, user_id=rule.user_id)
        return rule

    async def delete(self, rule_id: str) -> bool:
        async with self.db.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM user_geographic_authorizations WHERE rule_id::text = $1", rule_id
            )

        if result == "DELETE 1":
            self.logger.info("Rule deleted", rule_id=rule_id)
            return True

        self.logger.warning("Rule not found for deletion", rule_id=rule_id)
        return False

    async def count_for_area(self, area_id: str) -> int:
        async with self.db.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM user_geographic_authorizations WHERE geographic_area_id::text = $1",
                area_id
            )
        return count or 0

    @staticmethod
    def _row_to_rule(row) -> AuthorizationRule:
        return AuthorizationRule(
            rule_id=row["rule_id"],
            user_id=row["user_id"],
            geographic_area_id=row["geographic_area_id"],
            rule_type=RuleType(row["rule_type"]),
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
