"""Resource store - durable CRUD for resources and their append-only logs.

Every method runs in its own session so scheduled checks never share a
session with request handlers. Commits and reads retry transient database
errors through the shared retry policy.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..database import async_session
from ..models import Log, Resource
from ..utils.retry import RetryPolicy, exponential_backoff, is_transient_db_error, retry_async

logger = logging.getLogger(__name__)

# Fields a caller may set on a resource
RESOURCE_FIELDS = ("name", "url", "type", "interval", "user_id", "headers", "frequency", "period")


def _encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    values = {key: value for key, value in fields.items() if key in RESOURCE_FIELDS}
    if "headers" in values and values["headers"] is not None:
        values["headers"] = json.dumps(values["headers"])
    return values


class ResourceStore:
    """Persistent store for Resource and Log rows."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.session_factory = session_factory or async_session
        self.policy = policy or RetryPolicy(
            max_attempts=settings.store_max_attempts,
            backoff=exponential_backoff(settings.store_backoff_seconds),
            retry_on=is_transient_db_error,
        )

    async def _commit(self, session: AsyncSession):
        await retry_async(session.commit, self.policy, "Database commit")

    async def create_resource(self, fields: Dict[str, Any]) -> Resource:
        async with self.session_factory() as session:
            resource = Resource(**_encode_fields(fields))
            session.add(resource)
            await self._commit(session)
            await session.refresh(resource)
            return resource

    async def find_resource_by_id(self, resource_id: int) -> Optional[Resource]:
        async def query():
            async with self.session_factory() as session:
                result = await session.execute(select(Resource).where(Resource.id == resource_id))
                return result.scalar_one_or_none()

        return await retry_async(query, self.policy, f"Loading resource {resource_id}")

    async def find_resource_by_name(self, name: str) -> Optional[Resource]:
        async with self.session_factory() as session:
            result = await session.execute(select(Resource).where(Resource.name == name))
            return result.scalar_one_or_none()

    async def find_resources_by_owner(self, owner_id: str) -> List[Resource]:
        async def query():
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Resource).where(Resource.user_id == owner_id).order_by(Resource.id)
                )
                return list(result.scalars().all())

        return await retry_async(query, self.policy, f"Loading resources of {owner_id}")

    async def find_all_resources(self) -> List[Resource]:
        async def query():
            async with self.session_factory() as session:
                result = await session.execute(select(Resource).order_by(Resource.id))
                return list(result.scalars().all())

        return await retry_async(query, self.policy, "Loading all resources")

    async def update_resource(self, resource_id: int, fields: Dict[str, Any]) -> Optional[Resource]:
        """Apply ``fields`` to the resource; keys not present are left untouched."""
        async with self.session_factory() as session:
            result = await session.execute(select(Resource).where(Resource.id == resource_id))
            resource = result.scalar_one_or_none()
            if resource is None:
                return None
            for key, value in _encode_fields(fields).items():
                setattr(resource, key, value)
            await self._commit(session)
            await session.refresh(resource)
            return resource

    async def delete_resource(self, resource_id: int) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(Resource).where(Resource.id == resource_id))
            await self._commit(session)
            return result.rowcount > 0

    async def append_log(self, resource_id: int, fields: Dict[str, Any]) -> Log:
        async with self.session_factory() as session:
            log = Log(resource_id=resource_id, **fields)
            session.add(log)
            await self._commit(session)
            await session.refresh(log)
            return log

    async def find_logs_by_resource(self, resource_id: int, limit: Optional[int] = None) -> List[Log]:
        """Logs for a resource, most recent first."""
        async def query():
            async with self.session_factory() as session:
                statement = (
                    select(Log)
                    .where(Log.resource_id == resource_id)
                    .order_by(Log.created_at.desc(), Log.id.desc())
                )
                if limit:
                    statement = statement.limit(limit)
                result = await session.execute(statement)
                return list(result.scalars().all())

        return await retry_async(query, self.policy, f"Loading logs of resource {resource_id}")

    async def delete_logs_by_resource(self, resource_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(delete(Log).where(Log.resource_id == resource_id))
            await self._commit(session)
            return result.rowcount


# Global instance
resource_store = ResourceStore()
