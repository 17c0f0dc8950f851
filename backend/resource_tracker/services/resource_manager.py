"""Resource lifecycle manager - keeps resources, timers and checks in step.

All mutations go through this service: it persists the resource, then keeps
the schedule registry in sync so every stored resource has exactly one timer
bound to a snapshot of its current definition. Timer fires land in
``check_resource``, which probes, logs and alerts and never raises.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..config import get_admin_ids
from ..exceptions import InvalidResourceInterval, InvalidResourceType, NotFoundOrForbidden, ResourceNameTaken
from ..models import Log, Resource
from .alerter import AlertDispatcher, alert_dispatcher
from .probe import Outcome, ProbeExecutor, ProbeType, ResourceSnapshot, probe_executor, truncate
from .schedule_registry import ScheduleRegistry, schedule_registry
from .store import ResourceStore, resource_store

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "url", "type", "interval", "headers", "frequency", "period")


def _validate_type(resource_type: Optional[str]):
    if resource_type not in ProbeType.values():
        raise InvalidResourceType(resource_type)


def _validate_interval(interval: Any):
    # bool is an int subclass
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise InvalidResourceInterval(interval)


def _error_message(exc: Exception) -> str:
    """Prefer a structured ``description`` from a partial response over the raw message."""
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            data = response.json()
        except Exception:
            data = None
        if isinstance(data, dict) and data.get("description"):
            return str(data["description"])
    return str(exc) or type(exc).__name__


class ResourceLifecycleManager:
    """Creates, updates and deletes resources and runs their scheduled checks."""

    def __init__(
        self,
        store: Optional[ResourceStore] = None,
        registry: Optional[ScheduleRegistry] = None,
        probe: Optional[ProbeExecutor] = None,
        alerter: Optional[AlertDispatcher] = None,
        admin_ids: Optional[List[str]] = None,
    ):
        self.store = store or resource_store
        self.registry = registry or schedule_registry
        self.probe = probe or probe_executor
        self.alerter = alerter or alert_dispatcher
        self._admin_ids = admin_ids

    @property
    def admin_ids(self) -> List[str]:
        return self._admin_ids if self._admin_ids is not None else get_admin_ids()

    def is_admin(self, user_id: Optional[str]) -> bool:
        return user_id is not None and str(user_id) in self.admin_ids

    def _schedule(self, resource: Resource) -> ResourceSnapshot:
        snapshot = ResourceSnapshot.from_model(resource)
        self.registry.register(snapshot.id, snapshot.interval, self.check_resource, snapshot)
        return snapshot

    async def _notify(self, text: str):
        """Best-effort confirmation message."""
        try:
            await self.alerter.notify_all(text)
        except Exception as e:
            logger.error(f"Failed to send notification: {e}")

    async def schedule_all_resources(self) -> int:
        """Register a timer for every stored resource. Returns the count."""
        resources = await self.store.find_all_resources()
        scheduled = 0
        for resource in resources:
            try:
                self._schedule(resource)
            except ValueError as e:
                logger.error(f"Not scheduling resource {resource.id}: {e}")
                continue
            scheduled += 1
        logger.info(f"Scheduled checks for {scheduled} resource(s)")
        return scheduled

    async def _ensure_name_free(self, name: Optional[str], resource_id: Optional[int] = None):
        if not name:
            return
        existing = await self.store.find_resource_by_name(name)
        if existing is not None and existing.id != resource_id:
            raise ResourceNameTaken(name)

    async def get_resources(self, owner_id: str) -> List[Resource]:
        return await self.store.find_resources_by_owner(str(owner_id))

    async def get_all_resources(self) -> List[Resource]:
        return await self.store.find_all_resources()

    async def get_resource(self, resource_id: int) -> Optional[Resource]:
        return await self.store.find_resource_by_id(resource_id)

    async def get_logs(self, resource_id: int, limit: Optional[int] = None) -> List[Log]:
        return await self.store.find_logs_by_resource(resource_id, limit)

    async def add_resource(self, definition: Dict[str, Any]) -> Resource:
        """Persist a new resource and start checking it."""
        _validate_type(definition.get("type"))
        _validate_interval(definition.get("interval"))
        await self._ensure_name_free(definition.get("name"))

        fields = dict(definition)
        fields["user_id"] = str(fields["user_id"])
        try:
            resource = await self.store.create_resource(fields)
        except IntegrityError:
            # Another create took the name after the check above
            raise ResourceNameTaken(definition.get("name"))
        self._schedule(resource)
        logger.info(f"Added resource {resource.url} (ID: {resource.id}), checked every {resource.interval} minute(s)")

        await self._notify(
            f"Resource {resource.name} (ID: {resource.id}) added. "
            f"It will be checked every {resource.interval} minute(s).\n"
            f"Check its status with /status"
        )
        return resource

    async def _load_authorized(self, resource_id: int, requesting_user_id: Optional[str]) -> Resource:
        resource = await self.store.find_resource_by_id(resource_id)
        if resource is None:
            raise NotFoundOrForbidden(resource_id)
        if requesting_user_id is not None:
            requester = str(requesting_user_id)
            if resource.user_id != requester and not self.is_admin(requester):
                raise NotFoundOrForbidden(resource_id)
        return resource

    async def update_resource(
        self,
        resource_id: int,
        changes: Dict[str, Any],
        requesting_user_id: Optional[str] = None,
    ) -> Resource:
        """Merge the supplied fields into the resource and reschedule it."""
        current = await self._load_authorized(resource_id, requesting_user_id)
        fields = {
            key: value
            for key, value in changes.items()
            if key in UPDATABLE_FIELDS and value is not None
        }
        if "type" in fields:
            _validate_type(fields["type"])
        if "interval" in fields:
            _validate_interval(fields["interval"])
        if "name" in fields and fields["name"] != current.name:
            await self._ensure_name_free(fields["name"], resource_id)

        try:
            updated = await self.store.update_resource(resource_id, fields)
        except IntegrityError:
            raise ResourceNameTaken(fields.get("name"))
        if updated is None:
            # Deleted between the ownership check and the write
            raise NotFoundOrForbidden(resource_id)

        self.registry.unregister(resource_id)
        self._schedule(updated)
        logger.info(f"Updated resource {updated.url} (ID: {updated.id}), checked every {updated.interval} minute(s)")
        return updated

    async def delete_resource(self, resource_id: int, requesting_user_id: str):
        """Stop checking the resource and remove it with all its logs."""
        await self._load_authorized(resource_id, requesting_user_id)

        self.registry.unregister(resource_id)
        await self.store.delete_logs_by_resource(resource_id)
        await self.store.delete_resource(resource_id)
        logger.info(f"Deleted resource {resource_id} and its logs")

        await self._notify(f"Resource ID: {resource_id} deleted.")

    async def check_resource(self, resource: ResourceSnapshot) -> Outcome:
        """Probe, record exactly one log entry, and alert on failure.

        Never raises: a failing endpoint must not disturb the scheduler.
        """
        start = time.monotonic()
        transport_failure = False
        try:
            outcome = await self.probe.execute(resource)
            transport_failure = outcome.status == "error" and (
                outcome.status_code is None or outcome.status_code >= 400
            )
        except Exception as e:
            logger.exception(f"Unexpected error checking resource {resource.url}")
            transport_failure = True
            outcome = Outcome(
                status="error",
                response=truncate(_error_message(e)),
                result=False,
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )

        duration = int((time.monotonic() - start) * 1000)

        try:
            await self.store.append_log(
                resource.id,
                {
                    "status": outcome.status,
                    "response": truncate(outcome.response),
                    "endpoint": resource.url,
                    "duration": duration,
                    "result": outcome.result,
                },
            )
        except Exception as e:
            logger.error(f"Failed to record log for resource {resource.id}: {e}")

        if not outcome.result:
            try:
                await self.alerter.notify_error(
                    resource,
                    outcome.response,
                    outcome.status_code,
                    transport_failure=transport_failure,
                )
            except Exception as e:
                logger.error(f"Failed to send alert for resource {resource.id}: {e}")

        logger.info(
            f"Checked {resource.url}: {outcome.status}, result: {outcome.result}, duration: {duration}ms"
        )
        return outcome


# Global instance
resource_manager = ResourceLifecycleManager()
