from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from conftest import ADMIN_ID, FakeAlerter, FakeProbe
from resource_tracker.exceptions import (
    InvalidResourceInterval,
    InvalidResourceType,
    NotFoundOrForbidden,
    ResourceNameTaken,
)
from resource_tracker.services.probe import Outcome, ResourceSnapshot
from resource_tracker.services.resource_manager import ResourceLifecycleManager
from resource_tracker.services.schedule_registry import job_key
from resource_tracker.services.store import ResourceStore
from resource_tracker.utils.retry import RetryPolicy


class NameBlindStore(ResourceStore):
    """Never sees an existing name, like a create racing another one."""

    async def find_resource_by_name(self, name):
        return None


@pytest.mark.asyncio
async def test_add_resource_persists_and_schedules(manager: ResourceLifecycleManager, alerter, site_a) -> None:
    resource = await manager.add_resource(site_a)

    assert resource.id is not None
    assert resource.user_id == "100"
    job = manager.registry.get_job(resource.id)
    assert job.id == job_key(resource.id)
    assert job.trigger.interval == timedelta(minutes=5)

    snapshot = job.args[0]
    assert isinstance(snapshot, ResourceSnapshot)
    assert snapshot.url == "https://example.com"
    assert len(alerter.messages) == 1
    assert "site-a" in alerter.messages[0]


@pytest.mark.asyncio
async def test_add_resource_rejects_unknown_type(manager: ResourceLifecycleManager, site_a) -> None:
    with pytest.raises(InvalidResourceType):
        await manager.add_resource({**site_a, "type": "ftp"})

    assert await manager.get_all_resources() == []
    assert manager.registry.job_ids() == []


@pytest.mark.asyncio
async def test_add_resource_rejects_duplicate_name(manager: ResourceLifecycleManager, site_a) -> None:
    await manager.add_resource(site_a)
    with pytest.raises(ResourceNameTaken):
        await manager.add_resource({**site_a, "url": "https://other.example.com"})
    assert len(await manager.get_all_resources()) == 1


@pytest.mark.asyncio
async def test_add_resource_survives_notification_failure(store, registry, site_a) -> None:
    manager = ResourceLifecycleManager(store, registry, FakeProbe(), FakeAlerter(fail=True), [ADMIN_ID])
    resource = await manager.add_resource(site_a)
    assert registry.exists(resource.id)


@pytest.mark.asyncio
async def test_update_merges_fields_and_reschedules(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)

    updated = await manager.update_resource(resource.id, {"interval": 10, "url": None}, requesting_user_id="100")

    assert updated.interval == 10
    assert updated.url == "https://example.com"
    assert updated.name == "site-a"
    assert manager.registry.job_ids() == [job_key(resource.id)]
    job = manager.registry.get_job(resource.id)
    assert job.trigger.interval == timedelta(minutes=10)
    assert job.args[0].interval == 10


@pytest.mark.asyncio
async def test_update_snapshot_carries_new_definition(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    await manager.update_resource(resource.id, {"url": "https://new.example.com", "headers": {"X-A": "1"}})

    snapshot = manager.registry.get_job(resource.id).args[0]
    assert snapshot.url == "https://new.example.com"
    assert snapshot.headers == {"X-A": "1"}


@pytest.mark.asyncio
async def test_update_rejects_unknown_type(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    with pytest.raises(InvalidResourceType):
        await manager.update_resource(resource.id, {"type": "ftp"})
    assert (await manager.get_resource(resource.id)).type == "static"


@pytest.mark.asyncio
async def test_update_by_stranger_is_refused(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    with pytest.raises(NotFoundOrForbidden):
        await manager.update_resource(resource.id, {"interval": 30}, requesting_user_id="555")
    assert (await manager.get_resource(resource.id)).interval == 5


@pytest.mark.asyncio
async def test_update_missing_resource(manager: ResourceLifecycleManager) -> None:
    with pytest.raises(NotFoundOrForbidden):
        await manager.update_resource(404, {"interval": 2})


@pytest.mark.asyncio
async def test_admin_may_update_any_resource(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    updated = await manager.update_resource(resource.id, {"interval": 15}, requesting_user_id=ADMIN_ID)
    assert updated.interval == 15


@pytest.mark.asyncio
async def test_delete_removes_resource_logs_and_timer(manager: ResourceLifecycleManager, alerter, site_a) -> None:
    resource = await manager.add_resource(site_a)
    await manager.check_resource(ResourceSnapshot.from_model(resource))
    await manager.check_resource(ResourceSnapshot.from_model(resource))

    await manager.delete_resource(resource.id, "100")

    assert await manager.get_resource(resource.id) is None
    assert await manager.get_logs(resource.id) == []
    assert not manager.registry.exists(resource.id)
    assert alerter.messages[-1] == f"Resource ID: {resource.id} deleted."


@pytest.mark.asyncio
async def test_delete_by_stranger_keeps_everything(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    await manager.check_resource(ResourceSnapshot.from_model(resource))

    with pytest.raises(NotFoundOrForbidden):
        await manager.delete_resource(resource.id, "555")

    assert await manager.get_resource(resource.id) is not None
    assert len(await manager.get_logs(resource.id)) == 1
    assert manager.registry.exists(resource.id)


@pytest.mark.asyncio
async def test_admin_may_delete_any_resource(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    await manager.delete_resource(resource.id, ADMIN_ID)
    assert await manager.get_resource(resource.id) is None


@pytest.mark.asyncio
async def test_schedule_all_resources(store, registry, site_a) -> None:
    first = await store.create_resource(site_a)
    second = await store.create_resource({**site_a, "name": "site-b", "interval": 3})
    manager = ResourceLifecycleManager(store, registry, FakeProbe(), FakeAlerter(), [ADMIN_ID])

    assert await manager.schedule_all_resources() == 2
    assert registry.job_ids() == [job_key(first.id), job_key(second.id)]
    assert registry.get_job(second.id).trigger.interval == timedelta(minutes=3)


@pytest.mark.asyncio
async def test_schedule_all_resources_skips_unschedulable_rows(store, registry, site_a) -> None:
    good = await store.create_resource(site_a)
    broken = await store.create_resource({**site_a, "name": "broken", "interval": 0})
    manager = ResourceLifecycleManager(store, registry, FakeProbe(), FakeAlerter(), [ADMIN_ID])

    assert await manager.schedule_all_resources() == 1
    assert registry.exists(good.id)
    assert not registry.exists(broken.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("interval", [0, -1, 2.5, "5", True, None])
async def test_add_resource_rejects_bad_interval(manager: ResourceLifecycleManager, site_a, interval) -> None:
    with pytest.raises(InvalidResourceInterval):
        await manager.add_resource({**site_a, "interval": interval})

    assert await manager.get_all_resources() == []
    assert manager.registry.job_ids() == []


@pytest.mark.asyncio
async def test_update_rejects_bad_interval_and_keeps_timer(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)

    with pytest.raises(InvalidResourceInterval):
        await manager.update_resource(resource.id, {"interval": 0}, requesting_user_id="100")

    assert (await manager.get_resource(resource.id)).interval == 5
    job = manager.registry.get_job(resource.id)
    assert job is not None
    assert job.trigger.interval == timedelta(minutes=5)


@pytest.mark.asyncio
async def test_rename_to_taken_name_is_refused(manager: ResourceLifecycleManager, site_a) -> None:
    await manager.add_resource(site_a)
    other = await manager.add_resource({**site_a, "name": "site-b"})

    with pytest.raises(ResourceNameTaken):
        await manager.update_resource(other.id, {"name": "site-a"}, requesting_user_id="100")

    assert (await manager.get_resource(other.id)).name == "site-b"
    assert manager.registry.exists(other.id)


@pytest.mark.asyncio
async def test_rename_to_own_name_is_allowed(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    updated = await manager.update_resource(resource.id, {"name": "site-a", "interval": 7})
    assert updated.name == "site-a"
    assert updated.interval == 7


@pytest.mark.asyncio
async def test_name_collision_at_write_time_is_name_taken(session_factory, registry, site_a) -> None:
    store = NameBlindStore(session_factory, policy=RetryPolicy(max_attempts=1))
    manager = ResourceLifecycleManager(store, registry, FakeProbe(), FakeAlerter(), [ADMIN_ID])
    await manager.add_resource(site_a)
    other = await manager.add_resource({**site_a, "name": "site-b"})

    with pytest.raises(ResourceNameTaken):
        await manager.add_resource(site_a)
    with pytest.raises(ResourceNameTaken):
        await manager.update_resource(other.id, {"name": "site-a"})

    assert len(await manager.get_all_resources()) == 2
    assert (await manager.get_resource(other.id)).name == "site-b"


@pytest.mark.asyncio
async def test_successful_check_logs_once_without_alert(manager: ResourceLifecycleManager, alerter, site_a) -> None:
    resource = await manager.add_resource(site_a)
    outcome = await manager.check_resource(ResourceSnapshot.from_model(resource))

    assert outcome.result is True
    logs = await manager.get_logs(resource.id)
    assert len(logs) == 1
    assert logs[0].result is True
    assert logs[0].status == "success"
    assert logs[0].endpoint == "https://example.com"
    assert logs[0].duration >= 0
    assert alerter.errors == []


@pytest.mark.asyncio
async def test_failed_check_logs_and_alerts(store, registry, site_a) -> None:
    probe = FakeProbe(Outcome(status="error", response="Request failed with status code 503", result=False, status_code=503))
    alerter = FakeAlerter()
    manager = ResourceLifecycleManager(store, registry, probe, alerter, [ADMIN_ID])
    resource = await manager.add_resource(site_a)

    await manager.check_resource(ResourceSnapshot.from_model(resource))

    logs = await manager.get_logs(resource.id)
    assert len(logs) == 1
    assert logs[0].result is False
    assert logs[0].response == "Request failed with status code 503"
    assert len(alerter.errors) == 1
    snapshot, error_text, status_code, transport_failure = alerter.errors[0]
    assert snapshot.id == resource.id
    assert status_code == 503
    assert transport_failure is True


@pytest.mark.asyncio
async def test_content_failure_is_not_a_transport_failure(store, registry, site_a) -> None:
    probe = FakeProbe(Outcome(status="success", response="<html>", result=False, status_code=200))
    alerter = FakeAlerter()
    manager = ResourceLifecycleManager(store, registry, probe, alerter, [ADMIN_ID])
    resource = await manager.add_resource(site_a)

    await manager.check_resource(ResourceSnapshot.from_model(resource))
    assert alerter.errors[0][3] is False


@pytest.mark.asyncio
async def test_unexpected_probe_error_still_logs_once(store, registry, site_a) -> None:
    probe = FakeProbe(RuntimeError("boom"))
    alerter = FakeAlerter()
    manager = ResourceLifecycleManager(store, registry, probe, alerter, [ADMIN_ID])
    resource = await manager.add_resource(site_a)

    outcome = await manager.check_resource(ResourceSnapshot.from_model(resource))

    assert outcome.status == "error"
    assert outcome.result is False
    logs = await manager.get_logs(resource.id)
    assert len(logs) == 1
    assert logs[0].response == "boom"
    assert len(alerter.errors) == 1


@pytest.mark.asyncio
async def test_unexpected_error_prefers_response_description(store, registry, site_a) -> None:
    request = httpx.Request("GET", "https://example.com")
    response = httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"}, request=request)
    error = httpx.HTTPStatusError("400 Bad Request", request=request, response=response)
    manager = ResourceLifecycleManager(store, registry, FakeProbe(error), FakeAlerter(), [ADMIN_ID])
    resource = await manager.add_resource(site_a)

    outcome = await manager.check_resource(ResourceSnapshot.from_model(resource))
    assert outcome.response == "Bad Request: chat not found"
    assert outcome.status_code == 400


@pytest.mark.asyncio
async def test_check_never_raises_when_alerting_fails(store, registry, site_a) -> None:
    probe = FakeProbe(Outcome(status="error", response="down", result=False))
    manager = ResourceLifecycleManager(store, registry, probe, FakeAlerter(fail=True), [ADMIN_ID])
    resource = await manager.add_resource(site_a)

    outcome = await manager.check_resource(ResourceSnapshot.from_model(resource))
    assert outcome.result is False
    assert len(await manager.get_logs(resource.id)) == 1


@pytest.mark.asyncio
async def test_check_of_deleted_resource_does_not_raise(manager: ResourceLifecycleManager, site_a) -> None:
    resource = await manager.add_resource(site_a)
    snapshot = ResourceSnapshot.from_model(resource)
    await manager.delete_resource(resource.id, "100")

    # A fire already in flight when the resource was deleted; its log write fails the foreign key
    outcome = await manager.check_resource(snapshot)
    assert outcome.result is True
    assert await manager.get_logs(resource.id) == []
