"""Status overview API - latest check of every resource of a user."""
from fastapi import APIRouter, Depends

from ..schemas.resource import ResourceStatus, StatusOverview
from ..services.resource_manager import ResourceLifecycleManager
from .resources import get_resource_manager

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/{owner_id}", response_model=StatusOverview)
async def get_status_overview(
    owner_id: str,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Latest result per resource. Admins get every resource."""
    if manager.is_admin(owner_id):
        resources = await manager.get_all_resources()
    else:
        resources = await manager.get_resources(owner_id)

    statuses = []
    counts = {"working": 0, "failing": 0, "pending": 0}
    for resource in resources:
        latest_logs = await manager.get_logs(resource.id, limit=1)
        latest = latest_logs[0] if latest_logs else None

        if latest is None:
            counts["pending"] += 1
        elif latest.result:
            counts["working"] += 1
        else:
            counts["failing"] += 1

        statuses.append(ResourceStatus(
            id=resource.id,
            name=resource.name,
            url=resource.url,
            type=resource.type,
            interval=resource.interval,
            working=latest.result if latest else None,
            last_checked=latest.created_at if latest else None,
            last_message=(latest.response or latest.status)[:100] if latest else None,
        ))

    return StatusOverview(
        total=len(resources),
        working=counts["working"],
        failing=counts["failing"],
        pending=counts["pending"],
        resources=statuses,
    )
