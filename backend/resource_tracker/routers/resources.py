"""Resource CRUD API endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import get_allowed_ids
from ..exceptions import (
    InvalidResourceInterval,
    InvalidResourceType,
    NotFoundOrForbidden,
    ResourceError,
    ResourceNameTaken,
)
from ..schemas.resource import (
    CheckResponse,
    LogResponse,
    ResourceCreate,
    ResourceDelete,
    ResourceEnvelope,
    ResourceResponse,
    ResourceSummary,
    ResourceUpdate,
    SuccessResponse,
)
from ..services.probe import ResourceSnapshot
from ..services.resource_manager import ResourceLifecycleManager, resource_manager

router = APIRouter(prefix="/api/resources", tags=["resources"])


def get_resource_manager() -> ResourceLifecycleManager:
    """Dependency returning the lifecycle manager."""
    return resource_manager


def raise_http_error(error: ResourceError):
    """Translate a lifecycle error into the matching HTTP error."""
    if isinstance(error, (InvalidResourceType, InvalidResourceInterval)):
        raise HTTPException(status_code=400, detail=error.message)
    if isinstance(error, ResourceNameTaken):
        raise HTTPException(status_code=409, detail=error.message)
    if isinstance(error, NotFoundOrForbidden):
        raise HTTPException(status_code=404, detail=error.message)
    raise HTTPException(status_code=400, detail=error.message)


@router.post("", response_model=ResourceEnvelope, status_code=201)
async def create_resource(
    body: ResourceCreate,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Create a resource and schedule its checks."""
    try:
        resource = await manager.add_resource(body.model_dump())
    except ResourceError as e:
        raise_http_error(e)
    return ResourceEnvelope(resource=ResourceResponse.from_model(resource))


@router.get("/by-telegram/{telegram_id}", response_model=List[ResourceSummary])
async def get_resources_by_telegram_id(
    telegram_id: str,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """List resources visible to a Telegram user. Admins see every resource."""
    allowed = get_allowed_ids()
    if manager.is_admin(telegram_id):
        resources = await manager.get_all_resources()
    elif allowed and telegram_id not in allowed:
        resources = []
    else:
        resources = await manager.get_resources(telegram_id)

    return [
        ResourceSummary(
            id=resource.id,
            name=resource.name,
            url=resource.url,
            type=resource.type,
            interval=resource.interval,
            frequency=resource.frequency,
            period=resource.period,
            created_at=resource.created_at,
        )
        for resource in resources
    ]


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    resource_id: int,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Get a specific resource by ID."""
    resource = await manager.get_resource(resource_id)
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")
    return ResourceResponse.from_model(resource)


@router.patch("/{resource_id}", response_model=ResourceEnvelope)
async def update_resource(
    resource_id: int,
    body: ResourceUpdate,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Update the supplied fields of a resource and reschedule it."""
    changes = body.model_dump(exclude_unset=True, exclude={"user_id"})
    try:
        resource = await manager.update_resource(resource_id, changes, body.user_id)
    except ResourceError as e:
        raise_http_error(e)
    return ResourceEnvelope(resource=ResourceResponse.from_model(resource))


@router.delete("/{resource_id}", response_model=SuccessResponse)
async def delete_resource(
    resource_id: int,
    body: ResourceDelete,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Delete a resource, its logs, and its timer."""
    try:
        await manager.delete_resource(resource_id, body.user_id)
    except ResourceError as e:
        raise_http_error(e)
    return SuccessResponse()


@router.get("/{resource_id}/logs", response_model=List[LogResponse])
async def get_resource_logs(
    resource_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Check results of a resource, most recent first."""
    logs = await manager.get_logs(resource_id, limit)
    return [
        LogResponse(
            id=log.id,
            message=log.response or log.status,
            result=log.result,
            created_at=log.created_at,
        )
        for log in logs
    ]


@router.post("/{resource_id}/check", response_model=CheckResponse)
async def check_resource_now(
    resource_id: int,
    manager: ResourceLifecycleManager = Depends(get_resource_manager),
):
    """Run one check immediately; it is logged and alerted like a scheduled one."""
    resource = await manager.get_resource(resource_id)
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")

    outcome = await manager.check_resource(ResourceSnapshot.from_model(resource))
    return CheckResponse(
        status=outcome.status,
        response=outcome.response,
        result=outcome.result,
        status_code=outcome.status_code,
        endpoint_type=outcome.endpoint_type,
    )
