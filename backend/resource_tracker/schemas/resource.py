"""Resource schemas for API."""
import json
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

RESOURCE_TYPE_PATTERN = "^(static|mailer|telegram)$"


class ResourceCreate(BaseModel):
    """Schema for creating a new resource."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    type: str = Field(..., pattern=RESOURCE_TYPE_PATTERN)
    interval: int = Field(..., ge=1)  # minutes
    user_id: str = Field(..., alias="userId", min_length=1)
    headers: Optional[Dict[str, str]] = None
    frequency: Optional[int] = Field(None, ge=1)
    period: Optional[str] = None


class ResourceUpdate(BaseModel):
    """Schema for updating a resource. Omitted fields keep their values."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = Field(None, pattern=RESOURCE_TYPE_PATTERN)
    interval: Optional[int] = Field(None, ge=1)
    user_id: Optional[str] = Field(None, alias="userId")  # requesting user
    headers: Optional[Dict[str, str]] = None
    frequency: Optional[int] = Field(None, ge=1)
    period: Optional[str] = None


class ResourceDelete(BaseModel):
    """Body of a delete request."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)


class ResourceResponse(BaseModel):
    """Schema for a resource in API responses."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    url: str
    type: str
    interval: int
    frequency: Optional[int] = None
    period: Optional[str] = None
    user_id: str = Field(..., serialization_alias="userId")
    headers: Optional[Dict[str, str]] = None
    created_at: datetime

    @classmethod
    def from_model(cls, resource) -> "ResourceResponse":
        headers = None
        if resource.headers:
            try:
                headers = json.loads(resource.headers)
            except json.JSONDecodeError:
                pass
        return cls(
            id=resource.id,
            name=resource.name,
            url=resource.url,
            type=resource.type,
            interval=resource.interval,
            frequency=resource.frequency,
            period=resource.period,
            user_id=resource.user_id,
            headers=headers,
            created_at=resource.created_at,
        )


class ResourceEnvelope(BaseModel):
    """Create/update response wrapper."""
    success: bool = True
    resource: ResourceResponse


class ResourceSummary(BaseModel):
    """Resource as listed for a Telegram user."""
    id: int
    name: str
    url: str
    type: str
    content: str = ""
    interval: int
    frequency: Optional[int] = None
    period: Optional[str] = None
    created_at: datetime


class LogResponse(BaseModel):
    """One check result of a resource."""
    id: int
    message: str
    result: bool
    created_at: datetime


class CheckResponse(BaseModel):
    """Outcome of an on-demand check."""
    status: str
    response: str
    result: bool
    status_code: Optional[int] = None
    endpoint_type: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


class ResourceStatus(BaseModel):
    """Latest known state of a resource."""
    id: int
    name: str
    url: str
    type: str
    interval: int
    working: Optional[bool] = None  # None until the first check ran
    last_checked: Optional[datetime] = None
    last_message: Optional[str] = None


class StatusOverview(BaseModel):
    """Status of every resource visible to a user."""
    total: int
    working: int
    failing: int
    pending: int
    resources: List[ResourceStatus]
