"""Pydantic schemas for API request/response models."""
from .resource import (
    ResourceCreate,
    ResourceUpdate,
    ResourceDelete,
    ResourceResponse,
    ResourceEnvelope,
    ResourceSummary,
    LogResponse,
    CheckResponse,
    SuccessResponse,
    ResourceStatus,
    StatusOverview,
)

__all__ = [
    "ResourceCreate",
    "ResourceUpdate",
    "ResourceDelete",
    "ResourceResponse",
    "ResourceEnvelope",
    "ResourceSummary",
    "LogResponse",
    "CheckResponse",
    "SuccessResponse",
    "ResourceStatus",
    "StatusOverview",
]
