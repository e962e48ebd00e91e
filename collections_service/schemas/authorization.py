"""
Request and response schemas for authorization workflow endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from collections_service.models import RequestPriority, RequestStatus
from collections_service.schemas.common import CamelModel


class AuthorizationCreateRequest(CamelModel):
    """Request schema for asking a supervisor to approve a state change."""

    debt_id: int = Field(..., description="Debt to move")
    origin_state_id: int = Field(..., description="State the debt is in now")
    destination_state_id: int = Field(..., description="State requested")
    comment: Optional[str] = Field(default=None, description="Requester comment")


class AuthorizationResolveRequest(CamelModel):
    """Request schema for supervisor resolution."""

    request_id: int = Field(..., description="Authorization request to resolve")
    approve: bool = Field(..., description="True to approve, false to reject")
    supervisor_comment: Optional[str] = Field(default=None)


class AuthorizationRequestItem(CamelModel):
    """Schema for authorization requests returned to supervisors and managers."""

    id: int = Field(...)
    follow_up_id: Optional[int] = Field(default=None)
    debt_id: int = Field(...)
    origin_state_id: int = Field(...)
    destination_state_id: int = Field(...)
    requesting_manager_id: int = Field(...)
    assigned_supervisor_id: Optional[int] = Field(default=None)
    status: RequestStatus = Field(...)
    priority: RequestPriority = Field(..., description="Derived from waiting time")
    waiting_hours: float = Field(..., description="Hours waiting (until resolution)")
    requested_at: datetime = Field(...)
    resolved_at: Optional[datetime] = Field(default=None)
    resolver_id: Optional[int] = Field(default=None)
    requester_comment: Optional[str] = Field(default=None)
    supervisor_comment: Optional[str] = Field(default=None)


class AuthorizationListResponse(CamelModel):
    """Response schema for the authorization queue."""

    requests: List[AuthorizationRequestItem] = Field(..., description="Requests, oldest first")
    total_count: int = Field(...)


class PendingCountResponse(CamelModel):
    """Response schema for the pending authorization counter."""

    pending_count: int = Field(..., description="Pending requests visible to the caller")
