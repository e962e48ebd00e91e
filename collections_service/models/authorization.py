"""
Authorization request model and its read-time priority.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from collections_service.utils.clock import utc_now


class RequestStatus(str, Enum):
    """Authorization request lifecycle. Approved and Rejected are terminal."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class RequestPriority(str, Enum):
    """Queue priority, derived from how long a request has waited."""
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class AuthorizationRequest(BaseModel):
    """Pending approval gate for a sensitive debt state change."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None, description="Request ID")
    follow_up_id: Optional[int] = Field(default=None, description="Originating follow-up")
    debt_id: int = Field(...)
    origin_state_id: int = Field(...)
    destination_state_id: int = Field(...)
    requesting_manager_id: int = Field(...)
    assigned_supervisor_id: Optional[int] = Field(default=None)
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    requested_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = Field(default=None)
    resolver_id: Optional[int] = Field(default=None)
    requester_comment: Optional[str] = Field(default=None)
    supervisor_comment: Optional[str] = Field(default=None)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def waiting_hours(self, now: Optional[datetime] = None) -> float:
        """Hours between the request and its resolution (or now while pending)."""
        end = self.resolved_at or now or utc_now()
        return max((end - self.requested_at).total_seconds() / 3600, 0.0)

    def priority(
        self,
        now: Optional[datetime] = None,
        urgent_after_hours: float = 24.0,
        high_after_hours: float = 8.0,
    ) -> RequestPriority:
        waited = self.waiting_hours(now)
        if waited > urgent_after_hours:
            return RequestPriority.URGENT
        if waited > high_after_hours:
            return RequestPriority.HIGH
        return RequestPriority.MEDIUM
