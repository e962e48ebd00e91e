"""
Request and response schemas for follow-up endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from collections_service.schemas.common import CamelModel


class FollowUpCreateRequest(CamelModel):
    """Request schema for recording a follow-up."""

    persona_id: int = Field(..., description="Debtor contacted")
    debt_ids: Optional[List[int]] = Field(
        default=None, description="Debts covered by the interaction"
    )
    management_type_id: int = Field(..., description="Kind of action taken")
    observation: Optional[str] = Field(default=None, description="Free-text notes")
    next_follow_up_date: Optional[datetime] = Field(
        default=None, description="When to contact the debtor again"
    )


class FollowUpItem(CamelModel):
    """Schema for a recorded follow-up."""

    id: int = Field(..., description="Follow-up ID")
    manager_id: int = Field(..., description="User who recorded the interaction")
    persona_id: int = Field(..., description="Debtor contacted")
    debt_ids: List[int] = Field(..., description="Debts covered")
    management_type_id: int = Field(..., description="Management type")
    observation: Optional[str] = Field(default=None)
    next_follow_up_date: datetime = Field(...)
    created_at: datetime = Field(...)


class DebtOutcomeItem(CamelModel):
    """What the follow-up did to one debt."""

    debt_id: int = Field(...)
    outcome: str = Field(..., description="state_changed, authorization_requested or unchanged")
    origin_state_id: int = Field(..., description="State before the follow-up")
    destination_state_id: int = Field(..., description="State the matched rule points to")
    rule_id: Optional[int] = Field(default=None, description="Matched transition rule")
    ui_message: Optional[str] = Field(default=None, description="Message configured on the rule")
    authorization_request_id: Optional[int] = Field(default=None)


class FollowUpCreateResponse(CamelModel):
    """Response schema for a recorded follow-up."""

    success: bool = Field(default=True)
    message: str = Field(..., description="Summary for the user")
    follow_up: FollowUpItem = Field(...)
    outcomes: List[DebtOutcomeItem] = Field(...)


class FollowUpListResponse(CamelModel):
    """Response schema for follow-up history."""

    follow_ups: List[FollowUpItem] = Field(..., description="Follow-ups, newest first")
    total_count: int = Field(...)
