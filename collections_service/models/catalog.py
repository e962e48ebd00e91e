"""
Rule store models: debt states, management types and transition rules.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from collections_service.utils.clock import utc_now


class DebtState(BaseModel):
    """A state a debt can be in (New, In Management, Agreed, ...)."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None, description="State ID")
    name: str = Field(..., description="Display name")
    display_order: int = Field(default=0, description="Ordering label")
    is_final: bool = Field(default=False, description="Whether the state closes the debt")
    active: bool = Field(default=True)


class ManagementType(BaseModel):
    """Kind of follow-up action (call, message, visit, payment agreement)."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None, description="Management type ID")
    name: str = Field(..., description="Unique display name")
    description: Optional[str] = Field(default=None)
    active: bool = Field(default=True)
    display_order: int = Field(default=0)
    color: Optional[str] = Field(default=None)
    icon: Optional[str] = Field(default=None)


class TransitionRule(BaseModel):
    """
    Maps (management type, origin state) to a destination state.

    A null origin applies regardless of the debt's state; a null destination
    keeps the debt where it is.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None, description="Rule ID")
    management_type_id: int = Field(..., description="Management type the rule belongs to")
    origin_state_id: Optional[int] = Field(default=None, description="Origin state, null for any")
    destination_state_id: Optional[int] = Field(
        default=None, description="Destination state, null for no change"
    )
    requires_authorization: bool = Field(default=False)
    ui_message: Optional[str] = Field(default=None)
    additional_validation: Optional[Dict[str, Any]] = Field(
        default=None, description="Condition tree evaluated against the debt"
    )
    priority: int = Field(default=0, description="Higher wins when several rules match")
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)

    def applies_to(self, management_type_id: int, current_state_id: int) -> bool:
        if not self.active or self.management_type_id != management_type_id:
            return False
        return self.origin_state_id is None or self.origin_state_id == current_state_id

    def resolve_destination(self, current_state_id: int) -> int:
        if self.destination_state_id is None:
            return current_state_id
        return self.destination_state_id
