"""
Debt, follow-up and user models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from collections_service.core.permissions import Role
from collections_service.utils.clock import utc_now


class Debt(BaseModel):
    """A debt owned by a person, always in exactly one state."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None, description="Debt ID")
    persona_id: int = Field(..., description="Debtor")
    current_state_id: int = Field(..., description="Current debt state")
    assigned_manager_id: Optional[int] = Field(default=None, description="Assigned manager")
    total_debt: Decimal = Field(default=Decimal("0"))
    capital_balance: Decimal = Field(default=Decimal("0"))
    days_overdue: int = Field(default=0, ge=0)
    days_in_management: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=utc_now)

    def condition_context(self) -> Dict[str, Any]:
        """Values visible to transition rule conditions."""
        return {
            "total_debt": float(self.total_debt),
            "capital_balance": float(self.capital_balance),
            "days_overdue": self.days_overdue,
            "days_in_management": self.days_in_management,
            "current_state_id": self.current_state_id,
            "assigned_manager_id": self.assigned_manager_id,
        }


class FollowUp(BaseModel):
    """Immutable record of an interaction with a debtor."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = Field(default=None, description="Follow-up ID")
    manager_id: int = Field(..., description="User who recorded the interaction")
    persona_id: int = Field(..., description="Debtor contacted")
    debt_ids: List[int] = Field(..., min_length=1, description="Debts the interaction covers")
    management_type_id: int = Field(...)
    observation: Optional[str] = Field(default=None)
    next_follow_up_date: datetime = Field(...)
    created_at: datetime = Field(default_factory=utc_now)


class User(BaseModel):
    """Staff member known to the service (used for supervisor assignment)."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = Field(default=None)
    name: str = Field(...)
    role: Role = Field(...)
    active: bool = Field(default=True)
