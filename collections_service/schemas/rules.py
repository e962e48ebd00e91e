"""
Request and response schemas for rule store endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from collections_service.schemas.common import CamelModel


class TransitionRuleCreateRequest(CamelModel):
    """Request schema for adding a transition rule."""

    management_type_id: int = Field(...)
    origin_state_id: Optional[int] = Field(default=None, description="Null applies to any state")
    destination_state_id: Optional[int] = Field(
        default=None, description="Null keeps the debt in its current state"
    )
    requires_authorization: bool = Field(default=False)
    ui_message: Optional[str] = Field(default=None)
    additional_validation: Optional[Dict[str, Any]] = Field(default=None)
    priority: int = Field(default=0)
    active: bool = Field(default=True)


class TransitionRuleUpdateRequest(CamelModel):
    """Partial update of a transition rule; only sent fields change."""

    destination_state_id: Optional[int] = Field(default=None)
    requires_authorization: Optional[bool] = Field(default=None)
    ui_message: Optional[str] = Field(default=None)
    additional_validation: Optional[Dict[str, Any]] = Field(default=None)
    priority: Optional[int] = Field(default=None)
    active: Optional[bool] = Field(default=None)


class TransitionRuleItem(CamelModel):
    id: int = Field(...)
    management_type_id: int = Field(...)
    origin_state_id: Optional[int] = Field(default=None)
    destination_state_id: Optional[int] = Field(default=None)
    requires_authorization: bool = Field(...)
    ui_message: Optional[str] = Field(default=None)
    additional_validation: Optional[Dict[str, Any]] = Field(default=None)
    priority: int = Field(...)
    active: bool = Field(...)
    created_at: datetime = Field(...)


class TransitionRuleListResponse(CamelModel):
    rules: List[TransitionRuleItem] = Field(...)
    total_count: int = Field(...)


class ManagementTypeCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None)
    active: bool = Field(default=True)
    display_order: int = Field(default=0)
    color: Optional[str] = Field(default=None)
    icon: Optional[str] = Field(default=None)


class ManagementTypeItem(ManagementTypeCreateRequest):
    id: int = Field(...)


class DebtStateItem(CamelModel):
    id: int = Field(...)
    name: str = Field(...)
    display_order: int = Field(...)
    is_final: bool = Field(...)
    active: bool = Field(...)
