"""
Follow-up API endpoints: record interactions and read the history.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from collections_service.core.dependencies import get_current_user, get_follow_up_service
from collections_service.core.exceptions import ValidationError
from collections_service.core.permissions import AuthenticatedUser, Permission, require_permission
from collections_service.schemas.common import ErrorResponse
from collections_service.schemas.follow_up import (
    DebtOutcomeItem,
    FollowUpCreateRequest,
    FollowUpCreateResponse,
    FollowUpItem,
    FollowUpListResponse,
)
from collections_service.services.follow_up_service import FollowUpResult, FollowUpService, Outcome

router = APIRouter(prefix="/follow-ups", tags=["follow-ups"])


def _summary(result: FollowUpResult) -> str:
    requested = sum(1 for o in result.outcomes if o.outcome == Outcome.AUTHORIZATION_REQUESTED)
    changed = sum(1 for o in result.outcomes if o.outcome == Outcome.STATE_CHANGED)
    messages = [o.ui_message for o in result.outcomes if o.ui_message]
    if messages:
        return messages[0]
    if requested:
        return f"Follow-up recorded; {requested} state change(s) sent for authorization"
    if changed:
        return f"Follow-up recorded; {changed} debt(s) changed state"
    return "Follow-up recorded"


@router.post(
    "",
    response_model=FollowUpCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Follow-up recorded"},
        403: {"model": ErrorResponse, "description": "Debt not assigned to the caller"},
        404: {"model": ErrorResponse, "description": "Unknown debt"},
        409: {"model": ErrorResponse, "description": "Ambiguous transition rules, or a debt changed state meanwhile"},
        422: {"model": ErrorResponse, "description": "Invalid submission"},
    },
    summary="Record a follow-up",
    description="Record an interaction with a debtor and apply the configured transition rules",
)
async def record_follow_up(
    request: FollowUpCreateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    follow_up_service: FollowUpService = Depends(get_follow_up_service),
) -> FollowUpCreateResponse:
    """
    Record a follow-up covering one or more debts of the same person.

    Each debt is either moved to a new state, routed to a supervisor for
    authorization, or left as it is, according to the transition rules of the
    management type.
    """
    require_permission(user, Permission.CREATE_FOLLOW_UP)

    result = await follow_up_service.record(
        user=user,
        persona_id=request.persona_id,
        debt_ids=request.debt_ids,
        management_type_id=request.management_type_id,
        observation=request.observation,
        next_follow_up_date=request.next_follow_up_date,
    )

    return FollowUpCreateResponse(
        message=_summary(result),
        follow_up=FollowUpItem.model_validate(result.follow_up.model_dump()),
        outcomes=[
            DebtOutcomeItem(
                debt_id=o.debt_id,
                outcome=o.outcome.value,
                origin_state_id=o.origin_state_id,
                destination_state_id=o.destination_state_id,
                rule_id=o.rule_id,
                ui_message=o.ui_message,
                authorization_request_id=o.authorization_request_id,
            )
            for o in result.outcomes
        ],
    )


@router.get(
    "",
    response_model=FollowUpListResponse,
    responses={422: {"model": ErrorResponse, "description": "Missing filter"}},
    summary="List follow-ups",
)
async def list_follow_ups(
    persona_id: Optional[int] = Query(default=None, alias="personaId"),
    debt_id: Optional[int] = Query(default=None, alias="debtId"),
    user: AuthenticatedUser = Depends(get_current_user),
    follow_up_service: FollowUpService = Depends(get_follow_up_service),
) -> FollowUpListResponse:
    """Follow-up history for a person or a debt, newest first."""
    require_permission(user, Permission.READ_FOLLOW_UP)
    if persona_id is None and debt_id is None:
        raise ValidationError("Either personaId or debtId is required", field="persona_id")

    follow_ups = await follow_up_service.list_follow_ups(persona_id=persona_id, debt_id=debt_id)
    return FollowUpListResponse(
        follow_ups=[FollowUpItem.model_validate(f.model_dump()) for f in follow_ups],
        total_count=len(follow_ups),
    )
