"""
Rule store API endpoints: transition rules, management types and debt states.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from collections_service.core.dependencies import get_current_user, get_rule_service
from collections_service.core.permissions import AuthenticatedUser, Permission, require_permission
from collections_service.models import ManagementType, TransitionRule
from collections_service.schemas.common import ErrorResponse
from collections_service.schemas.rules import (
    DebtStateItem,
    ManagementTypeCreateRequest,
    ManagementTypeItem,
    TransitionRuleCreateRequest,
    TransitionRuleItem,
    TransitionRuleListResponse,
    TransitionRuleUpdateRequest,
)
from collections_service.services.rule_service import RuleService

router = APIRouter(tags=["rules"])

NON_NULLABLE_RULE_FIELDS = ("requires_authorization", "priority", "active")


@router.get(
    "/config/rules",
    response_model=TransitionRuleListResponse,
    summary="List transition rules",
)
async def list_rules(
    management_type_id: Optional[int] = Query(default=None, alias="managementTypeId"),
    origin_state_id: Optional[int] = Query(default=None, alias="originStateId"),
    active: Optional[bool] = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> TransitionRuleListResponse:
    require_permission(user, Permission.READ_RULES)
    rules = await rule_service.list_rules(
        management_type_id=management_type_id,
        origin_state_id=origin_state_id,
        active=active,
    )
    return TransitionRuleListResponse(
        rules=[TransitionRuleItem.model_validate(rule.model_dump()) for rule in rules],
        total_count=len(rules),
    )


@router.post(
    "/config/rules",
    response_model=TransitionRuleItem,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Administrators only"},
        404: {"model": ErrorResponse, "description": "Unknown management type or state"},
        409: {"model": ErrorResponse, "description": "Duplicate active rule"},
        422: {"model": ErrorResponse, "description": "Malformed condition"},
    },
    summary="Create a transition rule",
)
async def create_rule(
    request: TransitionRuleCreateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> TransitionRuleItem:
    require_permission(user, Permission.MANAGE_RULES)
    created = await rule_service.create_rule(
        TransitionRule(**request.model_dump()), created_by=user.id
    )
    return TransitionRuleItem.model_validate(created.model_dump())


@router.patch(
    "/config/rules/{rule_id}",
    response_model=TransitionRuleItem,
    responses={
        403: {"model": ErrorResponse, "description": "Administrators only"},
        404: {"model": ErrorResponse, "description": "Rule not found"},
        409: {"model": ErrorResponse, "description": "Reactivation would duplicate a rule"},
    },
    summary="Update a transition rule",
)
async def update_rule(
    rule_id: int,
    request: TransitionRuleUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> TransitionRuleItem:
    require_permission(user, Permission.MANAGE_RULES)
    changes = {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field not in NON_NULLABLE_RULE_FIELDS
    }

    updated = await rule_service.update_rule(rule_id, changes)
    return TransitionRuleItem.model_validate(updated.model_dump())


@router.get(
    "/config/management-types",
    response_model=List[ManagementTypeItem],
    summary="List management types",
)
async def list_management_types(
    active: Optional[bool] = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> List[ManagementTypeItem]:
    require_permission(user, Permission.READ_RULES)
    types = await rule_service.list_management_types(active=active)
    return [ManagementTypeItem.model_validate(t.model_dump()) for t in types]


@router.post(
    "/config/management-types",
    response_model=ManagementTypeItem,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Administrators only"},
        409: {"model": ErrorResponse, "description": "Name already in use"},
    },
    summary="Create a management type",
)
async def create_management_type(
    request: ManagementTypeCreateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> ManagementTypeItem:
    require_permission(user, Permission.MANAGE_RULES)
    created = await rule_service.create_management_type(ManagementType(**request.model_dump()))
    return ManagementTypeItem.model_validate(created.model_dump())


@router.get(
    "/debt-states",
    response_model=List[DebtStateItem],
    summary="List debt states",
)
async def list_debt_states(
    user: AuthenticatedUser = Depends(get_current_user),
    rule_service: RuleService = Depends(get_rule_service),
) -> List[DebtStateItem]:
    require_permission(user, Permission.READ_RULES)
    return [DebtStateItem.model_validate(s.model_dump()) for s in await rule_service.list_debt_states()]
