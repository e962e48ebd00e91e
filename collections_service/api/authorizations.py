"""
Authorization workflow API endpoints for supervisor approval of state changes.
"""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from collections_service.core.dependencies import get_authorization_service, get_current_user
from collections_service.core.permissions import AuthenticatedUser, Permission, require_permission
from collections_service.models import RequestPriority, RequestStatus
from collections_service.schemas.authorization import (
    AuthorizationCreateRequest,
    AuthorizationListResponse,
    AuthorizationRequestItem,
    AuthorizationResolveRequest,
    PendingCountResponse,
)
from collections_service.schemas.common import ErrorResponse
from collections_service.services.authorization_service import AuthorizationService, QueuedRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/authorizations", tags=["authorizations"])


def _to_item(queued: QueuedRequest) -> AuthorizationRequestItem:
    return AuthorizationRequestItem(
        **queued.request.model_dump(),
        priority=queued.priority,
        waiting_hours=queued.waiting_hours,
    )


@router.post(
    "",
    response_model=AuthorizationRequestItem,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Debt assigned to another manager"},
        404: {"model": ErrorResponse, "description": "Unknown debt or state"},
        409: {"model": ErrorResponse, "description": "Debt changed state"},
        422: {"model": ErrorResponse, "description": "Invalid state change"},
    },
    summary="Request a state change",
)
async def request_authorization(
    request: AuthorizationCreateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> AuthorizationRequestItem:
    """Ask a supervisor to approve moving a debt to another state."""
    require_permission(user, Permission.REQUEST_AUTHORIZATION)

    created = await authorization_service.request_change(
        debt_id=request.debt_id,
        origin_state_id=request.origin_state_id,
        destination_state_id=request.destination_state_id,
        requester=user,
        comment=request.comment,
    )
    return _to_item(authorization_service.with_priority(created))


@router.post(
    "/resolve",
    response_model=AuthorizationRequestItem,
    responses={
        403: {"model": ErrorResponse, "description": "Caller may not resolve this request"},
        404: {"model": ErrorResponse, "description": "Request not found"},
        409: {"model": ErrorResponse, "description": "Request already resolved"},
    },
    summary="Approve or reject a request",
    description="Approving applies the requested state to the debt in the same transaction",
)
async def resolve_authorization(
    request: AuthorizationResolveRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> AuthorizationRequestItem:
    require_permission(user, Permission.RESOLVE_AUTHORIZATION)

    resolved = await authorization_service.resolve(
        request_id=request.request_id,
        approve=request.approve,
        supervisor=user,
        comment=request.supervisor_comment,
    )

    logger.info(
        "Authorization request resolved",
        request_id=request.request_id,
        approved=request.approve,
        supervisor_id=user.id,
    )
    return _to_item(authorization_service.with_priority(resolved))


@router.get(
    "",
    response_model=AuthorizationListResponse,
    summary="List authorization requests",
)
async def list_authorizations(
    request_status: Optional[RequestStatus] = Query(default=None, alias="status"),
    priority: Optional[RequestPriority] = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> AuthorizationListResponse:
    """Requests visible to the caller, oldest first."""
    require_permission(user, Permission.READ_AUTHORIZATION)

    queued = await authorization_service.list_requests(
        user, status=request_status, priority=priority
    )
    return AuthorizationListResponse(
        requests=[_to_item(item) for item in queued],
        total_count=len(queued),
    )


@router.get(
    "/count",
    response_model=PendingCountResponse,
    summary="Count pending requests",
)
async def count_pending_authorizations(
    user: AuthenticatedUser = Depends(get_current_user),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> PendingCountResponse:
    require_permission(user, Permission.READ_AUTHORIZATION)
    return PendingCountResponse(pending_count=await authorization_service.count_pending(user))


@router.get(
    "/{request_id}",
    response_model=AuthorizationRequestItem,
    responses={404: {"model": ErrorResponse, "description": "Request not found"}},
    summary="Get an authorization request",
)
async def get_authorization(
    request_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
) -> AuthorizationRequestItem:
    require_permission(user, Permission.READ_AUTHORIZATION)
    return _to_item(await authorization_service.get_request(request_id, user))
