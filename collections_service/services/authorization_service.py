"""
Authorization workflow for sensitive debt state changes.

Requests move Pending -> Approved | Rejected exactly once. Approval applies
the destination state in the same unit of work as the status change.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import structlog

from collections_service.core.config import Settings
from collections_service.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from collections_service.core.logging import log_business_event
from collections_service.core.permissions import AuthenticatedUser, Role, require_debt_access
from collections_service.database.repository import CollectionsRepository
from collections_service.models import AuthorizationRequest, RequestPriority, RequestStatus
from collections_service.utils.clock import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QueuedRequest:
    """Authorization request together with its read-time priority."""

    request: AuthorizationRequest
    priority: RequestPriority
    waiting_hours: float


class AuthorizationService:
    """Service for creating, listing and resolving authorization requests."""

    def __init__(self, repository: CollectionsRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    async def prepare_change(
        self,
        debt_id: int,
        origin_state_id: int,
        destination_state_id: int,
        requesting_manager_id: int,
        comment: Optional[str] = None,
        follow_up_id: Optional[int] = None,
    ) -> AuthorizationRequest:
        """
        Build (but do not persist) a Pending request, assigned to the first
        active supervisor when there is one.
        """
        if origin_state_id == destination_state_id:
            raise ValidationError(
                "Destination state must differ from the origin state",
                field="destination_state_id",
                value=destination_state_id,
            )

        supervisors = await self.repository.get_active_supervisor_ids()
        if not supervisors:
            logger.warning("No active supervisor, request left unassigned", debt_id=debt_id)

        return AuthorizationRequest(
            follow_up_id=follow_up_id,
            debt_id=debt_id,
            origin_state_id=origin_state_id,
            destination_state_id=destination_state_id,
            requesting_manager_id=requesting_manager_id,
            assigned_supervisor_id=supervisors[0] if supervisors else None,
            requester_comment=comment,
        )

    async def request_change(
        self,
        debt_id: int,
        origin_state_id: int,
        destination_state_id: int,
        requester: AuthenticatedUser,
        comment: Optional[str] = None,
    ) -> AuthorizationRequest:
        """
        Open a Pending authorization request. The debt is not modified.

        Raises:
            NotFoundError: Unknown debt or destination state
            ForbiddenError: Manager requesting a change on a debt assigned to
                someone else
            ValidationError: Origin equals destination, or origin is not the
                debt's current state
            ConflictError: The debt changed state before the request was stored
        """
        debt = await self.repository.get_debt(debt_id)
        if debt is None:
            raise NotFoundError("Debt", debt_id)
        require_debt_access(requester, debt_id, debt.assigned_manager_id)

        if debt.current_state_id != origin_state_id:
            raise ValidationError(
                f"Debt {debt_id} is in state {debt.current_state_id}, not {origin_state_id}",
                field="origin_state_id",
                value=origin_state_id,
            )
        if await self.repository.get_debt_state(destination_state_id) is None:
            raise NotFoundError("DebtState", destination_state_id)

        request = await self.prepare_change(
            debt_id, origin_state_id, destination_state_id, requester.id, comment
        )
        created = await self.repository.create_authorization_request(request)

        log_business_event(
            "authorization_requested",
            request_id=created.id,
            debt_id=debt_id,
            origin_state_id=origin_state_id,
            destination_state_id=destination_state_id,
            requesting_manager_id=requester.id,
            assigned_supervisor_id=created.assigned_supervisor_id,
        )
        return created

    async def resolve(
        self,
        request_id: int,
        approve: bool,
        supervisor: AuthenticatedUser,
        comment: Optional[str] = None,
    ) -> AuthorizationRequest:
        """
        Approve or reject a pending request.

        Raises:
            NotFoundError: Unknown request
            ConflictError: Request already resolved, or the debt has left the
                request's origin state
            ForbiddenError: Request assigned to another supervisor
        """
        request = await self.repository.get_authorization_request(request_id)
        if request is None:
            raise NotFoundError("AuthorizationRequest", request_id)

        if (
            request.assigned_supervisor_id is not None
            and request.assigned_supervisor_id != supervisor.id
            and not supervisor.is_administrator
        ):
            raise ForbiddenError(
                f"Authorization request {request_id} is assigned to another supervisor",
                request_id=request_id,
                assigned_supervisor_id=request.assigned_supervisor_id,
            )

        status = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
        resolved = await self.repository.resolve_authorization_request(
            request_id=request_id,
            status=status,
            resolver_id=supervisor.id,
            comment=comment,
            resolved_at=utc_now(),
        )

        log_business_event(
            "authorization_resolved",
            request_id=request_id,
            debt_id=resolved.debt_id,
            status=resolved.status.value,
            resolver_id=supervisor.id,
        )
        if approve:
            log_business_event(
                "debt_state_changed",
                debt_id=resolved.debt_id,
                origin_state_id=resolved.origin_state_id,
                destination_state_id=resolved.destination_state_id,
                authorization_request_id=request_id,
            )
        return resolved

    async def get_request(self, request_id: int, user: AuthenticatedUser) -> QueuedRequest:
        request = await self.repository.get_authorization_request(request_id)
        if request is None or not self._visible_to(request, user):
            raise NotFoundError("AuthorizationRequest", request_id)
        return self.with_priority(request)

    async def list_requests(
        self,
        user: AuthenticatedUser,
        status: Optional[RequestStatus] = None,
        priority: Optional[RequestPriority] = None,
        now: Optional[datetime] = None,
    ) -> List[QueuedRequest]:
        """
        List requests visible to ``user``, oldest first.

        Supervisors see requests assigned to them (or unassigned), managers
        see their own, administrators see everything.
        """
        requests = await self._visible_requests(user, status)
        queued = [self.with_priority(request, now) for request in requests]
        if priority is not None:
            queued = [item for item in queued if item.priority == priority]
        return queued

    async def count_pending(self, user: AuthenticatedUser) -> int:
        return len(await self._visible_requests(user, RequestStatus.PENDING))

    def with_priority(
        self, request: AuthorizationRequest, now: Optional[datetime] = None
    ) -> QueuedRequest:
        now = now or utc_now()
        return QueuedRequest(
            request=request,
            priority=request.priority(
                now,
                urgent_after_hours=self.settings.urgent_after_hours,
                high_after_hours=self.settings.high_priority_after_hours,
            ),
            waiting_hours=round(request.waiting_hours(now), 2),
        )

    async def _visible_requests(
        self, user: AuthenticatedUser, status: Optional[RequestStatus]
    ) -> List[AuthorizationRequest]:
        manager_id = user.id if user.role == Role.MANAGER else None
        requests = await self.repository.list_authorization_requests(
            status=status, manager_id=manager_id
        )
        return [request for request in requests if self._visible_to(request, user)]

    @staticmethod
    def _visible_to(request: AuthorizationRequest, user: AuthenticatedUser) -> bool:
        if user.role == Role.SUPERVISOR:
            return request.assigned_supervisor_id in (None, user.id)
        if user.role == Role.MANAGER:
            return request.requesting_manager_id == user.id
        return True
