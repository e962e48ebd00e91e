"""
Persistence collaborator for the follow-up workflow.

``CollectionsRepository`` is the contract the services depend on. The
in-memory implementation serializes every write behind one ``asyncio.Lock``;
``SqlCollectionsRepository`` gives the same guarantees with transactions.
"""
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog

from collections_service.core.exceptions import ConflictError, NotFoundError
from collections_service.core.permissions import Role
from collections_service.models import (
    AuthorizationRequest,
    Debt,
    DebtState,
    FollowUp,
    ManagementType,
    RequestStatus,
    TransitionRule,
    User,
)
from collections_service.utils.clock import utc_now

logger = structlog.get_logger(__name__)

# debt_id -> (expected origin state, destination state)
StateChanges = Dict[int, Tuple[int, int]]


def stale_state_error(debt_id: int, current_state_id: int, expected_state_id: int) -> ConflictError:
    """Conflict raised when a debt is no longer in the state a change was planned from."""
    return ConflictError(
        f"Debt {debt_id} is no longer in state {expected_state_id}",
        entity_id=debt_id,
        current_state_id=current_state_id,
        expected_state_id=expected_state_id,
    )


class CollectionsRepository(ABC):
    """Storage operations used by the rule store, recorder and workflow."""

    # Catalog
    @abstractmethod
    async def create_debt_state(self, state: DebtState) -> DebtState: ...

    @abstractmethod
    async def get_debt_state(self, state_id: int) -> Optional[DebtState]: ...

    @abstractmethod
    async def list_debt_states(self) -> List[DebtState]: ...

    @abstractmethod
    async def create_management_type(self, management_type: ManagementType) -> ManagementType: ...

    @abstractmethod
    async def get_management_type(self, management_type_id: int) -> Optional[ManagementType]: ...

    @abstractmethod
    async def get_management_type_by_name(self, name: str) -> Optional[ManagementType]: ...

    @abstractmethod
    async def list_management_types(self, active: Optional[bool] = None) -> List[ManagementType]: ...

    # Rules
    @abstractmethod
    async def create_rule(self, rule: TransitionRule) -> TransitionRule: ...

    @abstractmethod
    async def get_rule(self, rule_id: int) -> Optional[TransitionRule]: ...

    @abstractmethod
    async def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> TransitionRule: ...

    @abstractmethod
    async def list_rules(
        self,
        management_type_id: Optional[int] = None,
        origin_state_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> List[TransitionRule]: ...

    async def get_active_rules(self, management_type_id: int) -> List[TransitionRule]:
        """Active rules of a management type, ordered by ID."""
        return await self.list_rules(management_type_id=management_type_id, active=True)

    # Debts and users
    @abstractmethod
    async def create_debt(self, debt: Debt) -> Debt: ...

    @abstractmethod
    async def get_debt(self, debt_id: int) -> Optional[Debt]: ...

    async def get_debt_state_id(self, debt_id: int) -> int:
        debt = await self.get_debt(debt_id)
        if debt is None:
            raise NotFoundError("Debt", debt_id)
        return debt.current_state_id

    @abstractmethod
    async def set_debt_state(self, debt_id: int, state_id: int) -> Debt: ...

    @abstractmethod
    async def create_user(self, user: User) -> User: ...

    @abstractmethod
    async def get_active_supervisor_ids(self) -> List[int]: ...

    # Follow-ups
    @abstractmethod
    async def save_follow_up(
        self,
        follow_up: FollowUp,
        state_changes: StateChanges,
        authorization_requests: List[AuthorizationRequest],
    ) -> Tuple[FollowUp, List[AuthorizationRequest]]:
        """
        Persist a follow-up, its immediate state changes and its authorization
        requests as one unit. Requests are linked to the new follow-up.

        Every changed debt must still be in its expected origin state, and
        every request's debt in the request's origin state.

        Raises:
            NotFoundError: Unknown debt
            ConflictError: A debt moved since the changes were planned;
                nothing is persisted
        """

    @abstractmethod
    async def list_follow_ups(
        self, persona_id: Optional[int] = None, debt_id: Optional[int] = None
    ) -> List[FollowUp]: ...

    # Authorization requests
    @abstractmethod
    async def create_authorization_request(
        self, request: AuthorizationRequest
    ) -> AuthorizationRequest:
        """
        Persist a Pending request for a debt still in the request's origin state.

        Raises:
            NotFoundError: Unknown debt
            ConflictError: The debt is no longer in the origin state
        """

    @abstractmethod
    async def get_authorization_request(self, request_id: int) -> Optional[AuthorizationRequest]: ...

    @abstractmethod
    async def list_authorization_requests(
        self,
        status: Optional[RequestStatus] = None,
        supervisor_id: Optional[int] = None,
        manager_id: Optional[int] = None,
    ) -> List[AuthorizationRequest]: ...

    @abstractmethod
    async def resolve_authorization_request(
        self,
        request_id: int,
        status: RequestStatus,
        resolver_id: int,
        comment: Optional[str],
        resolved_at: datetime,
    ) -> AuthorizationRequest:
        """
        Resolve a pending request. Approving also moves the debt to the
        destination state in the same unit of work.

        Raises:
            NotFoundError: Unknown request or debt
            ConflictError: Request no longer pending, or debt left the origin state
        """

    async def health_check(self) -> bool:
        return True


class InMemoryCollectionsRepository(CollectionsRepository):
    """
    Process-local store for development and tests.

    Every write runs under a single lock, so units of work never
    interleave. Nothing is mutated until all checks for a unit have passed.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._debt_states: Dict[int, DebtState] = {}
        self._management_types: Dict[int, ManagementType] = {}
        self._rules: Dict[int, TransitionRule] = {}
        self._debts: Dict[int, Debt] = {}
        self._users: Dict[int, User] = {}
        self._follow_ups: Dict[int, FollowUp] = {}
        self._requests: Dict[int, AuthorizationRequest] = {}

    def _with_id(self, model, store: Dict[int, Any]):
        model_id = model.id if model.id is not None else max(store, default=0) + 1
        stored = model.model_copy(update={"id": model_id}, deep=True)
        store[model_id] = stored
        return stored.model_copy(deep=True)

    # Catalog
    async def create_debt_state(self, state: DebtState) -> DebtState:
        async with self._lock:
            return self._with_id(state, self._debt_states)

    async def get_debt_state(self, state_id: int) -> Optional[DebtState]:
        state = self._debt_states.get(state_id)
        return state.model_copy() if state else None

    async def list_debt_states(self) -> List[DebtState]:
        states = sorted(self._debt_states.values(), key=lambda s: (s.display_order, s.id))
        return [s.model_copy() for s in states]

    async def create_management_type(self, management_type: ManagementType) -> ManagementType:
        async with self._lock:
            return self._with_id(management_type, self._management_types)

    async def get_management_type(self, management_type_id: int) -> Optional[ManagementType]:
        management_type = self._management_types.get(management_type_id)
        return management_type.model_copy() if management_type else None

    async def get_management_type_by_name(self, name: str) -> Optional[ManagementType]:
        for management_type in self._management_types.values():
            if management_type.name == name:
                return management_type.model_copy()
        return None

    async def list_management_types(self, active: Optional[bool] = None) -> List[ManagementType]:
        types = [
            t for t in self._management_types.values()
            if active is None or t.active == active
        ]
        types.sort(key=lambda t: (t.display_order, t.id))
        return [t.model_copy() for t in types]

    # Rules
    async def create_rule(self, rule: TransitionRule) -> TransitionRule:
        async with self._lock:
            return self._with_id(rule, self._rules)

    async def get_rule(self, rule_id: int) -> Optional[TransitionRule]:
        rule = self._rules.get(rule_id)
        return rule.model_copy(deep=True) if rule else None

    async def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> TransitionRule:
        async with self._lock:
            if rule_id not in self._rules:
                raise NotFoundError("TransitionRule", rule_id)
            updated = self._rules[rule_id].model_copy(update=changes)
            self._rules[rule_id] = updated
            return updated.model_copy(deep=True)

    async def list_rules(
        self,
        management_type_id: Optional[int] = None,
        origin_state_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> List[TransitionRule]:
        rules = [
            rule for rule in self._rules.values()
            if (management_type_id is None or rule.management_type_id == management_type_id)
            and (origin_state_id is None or rule.origin_state_id == origin_state_id)
            and (active is None or rule.active == active)
        ]
        rules.sort(key=lambda r: r.id)
        return [r.model_copy(deep=True) for r in rules]

    # Debts and users
    async def create_debt(self, debt: Debt) -> Debt:
        async with self._lock:
            return self._with_id(debt, self._debts)

    async def get_debt(self, debt_id: int) -> Optional[Debt]:
        debt = self._debts.get(debt_id)
        return debt.model_copy() if debt else None

    async def set_debt_state(self, debt_id: int, state_id: int) -> Debt:
        async with self._lock:
            if debt_id not in self._debts:
                raise NotFoundError("Debt", debt_id)
            return self._apply_state(debt_id, state_id).model_copy()

    def _check_debt_in_state(self, debt_id: int, expected_state_id: int) -> None:
        current_state_id = self._debts[debt_id].current_state_id
        if current_state_id != expected_state_id:
            raise stale_state_error(debt_id, current_state_id, expected_state_id)

    def _apply_state(self, debt_id: int, state_id: int) -> Debt:
        debt = self._debts[debt_id].model_copy(
            update={"current_state_id": state_id, "updated_at": utc_now()}
        )
        self._debts[debt_id] = debt
        return debt

    async def create_user(self, user: User) -> User:
        async with self._lock:
            return self._with_id(user, self._users)

    async def get_active_supervisor_ids(self) -> List[int]:
        return sorted(
            user.id for user in self._users.values()
            if user.active and user.role == Role.SUPERVISOR
        )

    # Follow-ups
    async def save_follow_up(
        self,
        follow_up: FollowUp,
        state_changes: StateChanges,
        authorization_requests: List[AuthorizationRequest],
    ) -> Tuple[FollowUp, List[AuthorizationRequest]]:
        async with self._lock:
            involved = (
                set(follow_up.debt_ids)
                | set(state_changes)
                | {request.debt_id for request in authorization_requests}
            )
            missing = [debt_id for debt_id in involved if debt_id not in self._debts]
            if missing:
                raise NotFoundError("Debt", sorted(missing)[0])

            for debt_id, (origin_state_id, _) in state_changes.items():
                self._check_debt_in_state(debt_id, origin_state_id)
            for request in authorization_requests:
                self._check_debt_in_state(request.debt_id, request.origin_state_id)

            saved = self._with_id(follow_up, self._follow_ups)
            for debt_id, (_, destination_state_id) in state_changes.items():
                self._apply_state(debt_id, destination_state_id)

            created = [
                self._with_id(
                    request.model_copy(update={"follow_up_id": saved.id}), self._requests
                )
                for request in authorization_requests
            ]

        logger.info(
            "Saved follow-up",
            follow_up_id=saved.id,
            debt_count=len(saved.debt_ids),
            state_changes=len(state_changes),
            authorization_requests=len(created),
        )
        return saved, created

    async def list_follow_ups(
        self, persona_id: Optional[int] = None, debt_id: Optional[int] = None
    ) -> List[FollowUp]:
        follow_ups = [
            f for f in self._follow_ups.values()
            if (persona_id is None or f.persona_id == persona_id)
            and (debt_id is None or debt_id in f.debt_ids)
        ]
        follow_ups.sort(key=lambda f: (f.created_at, f.id), reverse=True)
        return [f.model_copy(deep=True) for f in follow_ups]

    # Authorization requests
    async def create_authorization_request(
        self, request: AuthorizationRequest
    ) -> AuthorizationRequest:
        async with self._lock:
            if request.debt_id not in self._debts:
                raise NotFoundError("Debt", request.debt_id)
            self._check_debt_in_state(request.debt_id, request.origin_state_id)
            return self._with_id(request, self._requests)

    async def get_authorization_request(self, request_id: int) -> Optional[AuthorizationRequest]:
        request = self._requests.get(request_id)
        return request.model_copy() if request else None

    async def list_authorization_requests(
        self,
        status: Optional[RequestStatus] = None,
        supervisor_id: Optional[int] = None,
        manager_id: Optional[int] = None,
    ) -> List[AuthorizationRequest]:
        requests = [
            r for r in self._requests.values()
            if (status is None or r.status == status)
            and (supervisor_id is None or r.assigned_supervisor_id == supervisor_id)
            and (manager_id is None or r.requesting_manager_id == manager_id)
        ]
        requests.sort(key=lambda r: (r.requested_at, r.id))
        return [r.model_copy() for r in requests]

    async def resolve_authorization_request(
        self,
        request_id: int,
        status: RequestStatus,
        resolver_id: int,
        comment: Optional[str],
        resolved_at: datetime,
    ) -> AuthorizationRequest:
        async with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise NotFoundError("AuthorizationRequest", request_id)
            if not request.is_pending:
                raise ConflictError(
                    f"Authorization request {request_id} is already {request.status.value}",
                    entity_id=request_id,
                    current_status=request.status.value,
                )

            if status == RequestStatus.APPROVED:
                debt = self._debts.get(request.debt_id)
                if debt is None:
                    raise NotFoundError("Debt", request.debt_id)
                self._check_debt_in_state(debt.id, request.origin_state_id)
                self._apply_state(debt.id, request.destination_state_id)

            resolved = request.model_copy(update={
                "status": status,
                "resolver_id": resolver_id,
                "supervisor_comment": comment,
                "resolved_at": resolved_at,
            })
            self._requests[request_id] = resolved
            return resolved.model_copy()
