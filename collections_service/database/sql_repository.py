"""
Relational implementation of the collections repository on SQLAlchemy.

Each unit of work runs in one transaction. Authorization resolution uses a
conditional ``UPDATE ... WHERE status = 'Pending'`` so only one of several
concurrent resolutions can win. Debt state changes lock the debt rows and
only apply while the debt is still in the state the change was planned from.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import structlog
from sqlalchemy import create_engine, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from collections_service.core.exceptions import ConflictError, NotFoundError
from collections_service.core.permissions import Role
from collections_service.database.repository import (
    CollectionsRepository,
    StateChanges,
    stale_state_error,
)
from collections_service.database.tables import (
    AuthorizationRequestRow,
    Base,
    DebtRow,
    DebtStateRow,
    FollowUpDebtRow,
    FollowUpRow,
    ManagementTypeRow,
    TransitionRuleRow,
    UserRow,
)
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


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url == "sqlite://" or (database_url.startswith("sqlite") and ":memory:" in database_url):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class SqlCollectionsRepository(CollectionsRepository):
    """Repository backed by a relational database."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SqlCollectionsRepository":
        return cls(build_engine(database_url, echo=echo))

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ensured", url=self.engine.url.render_as_string())

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    @staticmethod
    def _lock_debts(session: Session, debt_ids: Iterable[int]) -> Dict[int, DebtRow]:
        """Load and row-lock debts in id order; every id must exist."""
        ordered = sorted(debt_ids)
        rows = session.scalars(
            select(DebtRow).where(DebtRow.id.in_(ordered)).order_by(DebtRow.id).with_for_update()
        ).all()
        debts = {row.id: row for row in rows}
        for debt_id in ordered:
            if debt_id not in debts:
                raise NotFoundError("Debt", debt_id)
        return debts

    @staticmethod
    def _check_debt_in_state(debt: DebtRow, expected_state_id: int) -> None:
        if debt.current_state_id != expected_state_id:
            raise stale_state_error(debt.id, debt.current_state_id, expected_state_id)

    def _row_values(self, model, exclude_none_id: bool = True) -> Dict[str, Any]:
        values = model.model_dump()
        if exclude_none_id and values.get("id") is None:
            values.pop("id", None)
        return values

    # Catalog
    async def create_debt_state(self, state: DebtState) -> DebtState:
        with self._transaction() as session:
            row = DebtStateRow(**self._row_values(state))
            session.add(row)
            session.flush()
            return DebtState.model_validate(row)

    async def get_debt_state(self, state_id: int) -> Optional[DebtState]:
        with self._transaction() as session:
            row = session.get(DebtStateRow, state_id)
            return DebtState.model_validate(row) if row else None

    async def list_debt_states(self) -> List[DebtState]:
        with self._transaction() as session:
            rows = session.scalars(
                select(DebtStateRow).order_by(DebtStateRow.display_order, DebtStateRow.id)
            )
            return [DebtState.model_validate(row) for row in rows]

    async def create_management_type(self, management_type: ManagementType) -> ManagementType:
        with self._transaction() as session:
            row = ManagementTypeRow(**self._row_values(management_type))
            session.add(row)
            session.flush()
            return ManagementType.model_validate(row)

    async def get_management_type(self, management_type_id: int) -> Optional[ManagementType]:
        with self._transaction() as session:
            row = session.get(ManagementTypeRow, management_type_id)
            return ManagementType.model_validate(row) if row else None

    async def get_management_type_by_name(self, name: str) -> Optional[ManagementType]:
        with self._transaction() as session:
            row = session.scalars(
                select(ManagementTypeRow).where(ManagementTypeRow.name == name)
            ).first()
            return ManagementType.model_validate(row) if row else None

    async def list_management_types(self, active: Optional[bool] = None) -> List[ManagementType]:
        query = select(ManagementTypeRow).order_by(ManagementTypeRow.display_order, ManagementTypeRow.id)
        if active is not None:
            query = query.where(ManagementTypeRow.active == active)
        with self._transaction() as session:
            return [ManagementType.model_validate(row) for row in session.scalars(query)]

    # Rules
    async def create_rule(self, rule: TransitionRule) -> TransitionRule:
        with self._transaction() as session:
            row = TransitionRuleRow(**self._row_values(rule))
            session.add(row)
            session.flush()
            return TransitionRule.model_validate(row)

    async def get_rule(self, rule_id: int) -> Optional[TransitionRule]:
        with self._transaction() as session:
            row = session.get(TransitionRuleRow, rule_id)
            return TransitionRule.model_validate(row) if row else None

    async def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> TransitionRule:
        with self._transaction() as session:
            row = session.get(TransitionRuleRow, rule_id)
            if row is None:
                raise NotFoundError("TransitionRule", rule_id)
            for field, value in changes.items():
                setattr(row, field, value)
            session.flush()
            return TransitionRule.model_validate(row)

    async def list_rules(
        self,
        management_type_id: Optional[int] = None,
        origin_state_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> List[TransitionRule]:
        query = select(TransitionRuleRow).order_by(TransitionRuleRow.id)
        if management_type_id is not None:
            query = query.where(TransitionRuleRow.management_type_id == management_type_id)
        if origin_state_id is not None:
            query = query.where(TransitionRuleRow.origin_state_id == origin_state_id)
        if active is not None:
            query = query.where(TransitionRuleRow.active == active)
        with self._transaction() as session:
            return [TransitionRule.model_validate(row) for row in session.scalars(query)]

    # Debts and users
    async def create_debt(self, debt: Debt) -> Debt:
        with self._transaction() as session:
            row = DebtRow(**self._row_values(debt))
            session.add(row)
            session.flush()
            return Debt.model_validate(row)

    async def get_debt(self, debt_id: int) -> Optional[Debt]:
        with self._transaction() as session:
            row = session.get(DebtRow, debt_id)
            return Debt.model_validate(row) if row else None

    async def set_debt_state(self, debt_id: int, state_id: int) -> Debt:
        with self._transaction() as session:
            row = session.get(DebtRow, debt_id)
            if row is None:
                raise NotFoundError("Debt", debt_id)
            row.current_state_id = state_id
            row.updated_at = utc_now()
            session.flush()
            return Debt.model_validate(row)

    async def create_user(self, user: User) -> User:
        with self._transaction() as session:
            values = self._row_values(user)
            values["role"] = user.role.value
            row = UserRow(**values)
            session.add(row)
            session.flush()
            return User.model_validate(row)

    async def get_active_supervisor_ids(self) -> List[int]:
        query = (
            select(UserRow.id)
            .where(UserRow.active.is_(True), UserRow.role == Role.SUPERVISOR.value)
            .order_by(UserRow.id)
        )
        with self._transaction() as session:
            return list(session.scalars(query))

    # Follow-ups
    async def save_follow_up(
        self,
        follow_up: FollowUp,
        state_changes: StateChanges,
        authorization_requests: List[AuthorizationRequest],
    ) -> Tuple[FollowUp, List[AuthorizationRequest]]:
        with self._transaction() as session:
            debt_ids = (
                set(follow_up.debt_ids)
                | set(state_changes)
                | {request.debt_id for request in authorization_requests}
            )
            debts = self._lock_debts(session, debt_ids)

            for debt_id, (origin_state_id, _) in state_changes.items():
                self._check_debt_in_state(debts[debt_id], origin_state_id)
            for request in authorization_requests:
                self._check_debt_in_state(debts[request.debt_id], request.origin_state_id)

            values = self._row_values(follow_up)
            values.pop("debt_ids")
            row = FollowUpRow(**values)
            row.debts = [
                FollowUpDebtRow(debt_id=debt_id, position=position)
                for position, debt_id in enumerate(follow_up.debt_ids)
            ]
            session.add(row)
            session.flush()

            now = utc_now()
            for debt_id, (origin_state_id, destination_state_id) in state_changes.items():
                result = session.execute(
                    update(DebtRow)
                    .where(DebtRow.id == debt_id, DebtRow.current_state_id == origin_state_id)
                    .values(current_state_id=destination_state_id, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.refresh(debts[debt_id])
                    raise stale_state_error(
                        debt_id, debts[debt_id].current_state_id, origin_state_id
                    )

            request_rows = []
            for request in authorization_requests:
                request_values = self._row_values(request)
                request_values["follow_up_id"] = row.id
                request_values["status"] = request.status.value
                request_row = AuthorizationRequestRow(**request_values)
                session.add(request_row)
                request_rows.append(request_row)
            session.flush()

            saved = FollowUp.model_validate(row)
            created = [AuthorizationRequest.model_validate(r) for r in request_rows]

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
        query = select(FollowUpRow).order_by(FollowUpRow.created_at.desc(), FollowUpRow.id.desc())
        if persona_id is not None:
            query = query.where(FollowUpRow.persona_id == persona_id)
        if debt_id is not None:
            query = query.where(
                FollowUpRow.id.in_(
                    select(FollowUpDebtRow.follow_up_id).where(FollowUpDebtRow.debt_id == debt_id)
                )
            )
        with self._transaction() as session:
            return [FollowUp.model_validate(row) for row in session.scalars(query)]

    # Authorization requests
    async def create_authorization_request(
        self, request: AuthorizationRequest
    ) -> AuthorizationRequest:
        with self._transaction() as session:
            debts = self._lock_debts(session, [request.debt_id])
            self._check_debt_in_state(debts[request.debt_id], request.origin_state_id)
            values = self._row_values(request)
            values["status"] = request.status.value
            row = AuthorizationRequestRow(**values)
            session.add(row)
            session.flush()
            return AuthorizationRequest.model_validate(row)

    async def get_authorization_request(self, request_id: int) -> Optional[AuthorizationRequest]:
        with self._transaction() as session:
            row = session.get(AuthorizationRequestRow, request_id)
            return AuthorizationRequest.model_validate(row) if row else None

    async def list_authorization_requests(
        self,
        status: Optional[RequestStatus] = None,
        supervisor_id: Optional[int] = None,
        manager_id: Optional[int] = None,
    ) -> List[AuthorizationRequest]:
        query = select(AuthorizationRequestRow).order_by(
            AuthorizationRequestRow.requested_at, AuthorizationRequestRow.id
        )
        if status is not None:
            query = query.where(AuthorizationRequestRow.status == status.value)
        if supervisor_id is not None:
            query = query.where(AuthorizationRequestRow.assigned_supervisor_id == supervisor_id)
        if manager_id is not None:
            query = query.where(AuthorizationRequestRow.requesting_manager_id == manager_id)
        with self._transaction() as session:
            return [AuthorizationRequest.model_validate(row) for row in session.scalars(query)]

    async def resolve_authorization_request(
        self,
        request_id: int,
        status: RequestStatus,
        resolver_id: int,
        comment: Optional[str],
        resolved_at: datetime,
    ) -> AuthorizationRequest:
        with self._transaction() as session:
            request = session.get(AuthorizationRequestRow, request_id)
            if request is None:
                raise NotFoundError("AuthorizationRequest", request_id)
            if request.status != RequestStatus.PENDING.value:
                raise ConflictError(
                    f"Authorization request {request_id} is already {request.status}",
                    entity_id=request_id,
                    current_status=request.status,
                )

            if status == RequestStatus.APPROVED:
                debt = session.scalars(
                    select(DebtRow).where(DebtRow.id == request.debt_id).with_for_update()
                ).first()
                if debt is None:
                    raise NotFoundError("Debt", request.debt_id)
                self._check_debt_in_state(debt, request.origin_state_id)

            result = session.execute(
                update(AuthorizationRequestRow)
                .where(
                    AuthorizationRequestRow.id == request_id,
                    AuthorizationRequestRow.status == RequestStatus.PENDING.value,
                )
                .values(
                    status=status.value,
                    resolver_id=resolver_id,
                    supervisor_comment=comment,
                    resolved_at=resolved_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.refresh(request)
                raise ConflictError(
                    f"Authorization request {request_id} is already {request.status}",
                    entity_id=request_id,
                    current_status=request.status,
                )

            if status == RequestStatus.APPROVED:
                debt.current_state_id = request.destination_state_id
                debt.updated_at = utc_now()

            session.flush()
            session.refresh(request)
            return AuthorizationRequest.model_validate(request)

    async def health_check(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("Database health check failed", error=str(e))
            return False
