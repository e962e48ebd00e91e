"""
Tests for the SQLAlchemy repository on in-memory SQLite.
"""
from datetime import timedelta

import pytest
import pytest_asyncio

from collections_service.core.exceptions import ConflictError, NotFoundError
from collections_service.database import SqlCollectionsRepository
from collections_service.models import AuthorizationRequest, FollowUp, RequestStatus
from collections_service.utils.clock import utc_now
from tests.seed_data import (
    AGREEMENT_RULE,
    CALL_FALLBACK_RULE,
    CALL_RULE,
    CLOSED,
    IN_MANAGEMENT,
    MANAGED_DEBT,
    MANAGER_ID,
    NEW,
    NEW_DEBT,
    OTHER_SUPERVISOR_ID,
    PAYMENT_AGREEMENT,
    PAYMENT_AGREEMENT_TYPE,
    PERSONA_ID,
    PHONE_CALL,
    SUPERVISOR_ID,
    seed_repository,
)


@pytest_asyncio.fixture
async def sql_repository():
    repository = SqlCollectionsRepository.from_url("sqlite://")
    repository.create_schema()
    await seed_repository(repository)
    yield repository
    repository.engine.dispose()


def follow_up(debt_ids, management_type_id=PHONE_CALL):
    return FollowUp(
        manager_id=MANAGER_ID,
        persona_id=PERSONA_ID,
        debt_ids=debt_ids,
        management_type_id=management_type_id,
        observation="Called",
        next_follow_up_date=utc_now() + timedelta(days=1),
    )


def pending(debt_id=MANAGED_DEBT):
    return AuthorizationRequest(
        debt_id=debt_id,
        origin_state_id=IN_MANAGEMENT,
        destination_state_id=PAYMENT_AGREEMENT,
        requesting_manager_id=MANAGER_ID,
        assigned_supervisor_id=SUPERVISOR_ID,
    )


class TestSqlCollectionsRepository:
    """Test cases for SqlCollectionsRepository."""

    @pytest.mark.asyncio
    async def test_catalog_round_trip(self, sql_repository):
        states = await sql_repository.list_debt_states()
        rules = await sql_repository.get_active_rules(PHONE_CALL)

        assert [s.id for s in states] == [NEW, IN_MANAGEMENT, PAYMENT_AGREEMENT, CLOSED]
        assert [r.id for r in rules] == [CALL_RULE, CALL_FALLBACK_RULE]
        assert (await sql_repository.get_rule(AGREEMENT_RULE)).requires_authorization is True
        assert await sql_repository.get_active_supervisor_ids() == [SUPERVISOR_ID, OTHER_SUPERVISOR_ID]

    @pytest.mark.asyncio
    async def test_update_rule(self, sql_repository):
        updated = await sql_repository.update_rule(
            CALL_RULE,
            {"additional_validation": {"type": "comparison", "field": "days_overdue", "operator": "gt", "value": 1}},
        )

        assert updated.additional_validation["operator"] == "gt"
        with pytest.raises(NotFoundError):
            await sql_repository.update_rule(999, {"priority": 1})

    @pytest.mark.asyncio
    async def test_save_follow_up_is_atomic_unit(self, sql_repository):
        saved, requests = await sql_repository.save_follow_up(
            follow_up([NEW_DEBT, MANAGED_DEBT]),
            state_changes={NEW_DEBT: (NEW, IN_MANAGEMENT)},
            authorization_requests=[pending()],
        )

        assert saved.id is not None
        assert saved.debt_ids == [NEW_DEBT, MANAGED_DEBT]
        assert requests[0].follow_up_id == saved.id
        assert requests[0].status == RequestStatus.PENDING
        assert await sql_repository.get_debt_state_id(NEW_DEBT) == IN_MANAGEMENT
        assert await sql_repository.get_debt_state_id(MANAGED_DEBT) == IN_MANAGEMENT

    @pytest.mark.asyncio
    async def test_save_follow_up_with_unknown_debt_persists_nothing(self, sql_repository):
        with pytest.raises(NotFoundError):
            await sql_repository.save_follow_up(
                follow_up([NEW_DEBT, 999999]),
                state_changes={NEW_DEBT: (NEW, IN_MANAGEMENT)},
                authorization_requests=[],
            )

        assert await sql_repository.list_follow_ups(persona_id=PERSONA_ID) == []
        assert await sql_repository.get_debt_state_id(NEW_DEBT) == NEW

    @pytest.mark.asyncio
    async def test_save_follow_up_from_stale_state_conflicts(self, sql_repository):
        """Test that a change planned before the debt moved is not applied."""
        await sql_repository.set_debt_state(NEW_DEBT, CLOSED)

        with pytest.raises(ConflictError) as exc_info:
            await sql_repository.save_follow_up(
                follow_up([NEW_DEBT]),
                state_changes={NEW_DEBT: (NEW, IN_MANAGEMENT)},
                authorization_requests=[],
            )

        assert exc_info.value.context["current_state_id"] == CLOSED
        assert await sql_repository.get_debt_state_id(NEW_DEBT) == CLOSED
        assert await sql_repository.list_follow_ups(persona_id=PERSONA_ID) == []

    @pytest.mark.asyncio
    async def test_save_follow_up_with_stale_request_persists_nothing(self, sql_repository):
        await sql_repository.set_debt_state(MANAGED_DEBT, CLOSED)

        with pytest.raises(ConflictError):
            await sql_repository.save_follow_up(
                follow_up([NEW_DEBT, MANAGED_DEBT]),
                state_changes={NEW_DEBT: (NEW, IN_MANAGEMENT)},
                authorization_requests=[pending()],
            )

        assert await sql_repository.get_debt_state_id(NEW_DEBT) == NEW
        assert await sql_repository.list_authorization_requests() == []
        assert await sql_repository.list_follow_ups(persona_id=PERSONA_ID) == []

    @pytest.mark.asyncio
    async def test_create_request_from_stale_state_conflicts(self, sql_repository):
        await sql_repository.set_debt_state(MANAGED_DEBT, CLOSED)

        with pytest.raises(ConflictError):
            await sql_repository.create_authorization_request(pending())

        assert await sql_repository.list_authorization_requests() == []

    @pytest.mark.asyncio
    async def test_list_follow_ups_by_debt(self, sql_repository):
        first, _ = await sql_repository.save_follow_up(follow_up([MANAGED_DEBT]), {}, [])
        second, _ = await sql_repository.save_follow_up(follow_up([NEW_DEBT, MANAGED_DEBT]), {}, [])

        by_debt = await sql_repository.list_follow_ups(debt_id=MANAGED_DEBT)
        by_new_debt = await sql_repository.list_follow_ups(debt_id=NEW_DEBT)

        assert [f.id for f in by_debt] == [second.id, first.id]
        assert [f.id for f in by_new_debt] == [second.id]

    @pytest.mark.asyncio
    async def test_approve_applies_destination(self, sql_repository):
        request = await sql_repository.create_authorization_request(pending())

        resolved = await sql_repository.resolve_authorization_request(
            request.id, RequestStatus.APPROVED, SUPERVISOR_ID, "OK", utc_now()
        )

        assert resolved.status == RequestStatus.APPROVED
        assert resolved.resolver_id == SUPERVISOR_ID
        assert resolved.supervisor_comment == "OK"
        assert await sql_repository.get_debt_state_id(MANAGED_DEBT) == PAYMENT_AGREEMENT

    @pytest.mark.asyncio
    async def test_second_resolution_conflicts(self, sql_repository):
        request = await sql_repository.create_authorization_request(pending())
        await sql_repository.resolve_authorization_request(
            request.id, RequestStatus.REJECTED, SUPERVISOR_ID, None, utc_now()
        )

        with pytest.raises(ConflictError):
            await sql_repository.resolve_authorization_request(
                request.id, RequestStatus.APPROVED, SUPERVISOR_ID, None, utc_now()
            )

        assert await sql_repository.get_debt_state_id(MANAGED_DEBT) == IN_MANAGEMENT
        stored = await sql_repository.get_authorization_request(request.id)
        assert stored.status == RequestStatus.REJECTED

    @pytest.mark.asyncio
    async def test_approve_after_debt_moved_conflicts(self, sql_repository):
        request = await sql_repository.create_authorization_request(pending())
        await sql_repository.set_debt_state(MANAGED_DEBT, CLOSED)

        with pytest.raises(ConflictError):
            await sql_repository.resolve_authorization_request(
                request.id, RequestStatus.APPROVED, SUPERVISOR_ID, None, utc_now()
            )

        stored = await sql_repository.get_authorization_request(request.id)
        assert stored.status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_list_authorization_requests_filters(self, sql_repository):
        await sql_repository.create_authorization_request(pending())

        assert len(await sql_repository.list_authorization_requests(status=RequestStatus.PENDING)) == 1
        assert await sql_repository.list_authorization_requests(status=RequestStatus.APPROVED) == []
        assert len(await sql_repository.list_authorization_requests(manager_id=MANAGER_ID)) == 1
        assert await sql_repository.list_authorization_requests(supervisor_id=OTHER_SUPERVISOR_ID) == []

    @pytest.mark.asyncio
    async def test_health_check(self, sql_repository):
        assert await sql_repository.health_check() is True

    @pytest.mark.asyncio
    async def test_management_type_by_name(self, sql_repository):
        found = await sql_repository.get_management_type_by_name("Payment Agreement")

        assert found.id == PAYMENT_AGREEMENT_TYPE
        assert await sql_repository.get_management_type_by_name("Telegram") is None
