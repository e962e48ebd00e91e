"""
Follow-up recorder.

Validates a follow-up submission, evaluates the transition rules for every
debt it covers and persists the follow-up, the immediate state changes and
any authorization requests as a single unit of work.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog

from collections_service.core.config import Settings
from collections_service.core.exceptions import NotFoundError, ValidationError
from collections_service.core.logging import log_business_event
from collections_service.core.permissions import AuthenticatedUser, require_debt_access
from collections_service.database.repository import CollectionsRepository, StateChanges
from collections_service.models import AuthorizationRequest, Debt, FollowUp
from collections_service.services.authorization_service import AuthorizationService
from collections_service.services.transition_evaluator import (
    TransitionDecision,
    TransitionEvaluator,
)
from collections_service.utils.clock import to_naive_utc, utc_now

logger = structlog.get_logger(__name__)


class Outcome(str, Enum):
    """What recording a follow-up did to a debt."""
    STATE_CHANGED = "state_changed"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DebtOutcome:
    debt_id: int
    outcome: Outcome
    origin_state_id: int
    destination_state_id: int
    rule_id: Optional[int] = None
    ui_message: Optional[str] = None
    authorization_request_id: Optional[int] = None


@dataclass(frozen=True)
class FollowUpResult:
    follow_up: FollowUp
    outcomes: List[DebtOutcome]
    authorization_requests: List[AuthorizationRequest] = field(default_factory=list)


class FollowUpService:
    """Service for recording and listing follow-ups."""

    def __init__(
        self,
        repository: CollectionsRepository,
        evaluator: TransitionEvaluator,
        authorization_service: AuthorizationService,
        settings: Settings,
    ):
        self.repository = repository
        self.evaluator = evaluator
        self.authorization_service = authorization_service
        self.settings = settings

    async def record(
        self,
        user: AuthenticatedUser,
        persona_id: int,
        debt_ids: Optional[List[int]],
        management_type_id: int,
        observation: Optional[str],
        next_follow_up_date: Optional[datetime],
    ) -> FollowUpResult:
        """
        Record a follow-up and route each debt through the transition rules.

        Args:
            user: Caller recording the interaction
            persona_id: Debtor contacted
            debt_ids: Debts covered by the interaction
            management_type_id: Kind of action taken
            observation: Free-text notes
            next_follow_up_date: When to contact the debtor again

        Returns:
            The persisted follow-up with a per-debt outcome

        Raises:
            ValidationError: Invalid submission, debt of another person, or no
                matching rule under the ``reject`` policy
            NotFoundError: Unknown debt
            ForbiddenError: Manager recording on a debt assigned to someone else
            ConflictError: A debt changed state while the follow-up was being
                recorded; nothing is persisted
        """
        await self._validate(debt_ids, management_type_id, observation, next_follow_up_date)

        debts = await self._load_debts(user, persona_id, list(dict.fromkeys(debt_ids)))
        decisions = await self._decide(management_type_id, debts)

        state_changes: StateChanges = {}
        pending: List[AuthorizationRequest] = []
        planned: List[Tuple[Debt, Optional[TransitionDecision], Outcome]] = []

        for debt in debts:
            decision = decisions[debt.id]
            if decision is None:
                if self.settings.unmatched_rule_policy == "reject":
                    raise ValidationError(
                        f"No transition rule for state {debt.current_state_id}",
                        field="management_type_id",
                        value=management_type_id,
                        debt_id=debt.id,
                    )
                logger.info(
                    "No transition rule matched, debt unchanged",
                    debt_id=debt.id,
                    management_type_id=management_type_id,
                    current_state_id=debt.current_state_id,
                )
                outcome = Outcome.UNCHANGED
            elif decision.changes_state and decision.requires_authorization:
                pending.append(await self.authorization_service.prepare_change(
                    debt_id=debt.id,
                    origin_state_id=decision.origin_state_id,
                    destination_state_id=decision.destination_state_id,
                    requesting_manager_id=user.id,
                    comment=observation,
                ))
                outcome = Outcome.AUTHORIZATION_REQUESTED
            elif decision.changes_state:
                state_changes[debt.id] = (decision.origin_state_id, decision.destination_state_id)
                outcome = Outcome.STATE_CHANGED
            else:
                outcome = Outcome.UNCHANGED
            planned.append((debt, decision, outcome))

        follow_up = FollowUp(
            manager_id=user.id,
            persona_id=persona_id,
            debt_ids=[debt.id for debt in debts],
            management_type_id=management_type_id,
            observation=observation,
            next_follow_up_date=to_naive_utc(next_follow_up_date),
        )
        saved, requests = await self.repository.save_follow_up(follow_up, state_changes, pending)
        request_ids = {request.debt_id: request.id for request in requests}

        outcomes = [
            DebtOutcome(
                debt_id=debt.id,
                outcome=outcome,
                origin_state_id=debt.current_state_id,
                destination_state_id=(
                    decision.destination_state_id if decision else debt.current_state_id
                ),
                rule_id=decision.rule_id if decision else None,
                ui_message=decision.ui_message if decision else None,
                authorization_request_id=request_ids.get(debt.id),
            )
            for debt, decision, outcome in planned
        ]

        self._log_events(user, saved, outcomes)
        return FollowUpResult(follow_up=saved, outcomes=outcomes, authorization_requests=requests)

    async def list_follow_ups(
        self, persona_id: Optional[int] = None, debt_id: Optional[int] = None
    ) -> List[FollowUp]:
        """Follow-ups for a person or a debt, newest first."""
        return await self.repository.list_follow_ups(persona_id=persona_id, debt_id=debt_id)

    async def _validate(
        self,
        debt_ids: Optional[List[int]],
        management_type_id: int,
        observation: Optional[str],
        next_follow_up_date: Optional[datetime],
    ) -> None:
        errors = []

        if not debt_ids:
            errors.append({"field": "debt_ids", "message": "At least one debt is required"})

        management_type = await self.repository.get_management_type(management_type_id)
        if management_type is None:
            errors.append({
                "field": "management_type_id",
                "message": f"Management type {management_type_id} does not exist",
            })
        elif not management_type.active:
            errors.append({
                "field": "management_type_id",
                "message": f"Management type {management_type_id} is inactive",
            })

        if next_follow_up_date is None:
            errors.append({"field": "next_follow_up_date", "message": "Next follow-up date is required"})
        elif to_naive_utc(next_follow_up_date).date() < utc_now().date():
            errors.append({
                "field": "next_follow_up_date",
                "message": "Next follow-up date cannot be in the past",
            })

        max_length = self.settings.observation_max_length
        if observation and len(observation) > max_length:
            errors.append({
                "field": "observation",
                "message": f"Observation exceeds {max_length} characters",
            })

        if errors:
            raise ValidationError("Follow-up submission is invalid", errors=errors)

    async def _load_debts(
        self, user: AuthenticatedUser, persona_id: int, debt_ids: List[int]
    ) -> List[Debt]:
        debts = []
        for debt_id in debt_ids:
            debt = await self.repository.get_debt(debt_id)
            if debt is None:
                raise NotFoundError("Debt", debt_id)
            if debt.persona_id != persona_id:
                raise ValidationError(
                    f"Debt {debt_id} does not belong to persona {persona_id}",
                    field="debt_ids",
                    value=debt_id,
                )
            require_debt_access(user, debt_id, debt.assigned_manager_id)
            debts.append(debt)
        return debts

    async def _decide(
        self, management_type_id: int, debts: List[Debt]
    ) -> Dict[int, Optional[TransitionDecision]]:
        """Evaluate once per distinct state, or per debt when rules carry conditions."""
        rules = await self.repository.get_active_rules(management_type_id)
        conditional = any(rule.additional_validation for rule in rules)

        by_state: Dict[int, Optional[TransitionDecision]] = {}
        decisions: Dict[int, Optional[TransitionDecision]] = {}
        for debt in debts:
            if conditional:
                decisions[debt.id] = self.evaluator.select(
                    rules, management_type_id, debt.current_state_id, debt.condition_context()
                )
                continue
            if debt.current_state_id not in by_state:
                by_state[debt.current_state_id] = self.evaluator.select(
                    rules, management_type_id, debt.current_state_id
                )
            decisions[debt.id] = by_state[debt.current_state_id]
        return decisions

    def _log_events(
        self, user: AuthenticatedUser, follow_up: FollowUp, outcomes: List[DebtOutcome]
    ) -> None:
        log_business_event(
            "follow_up_recorded",
            follow_up_id=follow_up.id,
            manager_id=user.id,
            persona_id=follow_up.persona_id,
            management_type_id=follow_up.management_type_id,
            debt_ids=follow_up.debt_ids,
        )
        for outcome in outcomes:
            if outcome.outcome == Outcome.STATE_CHANGED:
                log_business_event(
                    "debt_state_changed",
                    debt_id=outcome.debt_id,
                    origin_state_id=outcome.origin_state_id,
                    destination_state_id=outcome.destination_state_id,
                    rule_id=outcome.rule_id,
                    follow_up_id=follow_up.id,
                )
            elif outcome.outcome == Outcome.AUTHORIZATION_REQUESTED:
                log_business_event(
                    "authorization_requested",
                    request_id=outcome.authorization_request_id,
                    debt_id=outcome.debt_id,
                    rule_id=outcome.rule_id,
                    follow_up_id=follow_up.id,
                )
