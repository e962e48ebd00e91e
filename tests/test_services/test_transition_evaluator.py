"""
Tests for the transition evaluator.
"""
import pytest

from collections_service.core.exceptions import AmbiguousRuleError
from collections_service.models import TransitionRule
from collections_service.services.transition_evaluator import TransitionEvaluator
from tests.seed_data import (
    AGREEMENT_RULE,
    CALL_FALLBACK_RULE,
    CALL_RULE,
    CLOSED,
    IN_MANAGEMENT,
    NEW,
    PAYMENT_AGREEMENT,
    PAYMENT_AGREEMENT_TYPE,
    PHONE_CALL,
    VISIT,
)


def rule(rule_id, origin=None, destination=None, priority=0, **kwargs):
    return TransitionRule(
        id=rule_id,
        management_type_id=PHONE_CALL,
        origin_state_id=origin,
        destination_state_id=destination,
        priority=priority,
        **kwargs,
    )


class TestTransitionEvaluator:
    """Test cases for TransitionEvaluator."""

    @pytest.fixture
    def evaluator(self, repository):
        return TransitionEvaluator(repository)

    @pytest.mark.asyncio
    async def test_specific_rule_beats_fallback_by_priority(self, evaluator):
        """Test that the higher priority origin-specific rule wins."""
        decision = await evaluator.evaluate(PHONE_CALL, NEW)

        assert decision.rule_id == CALL_RULE
        assert decision.origin_state_id == NEW
        assert decision.destination_state_id == IN_MANAGEMENT
        assert decision.changes_state is True
        assert decision.requires_authorization is False

    @pytest.mark.asyncio
    async def test_fallback_rule_keeps_current_state(self, evaluator):
        """Test that a null destination resolves to the current state."""
        decision = await evaluator.evaluate(PHONE_CALL, PAYMENT_AGREEMENT)

        assert decision.rule_id == CALL_FALLBACK_RULE
        assert decision.destination_state_id == PAYMENT_AGREEMENT
        assert decision.changes_state is False

    @pytest.mark.asyncio
    async def test_authorization_rule(self, evaluator):
        decision = await evaluator.evaluate(PAYMENT_AGREEMENT_TYPE, IN_MANAGEMENT)

        assert decision.rule_id == AGREEMENT_RULE
        assert decision.requires_authorization is True
        assert decision.ui_message == "Payment agreement sent for supervisor approval"

    @pytest.mark.asyncio
    async def test_no_match_returns_none(self, evaluator):
        assert await evaluator.evaluate(VISIT, NEW) is None
        assert await evaluator.evaluate(PAYMENT_AGREEMENT_TYPE, NEW) is None

    @pytest.mark.asyncio
    async def test_repeated_evaluation_is_deterministic(self, evaluator):
        first = await evaluator.evaluate(PHONE_CALL, NEW)
        second = await evaluator.evaluate(PHONE_CALL, NEW)

        assert first == second

    @pytest.mark.asyncio
    async def test_inactive_rules_are_ignored(self, evaluator, repository):
        await repository.update_rule(CALL_RULE, {"active": False})

        decision = await evaluator.evaluate(PHONE_CALL, NEW)

        assert decision.rule_id == CALL_FALLBACK_RULE

    def test_higher_priority_wins_regardless_of_order(self):
        """Test that insertion order does not affect the winner."""
        evaluator = TransitionEvaluator(repository=None)
        low = rule(1, origin=NEW, destination=IN_MANAGEMENT, priority=1)
        high = rule(2, origin=None, destination=CLOSED, priority=5)

        assert evaluator.select([low, high], PHONE_CALL, NEW).rule_id == 2
        assert evaluator.select([high, low], PHONE_CALL, NEW).rule_id == 2

    def test_tie_goes_to_lowest_id(self):
        evaluator = TransitionEvaluator(repository=None)
        rules = [
            rule(7, origin=None, destination=CLOSED),
            rule(3, origin=NEW, destination=IN_MANAGEMENT),
        ]

        decision = evaluator.select(rules, PHONE_CALL, NEW)

        assert decision.rule_id == 3

    def test_tie_raises_in_strict_mode(self):
        evaluator = TransitionEvaluator(repository=None, strict_ambiguity=True)
        rules = [
            rule(3, origin=NEW, destination=IN_MANAGEMENT),
            rule(7, origin=None, destination=CLOSED),
        ]

        with pytest.raises(AmbiguousRuleError) as exc_info:
            evaluator.select(rules, PHONE_CALL, NEW)

        assert exc_info.value.status_code == 409
        assert exc_info.value.rule_ids == [3, 7]

    def test_strict_mode_allows_distinct_priorities(self):
        evaluator = TransitionEvaluator(repository=None, strict_ambiguity=True)
        rules = [
            rule(3, origin=NEW, destination=IN_MANAGEMENT, priority=1),
            rule(7, origin=None, destination=CLOSED),
        ]

        assert evaluator.select(rules, PHONE_CALL, NEW).rule_id == 3

    def test_rules_of_other_management_types_are_ignored(self):
        evaluator = TransitionEvaluator(repository=None)
        other = rule(1, origin=NEW, destination=CLOSED).model_copy(
            update={"management_type_id": VISIT}
        )

        assert evaluator.select([other], PHONE_CALL, NEW) is None

    def test_conditional_rule_requires_context(self):
        evaluator = TransitionEvaluator(repository=None)
        conditional = rule(
            1,
            origin=NEW,
            destination=CLOSED,
            additional_validation={
                "type": "comparison",
                "field": "days_overdue",
                "operator": "gt",
                "value": 90,
            },
        )

        assert evaluator.select([conditional], PHONE_CALL, NEW) is None
        assert evaluator.select([conditional], PHONE_CALL, NEW, {"days_overdue": 30}) is None
        decision = evaluator.select([conditional], PHONE_CALL, NEW, {"days_overdue": 120})
        assert decision.destination_state_id == CLOSED
