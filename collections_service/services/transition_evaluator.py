"""
Transition evaluator: decides what a management type does to a debt state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog

from collections_service.core.exceptions import AmbiguousRuleError
from collections_service.database.repository import CollectionsRepository
from collections_service.models import TransitionRule
from collections_service.services.rule_conditions import evaluate_condition

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of matching a rule against a debt state."""

    rule: TransitionRule
    origin_state_id: int
    destination_state_id: int

    @property
    def rule_id(self) -> Optional[int]:
        return self.rule.id

    @property
    def requires_authorization(self) -> bool:
        return self.rule.requires_authorization

    @property
    def changes_state(self) -> bool:
        return self.destination_state_id != self.origin_state_id

    @property
    def ui_message(self) -> Optional[str]:
        return self.rule.ui_message


class TransitionEvaluator:
    """Looks up the winning transition rule for a (management type, state) pair."""

    def __init__(self, repository: CollectionsRepository, strict_ambiguity: bool = False):
        self.repository = repository
        self.strict_ambiguity = strict_ambiguity

    async def evaluate(
        self,
        management_type_id: int,
        current_state_id: int,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[TransitionDecision]:
        """
        Find the rule that applies to a debt in ``current_state_id``.

        Args:
            management_type_id: Management type of the follow-up
            current_state_id: The debt's current state
            context: Debt values for conditional rules

        Returns:
            The decision, or None when no rule matches
        """
        rules = await self.repository.get_active_rules(management_type_id)
        return self.select(rules, management_type_id, current_state_id, context)

    def select(
        self,
        rules: Iterable[TransitionRule],
        management_type_id: int,
        current_state_id: int,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[TransitionDecision]:
        """
        Pick the winning rule from an already loaded rule set.

        Highest priority wins; ties go to the lowest rule ID and are logged
        (or raised when ``strict_ambiguity`` is set).
        """
        candidates: List[TransitionRule] = [
            rule for rule in rules
            if rule.applies_to(management_type_id, current_state_id)
            and self._condition_holds(rule, context)
        ]
        if not candidates:
            logger.debug(
                "No transition rule matched",
                management_type_id=management_type_id,
                current_state_id=current_state_id,
            )
            return None

        candidates.sort(key=lambda rule: (-rule.priority, rule.id))
        winner = candidates[0]

        tied = [rule.id for rule in candidates if rule.priority == winner.priority]
        if len(tied) > 1:
            if self.strict_ambiguity:
                raise AmbiguousRuleError(management_type_id, current_state_id, tied)
            logger.warning(
                "Ambiguous transition rules, using lowest ID",
                management_type_id=management_type_id,
                current_state_id=current_state_id,
                rule_ids=tied,
                selected_rule_id=winner.id,
            )

        return TransitionDecision(
            rule=winner,
            origin_state_id=current_state_id,
            destination_state_id=winner.resolve_destination(current_state_id),
        )

    @staticmethod
    def _condition_holds(rule: TransitionRule, context: Optional[Dict[str, Any]]) -> bool:
        if not rule.additional_validation:
            return True
        if context is None:
            return False
        return evaluate_condition(rule.additional_validation, context)
