"""
Rule store administration: transition rules and the catalogs they refer to.
"""
from typing import Any, Dict, List, Optional

import structlog

from collections_service.core.exceptions import (
    ConflictError,
    InvalidConditionError,
    NotFoundError,
    ValidationError,
)
from collections_service.core.logging import log_business_event
from collections_service.database.repository import CollectionsRepository
from collections_service.models import DebtState, ManagementType, TransitionRule
from collections_service.services.rule_conditions import validate_condition

logger = structlog.get_logger(__name__)

UPDATABLE_RULE_FIELDS = frozenset({
    "destination_state_id",
    "requires_authorization",
    "ui_message",
    "additional_validation",
    "priority",
    "active",
})


class RuleService:
    """Service for maintaining transition rules and catalogs."""

    def __init__(self, repository: CollectionsRepository):
        self.repository = repository

    async def create_rule(self, rule: TransitionRule, created_by: Optional[int] = None) -> TransitionRule:
        """
        Add a transition rule.

        Raises:
            NotFoundError: Unknown management type or state
            ConflictError: An active rule already exists for the same
                (management type, origin state)
            ValidationError: Malformed condition tree
        """
        if await self.repository.get_management_type(rule.management_type_id) is None:
            raise NotFoundError("ManagementType", rule.management_type_id)
        await self._check_states(rule.origin_state_id, rule.destination_state_id)
        self._check_condition(rule.additional_validation)
        if rule.active:
            await self._check_unique(rule.management_type_id, rule.origin_state_id)

        created = await self.repository.create_rule(rule)
        log_business_event(
            "transition_rule_created",
            rule_id=created.id,
            management_type_id=created.management_type_id,
            origin_state_id=created.origin_state_id,
            destination_state_id=created.destination_state_id,
            requires_authorization=created.requires_authorization,
            priority=created.priority,
            created_by=created_by,
        )
        return created

    async def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> TransitionRule:
        """Apply a partial update to a rule (identity fields are fixed)."""
        rule = await self.repository.get_rule(rule_id)
        if rule is None:
            raise NotFoundError("TransitionRule", rule_id)

        unknown = set(changes) - UPDATABLE_RULE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                fields=sorted(unknown),
            )
        if not changes:
            return rule

        if "destination_state_id" in changes:
            await self._check_states(None, changes["destination_state_id"])
        if "additional_validation" in changes:
            self._check_condition(changes["additional_validation"])
        if changes.get("active") and not rule.active:
            await self._check_unique(rule.management_type_id, rule.origin_state_id)

        updated = await self.repository.update_rule(rule_id, changes)
        logger.info("Updated transition rule", rule_id=rule_id, fields=sorted(changes))
        return updated

    async def list_rules(
        self,
        management_type_id: Optional[int] = None,
        origin_state_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> List[TransitionRule]:
        return await self.repository.list_rules(
            management_type_id=management_type_id,
            origin_state_id=origin_state_id,
            active=active,
        )

    async def create_management_type(self, management_type: ManagementType) -> ManagementType:
        if await self.repository.get_management_type_by_name(management_type.name) is not None:
            raise ConflictError(
                f"Management type '{management_type.name}' already exists",
                name=management_type.name,
            )
        created = await self.repository.create_management_type(management_type)
        logger.info("Created management type", management_type_id=created.id, name=created.name)
        return created

    async def list_management_types(self, active: Optional[bool] = None) -> List[ManagementType]:
        return await self.repository.list_management_types(active=active)

    async def list_debt_states(self) -> List[DebtState]:
        return await self.repository.list_debt_states()

    async def _check_states(self, *state_ids: Optional[int]) -> None:
        for state_id in state_ids:
            if state_id is not None and await self.repository.get_debt_state(state_id) is None:
                raise NotFoundError("DebtState", state_id)

    async def _check_unique(self, management_type_id: int, origin_state_id: Optional[int]) -> None:
        existing = [
            rule for rule in await self.repository.list_rules(
                management_type_id=management_type_id, active=True
            )
            if rule.origin_state_id == origin_state_id
        ]
        if existing:
            raise ConflictError(
                "An active rule already exists for this management type and origin state",
                entity_id=existing[0].id,
                management_type_id=management_type_id,
                origin_state_id=origin_state_id,
            )

    @staticmethod
    def _check_condition(condition: Optional[Dict[str, Any]]) -> None:
        if condition is None:
            return
        try:
            validate_condition(condition)
        except InvalidConditionError as e:
            raise ValidationError(str(e), field="additional_validation") from e
