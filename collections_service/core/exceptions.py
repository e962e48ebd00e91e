"""
Custom exception classes for the Collections Follow-up Service.
"""
from typing import Any, Dict, List, Optional
import uuid

from fastapi import HTTPException, status

from collections_service.core.logging import get_correlation_id


class BaseAPIException(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.correlation_id = correlation_id or get_correlation_id() or str(uuid.uuid4())
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.detail,
            "correlation_id": self.correlation_id,
            "context": self.context,
        }


class ValidationError(BaseAPIException):
    """Exception for invalid or missing input.

    Either a single ``field`` or a list of field-level ``errors``
    (``{"field": ..., "message": ...}``) can be attached.
    """

    def __init__(
        self,
        detail: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        **context
    ):
        error_code = "COL_001"
        if field:
            error_code = f"COL_001_{field.upper()}"
            detail = f"Validation failed for field '{field}': {detail}"

        context_dict: Dict[str, Any] = {"field": field, "value": value, **context}
        if errors:
            context_dict["errors"] = errors

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
            context=context_dict,
        )


class NotFoundError(BaseAPIException):
    """Exception for unknown entity IDs."""

    def __init__(self, entity: str, entity_id: Any, **context):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{entity} {entity_id} not found",
            error_code="COL_002",
            context={"entity": entity, "entity_id": entity_id, **context},
        )


class ConflictError(BaseAPIException):
    """Exception for operations that clash with the current state of a resource."""

    def __init__(self, detail: str, entity_id: Optional[Any] = None, **context):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="COL_003",
            context={"entity_id": entity_id, **context},
        )


class AmbiguousRuleError(ConflictError):
    """Raised when several transition rules tie for the same debt."""

    def __init__(self, management_type_id: int, current_state_id: int, rule_ids: List[int]):
        self.rule_ids = rule_ids
        super().__init__(
            f"Transition rules {rule_ids} tie for management type "
            f"{management_type_id} in state {current_state_id}",
            management_type_id=management_type_id,
            current_state_id=current_state_id,
            rule_ids=rule_ids,
        )


class UnauthorizedError(BaseAPIException):
    """Exception for requests without a resolvable identity."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="COL_004",
        )


class ForbiddenError(BaseAPIException):
    """Exception for callers whose role does not allow the operation."""

    def __init__(self, detail: str, **context):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="COL_005",
            context=context,
        )


# Non-API context exceptions
class InvalidConditionError(ValueError):
    """Raised for malformed rule condition trees."""

