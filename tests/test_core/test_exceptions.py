"""
Tests for custom exception hierarchy.
"""
from fastapi import HTTPException, status

from collections_service.core.exceptions import (
    AmbiguousRuleError,
    BaseAPIException,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from collections_service.core.logging import correlation_context


class TestBaseAPIException:
    """Test base API exception."""

    def test_basic_creation(self):
        """Test basic exception creation."""
        exc = BaseAPIException(
            status_code=400,
            detail="Test error",
            error_code="TEST_ERROR"
        )

        assert isinstance(exc, HTTPException)
        assert exc.status_code == 400
        assert exc.detail == "Test error"
        assert exc.error_code == "TEST_ERROR"
        assert exc.correlation_id is not None  # Auto-generated
        assert exc.context == {}

    def test_correlation_id_from_context(self):
        with correlation_context(correlation_id="test-correlation-123"):
            exc = BaseAPIException(status_code=400, detail="Test error")

        assert exc.correlation_id == "test-correlation-123"

    def test_to_dict(self):
        exc = BaseAPIException(
            status_code=400,
            detail="Test error",
            error_code="TEST_ERROR",
            correlation_id="test-123",
            context={"key": "value"},
        )

        assert exc.to_dict() == {
            "error": True,
            "error_code": "TEST_ERROR",
            "message": "Test error",
            "correlation_id": "test-123",
            "context": {"key": "value"},
        }


class TestDomainExceptions:
    """Test the error codes and statuses of the service exceptions."""

    def test_validation_error_with_field(self):
        exc = ValidationError("must be positive", field="priority", value=-1)

        assert exc.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert exc.error_code == "COL_001_PRIORITY"
        assert exc.detail == "Validation failed for field 'priority': must be positive"
        assert exc.context["value"] == -1

    def test_validation_error_with_error_list(self):
        errors = [{"field": "debt_ids", "message": "At least one debt is required"}]
        exc = ValidationError("Follow-up submission is invalid", errors=errors)

        assert exc.error_code == "COL_001"
        assert exc.context["errors"] == errors

    def test_not_found(self):
        exc = NotFoundError("Debt", 42)

        assert exc.status_code == status.HTTP_404_NOT_FOUND
        assert exc.error_code == "COL_002"
        assert exc.detail == "Debt 42 not found"
        assert exc.context == {"entity": "Debt", "entity_id": 42}

    def test_conflict(self):
        exc = ConflictError("Already resolved", entity_id=7, current_status="Approved")

        assert exc.status_code == status.HTTP_409_CONFLICT
        assert exc.error_code == "COL_003"
        assert exc.context["current_status"] == "Approved"

    def test_ambiguous_rule_is_a_conflict(self):
        exc = AmbiguousRuleError(management_type_id=1, current_state_id=2, rule_ids=[3, 4])

        assert isinstance(exc, ConflictError)
        assert exc.error_code == "COL_003"
        assert exc.context["rule_ids"] == [3, 4]

    def test_unauthorized_and_forbidden(self):
        assert UnauthorizedError().status_code == status.HTTP_401_UNAUTHORIZED
        assert UnauthorizedError().error_code == "COL_004"

        forbidden = ForbiddenError("Not allowed", user_id=20)
        assert forbidden.status_code == status.HTTP_403_FORBIDDEN
        assert forbidden.error_code == "COL_005"
        assert forbidden.context == {"user_id": 20}
