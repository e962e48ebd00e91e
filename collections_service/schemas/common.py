"""
Shared schema base classes.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Schema serialized with camelCase keys; snake_case input is also accepted."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: bool = Field(default=True, description="Always true for error responses")
    error_code: Optional[str] = Field(default=None, description="Error code for debugging")
    message: str = Field(..., description="Error message")
    correlation_id: Optional[str] = Field(default=None, description="Request correlation ID")
    context: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )
