"""
Common API Response Schemas

The error envelope every handler in main.py returns.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response for all API errors.

    Error Codes:
        - VALIDATION_ERROR: Request validation failed (400/422)
        - NOT_FOUND: Resource not found (404)
        - INVALID_STATE: Operation not allowed in the current status (400)
        - CONFLICT: Resource conflict (409)
        - STALE_PLAN: Stock or order lines moved since planning (409)
        - RESERVATION_CONFLICT: Stock no longer available to reserve (409)
        - BUSINESS_RULE_ERROR: Business rule violation (422)
        - CONFIGURATION_ERROR: Broken master data (422)
        - POLICY_BLOCKED: Fulfillment policy does not allow the plan (422)
        - DATABASE_ERROR: Database operation failed (500)
        - INTERNAL_ERROR: Unexpected internal error (500)
        - DEPENDENCY_ERROR: Backing store unavailable (503)
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "STALE_PLAN",
                "message": "Stock changed since the plan was generated, re-plan before executing",
                "details": {
                    "changed": [
                        {"product_id": 7, "warehouse_id": 1, "planned": "4.0000", "current": "1.0000"}
                    ]
                },
                "timestamp": "2026-03-02T10:30:00Z",
            }
        }
    )

    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context for debugging"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred (UTC)"
    )


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or state"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Conflict"},
    422: {"model": ErrorResponse, "description": "Business rule violation"},
    503: {"model": ErrorResponse, "description": "Database unavailable"},
}
