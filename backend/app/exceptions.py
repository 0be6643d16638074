"""
FulfillOps - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the application.

Usage:
    from app.exceptions import NotFoundError, StalePlanError

    raise NotFoundError("SalesOrder", order_id)
    raise StalePlanError(changed=[...])

Planning never raises ConfigurationError to the caller: the allocation
engine catches it and turns it into a per-line blocker on the plan.
Execution raises the rest as hard failures.
"""
from typing import Any, Dict, List, Optional


class FulfillOpsException(Exception):
    """
    Base exception for all FulfillOps errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "STALE_PLAN")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "FULFILLOPS_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(FulfillOpsException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class InvalidStateError(FulfillOpsException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states is not None:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(FulfillOpsException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(FulfillOpsException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class StalePlanError(ConflictError):
    """Raised when a submitted plan no longer matches current stock."""

    error_code = "STALE_PLAN"

    def __init__(
        self,
        message: str = "Stock changed since the plan was generated, re-plan before executing",
        *,
        changed: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if changed:
            details["changed"] = changed
        super().__init__(message, details=details)


class ReservationConflictError(ConflictError):
    """Raised when a reservation would drive available stock negative."""

    error_code = "RESERVATION_CONFLICT"

    def __init__(
        self,
        *,
        product_id: int,
        warehouse_id: int,
        requested: Any,
        available: Any,
        document: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["product_id"] = product_id
        details["warehouse_id"] = warehouse_id
        details["requested"] = str(requested)
        details["available"] = str(available)
        if document:
            details["document"] = document
        message = (
            f"Cannot reserve {requested} of product {product_id} at warehouse {warehouse_id}: "
            f"only {available} available"
        )
        if document:
            message = f"{message} (while creating {document})"
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(FulfillOpsException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class ConfigurationError(BusinessRuleError):
    """
    Raised when master data makes a line impossible to plan
    (cyclic BOM, kit with no components, missing default supplier...).
    """

    error_code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str = "Product configuration prevents planning",
        *,
        product_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if product_id is not None:
            details["product_id"] = product_id
        self.product_id = product_id
        super().__init__(message, rule="configuration", details=details)


class PolicyBlockedError(BusinessRuleError):
    """Raised when executing a plan whose policy gate is closed."""

    error_code = "POLICY_BLOCKED"

    def __init__(
        self,
        reason: Optional[str] = None,
        *,
        policy: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if policy:
            details["policy"] = policy
        if reason:
            details["blocked_reason"] = reason
        message = "Plan is blocked and cannot be executed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, rule="fulfillment_policy", details=details)


# ===================
# 503 Service Unavailable Errors
# ===================


class DependencyError(FulfillOpsException):
    """Raised when an underlying store fails; nothing was committed."""

    error_code = "DEPENDENCY_ERROR"
    status_code = 503

    def __init__(
        self,
        service: str = "database",
        message: str = "operation failed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service
        super().__init__(f"{service}: {message}", details=details)
