"""
Custom exceptions for the Atlas cluster broker.

Every exception raised towards the platform derives from BrokerException and
carries the HTTP status code and, where the Open Service Broker API defines
one, the machine-readable error code returned in the response body.
"""
from typing import Optional, Dict, Any
from fastapi import status


class BrokerException(Exception):
    """
    Base exception for all broker errors.

    All custom exceptions should inherit from this base class.
    """

    error_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class PlanNotFoundError(BrokerException):
    """Raised when no plan template is registered under the requested plan ID."""

    def __init__(self, plan_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"plan {plan_id!r} not found",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {"plan_id": plan_id},
        )


class MalformedPlanError(BrokerException):
    """
    Raised when a plan template cannot be rendered or decoded.

    Used for template runtime errors, invalid YAML and documents that do not
    match the plan structure.
    """

    def __init__(self, template: str, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"cannot decode plan template {template!r}: {reason}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {"template": template, "reason": reason},
        )


class InvalidPlanError(BrokerException):
    """Raised when a decoded plan misses a required field."""

    def __init__(self, field: str, template: Optional[str] = None):
        self.field = field
        super().__init__(
            message=f"{field} must not be empty",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"field": field, "template": template},
        )


class InvalidContextValueError(BrokerException):
    """Raised when a request parameter has the wrong shape for the requested operation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class AsyncRequiredError(BrokerException):
    """Raised when the platform does not accept asynchronous responses."""

    error_code = "AsyncRequired"

    def __init__(self):
        super().__init__(
            message="This service plan requires client support for asynchronous service operations.",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


class InstanceNotFoundError(BrokerException):
    """Raised when no stored record exists for an instance."""

    def __init__(self, instance_id: str, org_id: Optional[str] = None):
        message = f"instance {instance_id!r} not found"
        if org_id:
            message += f" in organization {org_id!r}"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"instance_id": instance_id, "org_id": org_id},
        )


class InstanceDoesNotExistError(BrokerException):
    """Raised when the remote API reports the backing resource as missing."""

    def __init__(self, message: str = "instance does not exist", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_410_GONE,
            details=details,
        )


class InstanceAlreadyExistsError(BrokerException):
    """Raised when an instance (remote cluster or stored record) already exists."""

    def __init__(self, message: str = "instance already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class RawParamsInvalidError(BrokerException):
    """Fallback for remote API failures that match no more specific error."""

    def __init__(self, message: str = "the format of the parameters is not valid JSON", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class InstanceStoreError(BrokerException):
    """Raised when the instance store cannot be read or written."""

    def __init__(self, operation: str, instance_id: str, reason: str):
        super().__init__(
            message=f"instance store {operation} failed for {instance_id!r}: {reason}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"operation": operation, "instance_id": instance_id, "reason": reason},
        )


class CredentialsNotFoundError(BrokerException):
    """Raised when no Atlas API key is configured for an organization."""

    def __init__(self, org_id: str):
        super().__init__(
            message=f"no credentials configured for organization {org_id!r}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"org_id": org_id},
        )


__all__ = [
    "BrokerException",
    "PlanNotFoundError",
    "MalformedPlanError",
    "InvalidPlanError",
    "InvalidContextValueError",
    "AsyncRequiredError",
    "InstanceNotFoundError",
    "InstanceDoesNotExistError",
    "InstanceAlreadyExistsError",
    "RawParamsInvalidError",
    "InstanceStoreError",
    "CredentialsNotFoundError",
]
