"""
Exceptions raised by the Atlas admin API client.

These are remote errors; they are translated into broker errors by
atlas_broker.core.error_classifier before reaching the platform.
"""
from typing import Any, Dict, Optional

NOT_FOUND_CODES = {
    "CLUSTER_NOT_FOUND",
    "GROUP_NOT_FOUND",
    "RESOURCE_NOT_FOUND",
    "USER_NOT_FOUND",
    "USERNAME_NOT_FOUND",
}

ALREADY_EXISTS_CODES = {
    "DUPLICATE_CLUSTER_NAME",
    "DUPLICATE_DATABASE_USER",
    "GROUP_ALREADY_EXISTS",
    "USER_ALREADY_EXISTS",
    "USERNAME_ALREADY_EXISTS",
}


class AtlasAPIError(Exception):
    """Raised when the Atlas admin API answers with a non-success status."""

    def __init__(
        self,
        status_code: int,
        error_code: Optional[str] = None,
        detail: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.detail = detail or ""
        self.body = body or {}
        message = f"Atlas API error {status_code}"
        if error_code:
            message += f" ({error_code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404 or (self.error_code or "") in NOT_FOUND_CODES

    @property
    def is_already_exists(self) -> bool:
        return self.status_code == 409 or (self.error_code or "") in ALREADY_EXISTS_CODES
