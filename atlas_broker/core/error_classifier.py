"""Translation of remote Atlas failures into broker errors."""

from atlas_broker.core.exceptions import AtlasAPIError
from atlas_broker.exceptions import (
    BrokerException,
    InstanceAlreadyExistsError,
    InstanceDoesNotExistError,
    RawParamsInvalidError,
)


def classify_error(error: Exception) -> BrokerException:
    """
    Map an error to the caller-facing error taxonomy.

    Broker errors (plan resolution, context validation, store failures) are
    already classified and are returned unchanged. Atlas "not found" and
    "already exists" answers map to their instance errors; anything else falls
    back to invalid parameters.
    """
    if isinstance(error, BrokerException):
        return error

    if isinstance(error, AtlasAPIError):
        details = {"status_code": error.status_code, "error_code": error.error_code}
        if error.is_not_found:
            return InstanceDoesNotExistError(str(error), details=details)
        if error.is_already_exists:
            return InstanceAlreadyExistsError(str(error), details=details)
        return RawParamsInvalidError(str(error), details=details)

    return RawParamsInvalidError(str(error) or type(error).__name__)
