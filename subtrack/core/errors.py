"""Error taxonomy shared by services and the HTTP layer.

Services raise these; ``subtrack.main`` turns them into ``ActionResult``
envelopes so nothing past the API boundary sees a raw exception.
"""

from fastapi import status

CONFLICT_MESSAGE = "This {entity} was modified by another user. Please refresh and try again."
STORAGE_FAILURE_MESSAGE = "The operation could not be completed. Please try again later."


class ServiceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(ServiceError):
    """Caller is identified but not entitled to the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class InputValidationError(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str = "record") -> None:
        super().__init__(CONFLICT_MESSAGE.format(entity=entity))
        self.entity = entity


class StorageError(ServiceError):
    """Underlying store failure. The detail is logged, never returned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = STORAGE_FAILURE_MESSAGE) -> None:
        super().__init__(message)


class BadRequestError(ServiceError):
    """Request is well-formed but names something the endpoint does not offer."""

    status_code = status.HTTP_400_BAD_REQUEST
