"""Domain exceptions raised by the service layer.

Routes translate these into HTTP status codes; services never import
FastAPI. Each carries a short `error` label plus a human-readable
message, matching the response envelope.
"""


class ServiceError(Exception):
    """Base class for expected, user-facing failures."""

    error = "Error"

    def __init__(self, message: str, *, error: str | None = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error


class NotFoundError(ServiceError):
    """The row does not exist, or is outside the caller's scope."""

    error = "Not Found"


class ValidationError(ServiceError):
    """Input is well-formed but violates a domain rule."""

    error = "Validation error"


class ConfigurationError(ServiceError):
    """A required setting (e.g. the IdP URL) is missing."""

    error = "Server configuration error"


class IdPError(ServiceError):
    """The identity provider answered with an error or garbage."""

    error = "IdP Error"

    def __init__(self, message: str, *, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code
