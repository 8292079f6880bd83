"""
Unified exception taxonomy for the service layer.

Three business error kinds, each carrying the HTTP status the API maps it to:

- NotFoundError: a referenced entity does not exist.
- ValidationAppError: a business rule was violated (bad state transition,
  permission denied, malformed request semantics).
- ConflictError: a concurrent modification won the race (e.g. stock was
  depleted between order creation and confirmation).

Services extend these with entity-specific subclasses so existing
`except NotFoundError` handlers keep working. Transient lock / deadlock
failures are NOT part of this hierarchy: they stay as the driver's
exceptions and are handled by agrimarket.app.core.retry.
"""


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    kind = "error"

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(ServiceError):
    kind = "not_found"

    def __init__(self, message: str):
        super().__init__(message, 404)


class ValidationAppError(ServiceError):
    kind = "validation"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code)


class PermissionDeniedError(ValidationAppError):
    def __init__(self, message: str):
        super().__init__(message, 403)


class ConflictError(ServiceError):
    kind = "conflict"

    def __init__(self, message: str):
        super().__init__(message, 409)
