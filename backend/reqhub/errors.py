"""Domain error kinds shared by services and routers."""

# purpose: one exception hierarchy that every service raises and main.py maps to HTTP
# status: active


class DomainError(RuntimeError):
    """Base error for requirement knowledge-base operations."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()


class NotFound(DomainError):
    """Entity not found."""

    status_code = 404
    code = "NOT_FOUND"


class ValidationError(DomainError):
    """Validation failed."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvariantViolation(ValidationError):
    """Operation would break a data invariant."""

    status_code = 409
    code = "INVARIANT_VIOLATION"


class HasDependencies(ValidationError):
    """Entity has dependencies; retry with force to cascade."""

    status_code = 409
    code = "HAS_DEPENDENCIES"

    def __init__(self, message: str = "", dependencies: list | None = None) -> None:
        super().__init__(message)
        self.dependencies = dependencies or []


class InvalidStatusTransition(DomainError):
    """Status transition is not allowed."""

    status_code = 400
    code = "INVALID_STATUS_TRANSITION"


class Unauthorized(DomainError):
    """Insufficient permissions."""

    status_code = 403
    code = "UNAUTHORIZED"


class AuthInvalid(DomainError):
    """Invalid or expired token."""

    status_code = 401
    code = "AUTH_INVALID"


class TransactionFailed(DomainError):
    """Transaction failed."""

    status_code = 500
    code = "TRANSACTION_FAILED"
