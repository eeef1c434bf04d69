# app/core/errors.py
"""
Domain error taxonomy.

Every error is an HTTPException so services can raise them directly and
FastAPI renders them without extra handlers. Each class also carries a
stable `reason` string that clients (and tests) can switch on.

    NotFoundError               404  unknown order / coupon / account
    ValidationFailedError       422  bad input shape (e.g. below minimum)
    BusinessRuleViolation       400  insufficient balance, coupon rules, ...
    ConcurrencyConflictError    503  unit of work could not commit; retry
    CollaboratorUnavailableError     notification delivery failed; never
                                     leaves the dispatcher
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    reason: str = "Error"

    def __init__(self, detail: str | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.reason,
        )

    @property
    def message(self) -> str:
        return str(self.detail)


# ---- NotFound ----


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    reason = "NotFound"


class OrderNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Order not found"):
        super().__init__(detail)


class CouponNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Invalid coupon code"):
        super().__init__(detail)


class AccountNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Account not found"):
        super().__init__(detail)


# ---- ValidationFailed ----


class ValidationFailedError(DomainError):
    status_code = 422
    reason = "ValidationFailed"


class BelowMinimumError(ValidationFailedError):
    reason = "BelowMinimum"


# ---- BusinessRuleViolation ----


class BusinessRuleViolation(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    reason = "BusinessRuleViolation"


class InsufficientBalanceError(BusinessRuleViolation):
    reason = "InsufficientBalance"


class InvalidTransitionError(BusinessRuleViolation):
    reason = "InvalidTransition"


class CouponRejected(BusinessRuleViolation):
    """Base for every coupon validation failure except NotFound."""


class CouponInactiveError(CouponRejected):
    reason = "Inactive"


class CouponNotOwnerError(CouponRejected):
    reason = "NotOwner"


class CouponNotStartedError(CouponRejected):
    reason = "NotStarted"


class CouponExpiredError(CouponRejected):
    reason = "Expired"


class UsageLimitReachedError(CouponRejected):
    reason = "UsageLimitReached"


class MinimumNotMetError(CouponRejected):
    reason = "MinimumNotMet"


# ---- Transient ----


class ConcurrencyConflictError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    reason = "ConcurrencyConflict"

    def __init__(self, detail: str = "Could not complete the request, please retry"):
        super().__init__(detail)


class CollaboratorUnavailableError(Exception):
    """Notification delivery failed. Logged by the dispatcher, never raised past it."""
