# utils/errors.py
from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


class FundingError(Exception):
    """
    Base for every business/infra failure the engine reports to a caller.
    `kind` is the machine-readable discriminator, `payload` extra response fields.
    """
    kind = "FundingError"
    status_code = 400

    def __init__(self, message, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self):
        body = {"error": self.message, "kind": self.kind}
        for key, value in self.payload.items():
            body[key] = _jsonable(value)
        return body


class ValidationError(FundingError):
    kind = "ValidationError"


class InsufficientBalance(FundingError):
    kind = "InsufficientBalance"

    def __init__(self, available, required):
        super().__init__(
            "Insufficient available balance for this transaction",
            available_balance=available,
            required_amount=required,
            shortfall=required - available,
        )
        self.available = available
        self.required = required
        self.shortfall = required - available


class AllocationError(FundingError):
    kind = "AllocationError"

    NO_DEPLOYMENTS = "NoDeployments"
    ZERO_PRINCIPAL = "ZeroPrincipal"
    NOTHING_TO_ALLOCATE = "NothingToAllocate"

    def __init__(self, reason, message):
        super().__init__(message, reason=reason)
        self.reason = reason


class AlreadyFunded(FundingError):
    kind = "AlreadyFunded"

    def __init__(self, message="Purchase request is already fully funded", **payload):
        super().__init__(message, **payload)


class ExceedsRemaining(FundingError):
    kind = "ExceedsRemaining"

    def __init__(self, remaining, requested):
        super().__init__(
            f"Deployment exceeds the remaining amount of {remaining}",
            remaining_amount=remaining,
            requested_amount=requested,
        )
        self.remaining = remaining


class NotFound(FundingError):
    kind = "NotFound"
    status_code = 404


class Conflict(FundingError):
    kind = "Conflict"
    status_code = 409


class PreconditionFailed(FundingError):
    kind = "PreconditionFailed"
    status_code = 422


class InfrastructureError(FundingError):
    kind = "Infrastructure"
    status_code = 500

    def __init__(self, message="Internal server error"):
        super().__init__(message)
