"""Domain errors raised by the points and billing services.

Ledger-level errors are hard failures: the surrounding database transaction
is rolled back and the error reaches the caller unchanged. Billing errors
raised while syncing seats are reported as ``SubscriptionSyncFailed`` and
never undo the member change that triggered the sync.
"""

from __future__ import annotations


class PointsError(Exception):
    """Base class for errors surfaced to API callers as 4xx responses."""

    code = "points_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidAmount(PointsError):
    code = "invalid_amount"
    status_code = 422


class InsufficientBalance(PointsError):
    code = "insufficient_balance"
    status_code = 409

    def __init__(self, message: str, available: int, requested: int) -> None:
        super().__init__(message)
        self.available = available
        self.requested = requested


class InvalidMember(PointsError):
    code = "invalid_member"
    status_code = 400


class AllowanceExceeded(PointsError):
    code = "allowance_exceeded"
    status_code = 409

    def __init__(self, message: str, remaining: int, requested: int) -> None:
        super().__init__(message)
        self.remaining = remaining
        self.requested = requested


class DuplicateMembership(PointsError):
    code = "duplicate_membership"
    status_code = 409


class NoActiveSubscription(PointsError):
    code = "no_active_subscription"
    status_code = 409


class BillingError(Exception):
    """An external billing call failed."""


class SubscriptionSyncFailed(BillingError):
    """Seat quantity could not be pushed to the subscription. Non-fatal."""

    def __init__(self, company_id: str, quantity: int, reason: str) -> None:
        super().__init__(
            f"Failed to sync {quantity} seats for company {company_id}: {reason}"
        )
        self.company_id = company_id
        self.quantity = quantity
        self.reason = reason


class BillingSetupRequired(Exception):
    """Control-flow signal: billing must be set up before members are created."""

    def __init__(self, checkout_url: str, session_id: str | None = None) -> None:
        super().__init__("Billing setup required before adding team members")
        self.checkout_url = checkout_url
        self.session_id = session_id
