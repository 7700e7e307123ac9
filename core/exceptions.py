"""Typed exceptions for invoice computation and lifecycle failures."""


class BillingError(Exception):
    """Base class for billing engine errors."""


class ResolutionError(BillingError):
    """
    One or more line items have no matching catalog entry.

    The items keep their entered price and tax, but the invoice cannot be
    held or saved until every named item resolves.
    """

    def __init__(self, unresolved: list[str]):
        self.unresolved = unresolved
        super().__init__(
            f"Some items are missing their catalog IDs: {', '.join(unresolved)}. "
            "Please ensure these items exist in your catalog."
        )


class BillValidationError(BillingError):
    """Invoice or customer input is incomplete. Raised before any network call."""


class InvalidTransitionError(BillingError):
    """Lifecycle operation is not allowed from the invoice's current state."""


class ReconciliationViolation(BillingError):
    """
    extra_discount + adjust_total no longer equals base_incl_tax.

    Programming error in the engine. Never shown to users.
    """
