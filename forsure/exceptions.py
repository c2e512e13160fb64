"""
Error types raised by the ForSure core.

Callers distinguish three failure kinds: bad input (rejected before any
hashing or write), tenant-local duplicates (a soft error the caller may
override), and store failures (connectivity, timeouts, constraint errors
that were not resolved internally).
"""

from typing import Optional


class ForSureError(Exception):
    """Base class for all core errors."""


class InputValidationError(ForSureError, ValueError):
    """Input rejected before any state was touched."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicateCustomerError(ForSureError):
    """A customer with the same identifying fact already exists for this tenant."""

    def __init__(self, matched_on: str, existing_customer_id: str, existing_customer_name: Optional[str] = None):
        super().__init__(
            f"Customer already exists (matched by {matched_on}): {existing_customer_id}"
        )
        self.matched_on = matched_on
        self.existing_customer_id = existing_customer_id
        self.existing_customer_name = existing_customer_name


class NotFoundError(ForSureError, LookupError):
    """Requested record does not exist or is not visible to the caller."""


class StoreError(ForSureError):
    """The backing store failed; the operation was rolled back and not retried."""
