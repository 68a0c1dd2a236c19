"""
Purchasing error taxonomy.

- ValidationError / NotFoundError fail fast, before any row is written.
- SideEffectError / TimelineError describe failed best-effort steps; the
  processors log and report them in their results instead of raising.
- TransientDataAccessError is raised once bounded read retries are exhausted.
"""


class PurchasingError(Exception):
    """Base class for purchasing engine errors."""


class ValidationError(PurchasingError, ValueError):
    """Input violates a quantity, amount or required-field constraint."""


class NotFoundError(PurchasingError, LookupError):
    """A purchase, item, payment, return or refund id did not resolve."""


class SideEffectError(PurchasingError):
    """StockLedger or AccountingJournal call failed."""


class TimelineError(PurchasingError):
    """Appending a timeline event failed."""


class TransientDataAccessError(PurchasingError):
    """A repository read kept failing after bounded retries."""
