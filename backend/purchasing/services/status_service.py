# Overview: Pure lifecycle status derivation for purchase orders.

"""
Purchase Status Derivation

One deterministic function maps item aggregates to a lifecycle status.
Returns take precedence over receipts: once anything has been returned the
status is decided by returned vs received alone.

PRECEDENCE TABLE:
    returned > 0, returned == received      -> returned
    returned > 0, returned <  received      -> partially_returned
    returned == 0, received == 0            -> cancelled
    returned == 0, received == ordered      -> received
    returned == 0, 0 < received < ordered   -> partially_received
    anything else                           -> pending

NOTE: received == 0 maps to cancelled, so a fresh order that has received
nothing derives to cancelled. Creation stores 'pending' without deriving;
derivation only runs after receipt/return activity and in maintenance.
"""

from __future__ import annotations

from typing import Iterable


# =============================================================================
# PURCHASE STATUS (CONSTANTS)
# =============================================================================

STATUS_PENDING = "pending"
STATUS_PARTIALLY_RECEIVED = "partially_received"
STATUS_RECEIVED = "received"
STATUS_PARTIALLY_RETURNED = "partially_returned"
STATUS_RETURNED = "returned"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {
    STATUS_PENDING,
    STATUS_PARTIALLY_RECEIVED,
    STATUS_RECEIVED,
    STATUS_PARTIALLY_RETURNED,
    STATUS_RETURNED,
    STATUS_CANCELLED,
}


def derive_status(ordered: int, received: int, returned: int) -> str:
    """
    Derive purchase status from (ordered, received, returned) totals.

    Raises:
        ValueError: negative totals or returned > received
    """
    if ordered < 0 or received < 0 or returned < 0:
        raise ValueError("Quantities cannot be negative")
    if returned > received:
        raise ValueError(f"Returned quantity {returned} exceeds received quantity {received}")

    if returned > 0:
        if returned == received:
            return STATUS_RETURNED
        return STATUS_PARTIALLY_RETURNED

    if received == 0:
        return STATUS_CANCELLED
    if received == ordered:
        return STATUS_RECEIVED
    if 0 < received < ordered:
        return STATUS_PARTIALLY_RECEIVED
    return STATUS_PENDING


def item_totals(items: Iterable) -> tuple[int, int, int]:
    """Sum (quantity, received_quantity, returned_quantity) across items."""
    ordered = received = returned = 0
    for item in items:
        ordered += item.quantity or 0
        received += item.received_quantity or 0
        returned += item.returned_quantity or 0
    return ordered, received, returned


def derive_status_for_items(items: Iterable) -> str:
    return derive_status(*item_totals(items))
