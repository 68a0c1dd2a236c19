# Overview: Coverage for the unified purchase status derivation.

import unittest

from purchasing.services.status_service import (
    STATUS_CANCELLED,
    STATUS_PARTIALLY_RECEIVED,
    STATUS_PARTIALLY_RETURNED,
    STATUS_PENDING,
    STATUS_RECEIVED,
    STATUS_RETURNED,
    derive_status,
    derive_status_for_items,
)


class _Item:
    def __init__(self, quantity, received_quantity=0, returned_quantity=0):
        self.quantity = quantity
        self.received_quantity = received_quantity
        self.returned_quantity = returned_quantity


class DeriveStatusTests(unittest.TestCase):
    def test_precedence_table(self):
        cases = [
            ((10, 0, 0), STATUS_CANCELLED),
            ((10, 4, 0), STATUS_PARTIALLY_RECEIVED),
            ((10, 10, 0), STATUS_RECEIVED),
            ((10, 10, 3), STATUS_PARTIALLY_RETURNED),
            ((10, 10, 10), STATUS_RETURNED),
            ((10, 4, 4), STATUS_RETURNED),
            ((10, 4, 1), STATUS_PARTIALLY_RETURNED),
        ]
        for args, expected in cases:
            with self.subTest(args=args):
                self.assertEqual(derive_status(*args), expected)

    def test_returns_override_receipt_rule(self):
        # Receipt rule alone would say partially_received
        self.assertEqual(derive_status(10, 6, 2), STATUS_PARTIALLY_RETURNED)

    def test_received_beyond_ordered_falls_through_to_pending(self):
        self.assertEqual(derive_status(5, 7, 0), STATUS_PENDING)

    def test_returned_more_than_received_is_rejected(self):
        with self.assertRaises(ValueError):
            derive_status(10, 2, 3)

    def test_negative_quantities_are_rejected(self):
        with self.assertRaises(ValueError):
            derive_status(10, -1, 0)

    def test_items_are_summed(self):
        items = [_Item(5, 5), _Item(5, 2)]
        self.assertEqual(derive_status_for_items(items), STATUS_PARTIALLY_RECEIVED)
        items = [_Item(5, 5, 5), _Item(5, 5, 5)]
        self.assertEqual(derive_status_for_items(items), STATUS_RETURNED)
