"""
Tests for conflict resolution between applicable promotions.
"""

from datetime import timedelta
from decimal import Decimal

from django.test import SimpleTestCase

from apps.promotions.conflicts import Candidate, ConflictResolver, priority_key
from apps.promotions.domain import DiscountAmount
from tests.factories import NOW, make_promotion


def candidate(promotion_id, amount, position=0, waives_shipping=False, **overrides):
    return Candidate(
        promotion=make_promotion(promotion_id, **overrides),
        discount=DiscountAmount(amount=Decimal(amount), waives_shipping=waives_shipping),
        position=position,
    )


class ConflictResolverTests(SimpleTestCase):
    """Tests for stacking, priority and order-value limits."""

    def setUp(self):
        self.resolver = ConflictResolver()

    def test_higher_priority_exclusive_wins(self):
        """Test two non-stackable promotions: only the higher priority applies."""
        resolved = self.resolver.resolve(
            [candidate("P1", "10.00", 0, priority=5), candidate("P2", "5.00", 1, priority=10)],
            Decimal("100.00"),
        )
        self.assertEqual([discount.promotion_id for discount in resolved], ["P2"])
        self.assertEqual(resolved[0].amount, Decimal("5.00"))

    def test_tie_broken_by_creation_time(self):
        """Test equal priority falls back to the earlier-created promotion."""
        resolved = self.resolver.resolve(
            [
                candidate("NEW", "10.00", 0, created_at=NOW - timedelta(days=1)),
                candidate("OLD", "10.00", 1, created_at=NOW - timedelta(days=90)),
            ],
            Decimal("100.00"),
        )
        self.assertEqual([discount.promotion_id for discount in resolved], ["OLD"])

    def test_tie_without_creation_time_uses_input_order(self):
        """Test missing creation times sort last, then by position."""
        first = candidate("A", "1.00", 0, created_at=None)
        second = candidate("B", "1.00", 1, created_at=None)
        dated = candidate("C", "1.00", 2)
        ordered = sorted([second, dated, first], key=priority_key)
        self.assertEqual([item.promotion.id for item in ordered], ["C", "A", "B"])

    def test_stackable_promotions_apply_with_exclusive(self):
        """Test stackables alongside one non-stackable."""
        resolved = self.resolver.resolve(
            [
                candidate("S1", "3.00", 0, is_stackable=True, priority=1),
                candidate("X1", "10.00", 1, priority=5),
                candidate("X2", "20.00", 2, priority=3),
                candidate("S2", "2.00", 3, is_stackable=True, priority=9),
            ],
            Decimal("100.00"),
        )
        self.assertEqual([discount.promotion_id for discount in resolved], ["S2", "X1", "S1"])
        self.assertEqual(sum(discount.amount for discount in resolved), Decimal("15.00"))

    def test_running_total_never_exceeds_order(self):
        """Test later discounts are clipped to what is left of the order."""
        resolved = self.resolver.resolve(
            [
                candidate("S1", "70.00", 0, is_stackable=True, priority=2),
                candidate("S2", "50.00", 1, is_stackable=True, priority=1),
            ],
            Decimal("100.00"),
        )
        self.assertEqual([discount.amount for discount in resolved], [Decimal("70.00"), Decimal("30.00")])
        self.assertEqual(resolved[1].breakdown["limited_to_order_value"], "30.00")

    def test_exhausted_order_skips_monetary_discounts(self):
        """Test nothing is left once the order is fully discounted."""
        resolved = self.resolver.resolve(
            [
                candidate("S1", "100.00", 0, is_stackable=True, priority=2),
                candidate("S2", "10.00", 1, is_stackable=True, priority=1),
            ],
            Decimal("100.00"),
        )
        self.assertEqual([discount.promotion_id for discount in resolved], ["S1"])

    def test_zero_effect_does_not_block_exclusive(self):
        """Test a zero-amount exclusive promotion leaves the slot to the next one."""
        resolved = self.resolver.resolve(
            [candidate("EMPTY", "0", 0, priority=10), candidate("REAL", "5.00", 1, priority=1)],
            Decimal("100.00"),
        )
        self.assertEqual([discount.promotion_id for discount in resolved], ["REAL"])

    def test_shipping_waiver_kept_without_amount(self):
        """Test a free shipping promotion survives with a zero amount."""
        resolved = self.resolver.resolve(
            [candidate("SHIP", "0", 0, waives_shipping=True, is_stackable=True)],
            Decimal("100.00"),
        )
        self.assertEqual(len(resolved), 1)
        self.assertTrue(resolved[0].waives_shipping)

    def test_empty(self):
        """Test no candidates."""
        self.assertEqual(self.resolver.resolve([], Decimal("100.00")), [])
