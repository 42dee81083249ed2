"""
Tests for usage limits and usage summaries.
"""

from datetime import timedelta

from django.test import SimpleTestCase

from apps.promotions.usage import UsageIndex, UsageLimiter, usage_summary, within_limits
from tests.factories import NOW, make_promotion, make_usage


class UsageLimiterTests(SimpleTestCase):
    """Tests for global and per-customer caps."""

    def setUp(self):
        self.limiter = UsageLimiter()

    def test_unlimited(self):
        """Test a promotion without caps."""
        history = make_usage("P1", "cust-1", times=50)
        self.assertTrue(self.limiter.within_limits(make_promotion(), "cust-1", history))

    def test_per_customer_limit_reached(self):
        """Test a once-per-customer promotion already used by this customer."""
        promotion = make_promotion(usage_limit_per_customer=1)
        check = self.limiter.check(promotion, "cust-1", make_usage("P1", "cust-1"))
        self.assertFalse(check.within_limits)
        self.assertEqual(check.code, "CUSTOMER_LIMIT_REACHED")
        self.assertEqual(check.customer_uses, 1)

    def test_per_customer_limit_other_customer(self):
        """Test another customer's redemptions do not count."""
        promotion = make_promotion(usage_limit_per_customer=1)
        self.assertTrue(within_limits(promotion, "cust-2", make_usage("P1", "cust-1")))

    def test_global_limit_reached(self):
        """Test the total cap counts every customer."""
        promotion = make_promotion(usage_limit=2)
        history = make_usage("P1", "cust-1") + make_usage("P1", "cust-2")
        check = self.limiter.check(promotion, "cust-3", history)
        self.assertFalse(check.within_limits)
        self.assertEqual(check.code, "GLOBAL_LIMIT_REACHED")
        self.assertEqual(check.total_uses, 2)

    def test_below_global_limit(self):
        """Test one use left."""
        promotion = make_promotion(usage_limit=2)
        self.assertTrue(self.limiter.within_limits(promotion, "cust-1", make_usage("P1", "cust-2")))

    def test_zero_limit_blocks_everyone(self):
        """Test a cap of zero."""
        self.assertFalse(self.limiter.within_limits(make_promotion(usage_limit=0), "cust-1", []))

    def test_other_promotions_ignored(self):
        """Test usage of another promotion does not count."""
        promotion = make_promotion(usage_limit_per_customer=1)
        self.assertTrue(self.limiter.within_limits(promotion, "cust-1", make_usage("P2", "cust-1")))

    def test_prebuilt_index_is_reused(self):
        """Test an index can be shared across checks."""
        index = UsageIndex(make_usage("P1", "cust-1", times=3))
        self.assertIs(UsageIndex.of(index), index)
        self.assertEqual(index.total("P1"), 3)
        self.assertEqual(index.for_customer("P1", "cust-1"), 3)
        self.assertEqual(index.for_customer("P1", "cust-2"), 0)


class UsageSummaryTests(SimpleTestCase):
    """Tests for the usage tab totals."""

    def test_summary(self):
        """Test total redemptions, distinct customers and last redemption."""
        history = make_usage("P1", "cust-1", times=2) + make_usage("P1", "cust-2") + make_usage("P2", "cust-3")
        summary = usage_summary("P1", history)
        self.assertEqual(summary.total_usage, 3)
        self.assertEqual(summary.unique_customers, 2)
        self.assertEqual(summary.last_redeemed_at, NOW - timedelta(days=1))

    def test_empty(self):
        """Test a promotion never redeemed."""
        summary = usage_summary("P1", [])
        self.assertEqual(summary.total_usage, 0)
        self.assertEqual(summary.unique_customers, 0)
        self.assertIsNone(summary.last_redeemed_at)
