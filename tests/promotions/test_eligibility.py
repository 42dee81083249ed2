"""
Tests for promotion eligibility matching.
"""

from datetime import timedelta
from decimal import Decimal

from django.test import SimpleTestCase

from apps.promotions.domain import CategoryEligibility, CustomerEligibility, ProductEligibility
from apps.promotions.eligibility import EligibilityMatcher
from tests.factories import NOW, make_customer, make_line, make_order, make_promotion


class ValidityWindowTests(SimpleTestCase):
    """Tests for active flag and start/end dates."""

    def setUp(self):
        self.matcher = EligibilityMatcher()
        self.order = make_order()

    def test_active_promotion_in_window_is_eligible(self):
        """Test a running promotion with no restrictions."""
        result = self.matcher.check(make_promotion(), self.order)
        self.assertTrue(result.is_eligible)
        self.assertEqual(result.code, "")

    def test_inactive_promotion(self):
        """Test the master switch."""
        result = self.matcher.check(make_promotion(is_active=False), self.order)
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.code, "PROMOTION_INACTIVE")

    def test_not_yet_started(self):
        """Test a promotion starting tomorrow."""
        result = self.matcher.check(make_promotion(start_date=NOW + timedelta(days=1)), self.order)
        self.assertEqual(result.code, "NOT_YET_STARTED")

    def test_expired(self):
        """Test a promotion that ended yesterday."""
        result = self.matcher.check(make_promotion(end_date=NOW - timedelta(days=1)), self.order)
        self.assertEqual(result.code, "EXPIRED")

    def test_window_boundaries_are_inclusive(self):
        """Test start == now and end == now are both in the window."""
        self.assertTrue(self.matcher.is_eligible(make_promotion(start_date=NOW), self.order))
        self.assertTrue(self.matcher.is_eligible(make_promotion(end_date=NOW), self.order))

    def test_open_ended_promotion(self):
        """Test end_date=None never expires."""
        promotion = make_promotion(end_date=None)
        order = make_order(timestamp=NOW + timedelta(days=3650))
        self.assertTrue(self.matcher.is_eligible(promotion, order))


class MinimumOrderTests(SimpleTestCase):
    """Tests for minimum order amount."""

    def setUp(self):
        self.matcher = EligibilityMatcher()

    def test_below_minimum(self):
        """Test order total below the minimum."""
        result = self.matcher.check(make_promotion(minimum_order_amount="150"), make_order("100.00"))
        self.assertFalse(result.is_eligible)
        self.assertEqual(result.code, "MIN_ORDER_NOT_MET")

    def test_exactly_minimum(self):
        """Test order total equal to the minimum qualifies."""
        self.assertTrue(self.matcher.is_eligible(make_promotion(minimum_order_amount="100"), make_order("100.00")))


class LineScopeTests(SimpleTestCase):
    """Tests for product and category inclusion/exclusion."""

    def setUp(self):
        self.matcher = EligibilityMatcher()
        self.order = make_order(
            "130.00",
            lines=(
                make_line("WIDGET", 1, "100.00", category="hardware"),
                make_line("CABLE", 3, "10.00", category="accessories"),
            ),
        )

    def test_no_rows_means_every_line(self):
        """Test an unrestricted promotion covers all lines."""
        promotion = make_promotion()
        self.assertFalse(self.matcher.has_line_scope(promotion))
        self.assertEqual(len(self.matcher.matching_lines(promotion, self.order)), 2)

    def test_product_inclusion(self):
        """Test only included products match."""
        promotion = make_promotion(product_eligibility=(ProductEligibility("CABLE"),))
        lines = self.matcher.matching_lines(promotion, self.order)
        self.assertEqual([line.product_id for line in lines], ["CABLE"])

    def test_product_inclusion_without_match_is_ineligible(self):
        """Test an order with none of the included products."""
        promotion = make_promotion(product_eligibility=(ProductEligibility("GADGET"),))
        result = self.matcher.check(promotion, self.order)
        self.assertEqual(result.code, "NO_ELIGIBLE_PRODUCTS")

    def test_product_exclusion_only_filters(self):
        """Test exclusion rows leave the other lines eligible."""
        promotion = make_promotion(product_eligibility=(ProductEligibility("WIDGET", is_included=False),))
        lines = self.matcher.matching_lines(promotion, self.order)
        self.assertEqual([line.product_id for line in lines], ["CABLE"])
        self.assertTrue(self.matcher.is_eligible(promotion, self.order))

    def test_product_or_category_inclusion(self):
        """Test a line matches when either inclusion scope lists it."""
        promotion = make_promotion(
            product_eligibility=(ProductEligibility("WIDGET"),),
            category_eligibility=(CategoryEligibility("accessories"),),
        )
        lines = self.matcher.matching_lines(promotion, self.order)
        self.assertEqual([line.product_id for line in lines], ["WIDGET", "CABLE"])

    def test_category_exclusion_vetoes_product_inclusion(self):
        """Test an excluded category removes an explicitly included product."""
        promotion = make_promotion(
            product_eligibility=(ProductEligibility("WIDGET"),),
            category_eligibility=(CategoryEligibility("hardware", is_included=False),),
        )
        self.assertEqual(self.matcher.matching_lines(promotion, self.order), ())
        self.assertFalse(self.matcher.is_eligible(promotion, self.order))

    def test_matching_is_case_insensitive(self):
        """Test product and category identifiers ignore case and padding."""
        promotion = make_promotion(category_eligibility=(CategoryEligibility(" Hardware "),))
        lines = self.matcher.matching_lines(promotion, self.order)
        self.assertEqual([line.product_id for line in lines], ["WIDGET"])


class CustomerScopeTests(SimpleTestCase):
    """Tests for customer group eligibility."""

    def setUp(self):
        self.matcher = EligibilityMatcher()

    def _order_for(self, customer_id="cust-1", segments=("returning",)):
        return make_order(customer=make_customer(customer_id, segments=frozenset(segments)))

    def test_no_rows_means_all_customers(self):
        """Test missing customer rows do not restrict."""
        self.assertTrue(self.matcher.is_eligible(make_promotion(), self._order_for()))

    def test_all_group(self):
        """Test the 'all' group admits everyone."""
        promotion = make_promotion(customer_eligibility=(CustomerEligibility("all"),))
        self.assertTrue(self.matcher.is_eligible(promotion, self._order_for(segments=())))

    def test_segment_group(self):
        """Test a VIP-only promotion."""
        promotion = make_promotion(customer_eligibility=(CustomerEligibility("vip"),))
        self.assertTrue(self.matcher.is_eligible(promotion, self._order_for(segments=("VIP",))))
        result = self.matcher.check(promotion, self._order_for(segments=("returning",)))
        self.assertEqual(result.code, "CUSTOMER_INELIGIBLE")

    def test_specific_customer(self):
        """Test a promotion for one named customer."""
        promotion = make_promotion(customer_eligibility=(CustomerEligibility("specific", customer_id="cust-9"),))
        self.assertTrue(self.matcher.is_eligible(promotion, self._order_for("cust-9")))
        self.assertFalse(self.matcher.is_eligible(promotion, self._order_for("cust-1")))

    def test_specific_row_without_customer_matches_nobody(self):
        """Test an incomplete specific row."""
        promotion = make_promotion(customer_eligibility=(CustomerEligibility("specific"),))
        self.assertFalse(self.matcher.is_eligible(promotion, self._order_for()))

    def test_exclusion_beats_inclusion(self):
        """Test an excluded customer inside an included group."""
        promotion = make_promotion(
            customer_eligibility=(
                CustomerEligibility("all"),
                CustomerEligibility("specific", customer_id="cust-1", is_included=False),
            )
        )
        result = self.matcher.check(promotion, self._order_for("cust-1"))
        self.assertEqual(result.code, "CUSTOMER_EXCLUDED")
        self.assertTrue(self.matcher.is_eligible(promotion, self._order_for("cust-2")))

    def test_exclusion_only_rows(self):
        """Test excluding wholesale customers leaves everyone else eligible."""
        promotion = make_promotion(customer_eligibility=(CustomerEligibility("wholesale", is_included=False),))
        self.assertTrue(self.matcher.is_eligible(promotion, self._order_for(segments=("retail",))))
        self.assertFalse(self.matcher.is_eligible(promotion, self._order_for(segments=("wholesale",))))

    def test_minimum_checked_before_customer(self):
        """Test the first failing check is reported."""
        promotion = make_promotion(
            minimum_order_amount=Decimal("500"),
            customer_eligibility=(CustomerEligibility("vip"),),
        )
        result = self.matcher.check(promotion, self._order_for(segments=()))
        self.assertEqual(result.code, "MIN_ORDER_NOT_MET")
