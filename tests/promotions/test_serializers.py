"""
Tests for promotion and order context serializers.
"""

import dataclasses
from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from apps.promotions.domain import PromotionInputError
from apps.promotions.models import Promotion
from apps.promotions.serializers import OrderContextSerializer, PromotionSerializer, first_error
from tests.factories import TENANT_ID, create_promotion


def promotion_payload(**overrides):
    data = {
        "tenant_id": TENANT_ID,
        "name": "Weekend Sale",
        "promotion_type": "percentage",
        "discount_type": "percentage",
        "discount_value": "15.00",
        "maximum_discount_amount": "25.00",
        "priority": 4,
        "start_date": "2025-06-01T00:00:00Z",
        "end_date": "2025-06-30T23:59:59Z",
        "usage_limit_per_customer": 2,
        "product_eligibility": [{"product_id": "SKU-1"}, {"product_id": "SKU-2", "is_included": False}],
        "category_eligibility": [{"category": "garden"}],
        "customer_eligibility": [{"customer_group": "specific", "customer_id": "cust-7"}],
        "rules": [
            {"rule_type": "time", "field_name": "day_of_week", "operator": "in", "value": "saturday,sunday"},
            {"rule_type": "order", "field_name": "total_amount", "operator": "greater_equal", "value": "30",
             "rule_group": 2},
        ],
        "actions": [],
    }
    data.update(overrides)
    return data


class PromotionSerializerTests(TestCase):
    """Tests for nested promotion writes."""

    def test_create_with_children(self):
        """Test a promotion is created with every child collection."""
        serializer = PromotionSerializer(data=promotion_payload())
        self.assertTrue(serializer.is_valid(), serializer.errors)

        promotion = serializer.save()

        self.assertEqual(promotion.product_eligibility.count(), 2)
        self.assertEqual(promotion.category_eligibility.get().category, "garden")
        self.assertEqual(promotion.customer_eligibility.get().customer_id, "cust-7")
        self.assertEqual(promotion.rules.count(), 2)
        self.assertTrue(all(str(rule.tenant_id) == TENANT_ID for rule in promotion.rules.all()))

    def test_round_trip_preserves_snapshot(self):
        """Test serialized output re-imports to an equivalent promotion."""
        serializer = PromotionSerializer(data=promotion_payload())
        self.assertTrue(serializer.is_valid(), serializer.errors)
        original = serializer.save()

        exported = PromotionSerializer(Promotion.objects.get(pk=original.pk)).data
        reimport = PromotionSerializer(data=exported)
        self.assertTrue(reimport.is_valid(), reimport.errors)
        copy = reimport.save()

        before = Promotion.objects.get(pk=original.pk).to_snapshot()
        after = Promotion.objects.get(pk=copy.pk).to_snapshot()
        self.assertNotEqual(before.id, after.id)
        self.assertEqual(dataclasses.replace(after, id=before.id, created_at=before.created_at), before)

    def test_update_replaces_submitted_children(self):
        """Test a partial update replaces rules and leaves other children alone."""
        promotion = create_promotion(
            product_eligibility=({"product_id": "SKU-1"},),
            rules=({"value": "10"}, {"value": "20", "rule_group": 2}),
        )
        serializer = PromotionSerializer(
            promotion,
            data={"priority": 9, "rules": [{"field_name": "item_count", "operator": "greater_equal", "value": "3"}]},
            partial=True,
        )
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        promotion.refresh_from_db()
        self.assertEqual(promotion.priority, 9)
        self.assertEqual([rule.field_name for rule in promotion.rules.all()], ["item_count"])
        self.assertEqual(promotion.product_eligibility.count(), 1)

    def test_uninterpretable_rule_rejected(self):
        """Test a rule the engine could not evaluate is refused at authoring time."""
        payload = promotion_payload(
            rules=[{"rule_type": "order", "field_name": "total_amount", "operator": "greater_than", "value": "lots"}]
        )
        serializer = PromotionSerializer(data=payload)
        self.assertFalse(serializer.is_valid())
        self.assertTrue(str(serializer.errors["rules"][0]["value"][0]).startswith("MALFORMED_VALUE"))

    def test_unknown_field_rejected(self):
        """Test a field that does not exist for the rule type."""
        payload = promotion_payload(
            rules=[{"rule_type": "customer", "field_name": "shoe_size", "operator": "equals", "value": "42"}]
        )
        serializer = PromotionSerializer(data=payload)
        self.assertFalse(serializer.is_valid())
        self.assertIn("UNKNOWN_FIELD", str(serializer.errors["rules"][0]["value"][0]))

    def test_percentage_over_hundred_rejected(self):
        """Test model validation runs on the serializer."""
        serializer = PromotionSerializer(data=promotion_payload(discount_value="120"))
        self.assertFalse(serializer.is_valid())
        self.assertIn("discount_value", serializer.errors)

    def test_specific_customer_without_id_rejected(self):
        """Test a specific-customer row needs a customer id."""
        serializer = PromotionSerializer(data=promotion_payload(customer_eligibility=[{"customer_group": "specific"}]))
        self.assertFalse(serializer.is_valid())
        self.assertIn("customer_id", serializer.errors["customer_eligibility"][0])

    def test_tier_without_threshold_rejected(self):
        """Test a tier action needs a threshold."""
        serializer = PromotionSerializer(
            data=promotion_payload(promotion_type="tiered", actions=[{"action_type": "tier", "action_value": "5"}])
        )
        self.assertFalse(serializer.is_valid())
        self.assertIn("threshold", serializer.errors["actions"][0])


class OrderContextSerializerTests(SimpleTestCase):
    """Tests for raw order payloads."""

    def payload(self, **overrides):
        data = {
            "customer": {"id": "cust-1", "order_count": 4, "total_spent": "310.00", "segments": ["vip"]},
            "lines": [
                {"product_id": "SKU-1", "quantity": 2, "unit_price": "25.00", "category": "garden"},
                {"product_id": "SKU-2", "quantity": 1, "unit_price": "50.00"},
            ],
            "total_amount": "100.00",
            "timestamp": "2025-06-14T10:00:00+02:00",
        }
        data.update(overrides)
        return data

    def test_builds_order_context(self):
        """Test a valid payload produces the engine input."""
        order = OrderContextSerializer(data=self.payload()).to_order()

        self.assertEqual(order.customer.id, "cust-1")
        self.assertEqual(order.customer.segments, frozenset({"vip"}))
        self.assertEqual(order.total_amount, Decimal("100.00"))
        self.assertEqual(len(order.lines), 2)
        self.assertEqual(order.lines[0].category, "garden")
        self.assertEqual(order.effective_item_count, 3)
        self.assertIsNotNone(order.timestamp.tzinfo)

    def test_missing_customer_id(self):
        """Test the failing field is named."""
        payload = self.payload(customer={"order_count": 1})
        with self.assertRaises(PromotionInputError) as ctx:
            OrderContextSerializer(data=payload).to_order()
        self.assertEqual(ctx.exception.field, "customer.id")

    def test_invalid_line_quantity(self):
        """Test nested line errors carry their index."""
        lines = self.payload()["lines"]
        lines[1]["quantity"] = 0
        with self.assertRaises(PromotionInputError) as ctx:
            OrderContextSerializer(data=self.payload(lines=lines)).to_order()
        self.assertEqual(ctx.exception.field, "lines[1].quantity")

    def test_negative_total(self):
        """Test a negative total is rejected."""
        with self.assertRaises(PromotionInputError) as ctx:
            OrderContextSerializer(data=self.payload(total_amount="-5")).to_order()
        self.assertEqual(ctx.exception.field, "total_amount")


class FirstErrorTests(SimpleTestCase):
    """Tests for flattening DRF error structures."""

    def test_nested_list(self):
        self.assertEqual(first_error({"lines": [{}, {"quantity": ["Too small"]}]}), ("lines[1].quantity", "Too small"))

    def test_errors_keyed_by_index(self):
        self.assertEqual(first_error({"lines": {1: {"quantity": ["Too small"]}}}), ("lines[1].quantity", "Too small"))

    def test_non_field_errors(self):
        self.assertEqual(first_error({"non_field_errors": ["Broken"]}), ("non_field_errors", "Broken"))
