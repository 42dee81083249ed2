"""
Tests for the resolve_promotions management command.
"""

import json
import tempfile
from decimal import Decimal
from io import StringIO
from pathlib import Path

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from apps.promotions.models import PromotionUsage
from tests.factories import TENANT_ID, create_promotion

ORDER_PAYLOAD = {
    "customer": {"id": "cust-1", "order_count": 2, "total_spent": "80.00"},
    "lines": [{"product_id": "SKU-1", "quantity": 2, "unit_price": "50.00"}],
    "total_amount": "100.00",
    "timestamp": "2025-06-11T14:30:00Z",
    "order_id": "ORD-42",
}


class ResolvePromotionsCommandTests(TestCase):
    """Tests for command line resolution."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def write_payload(self, payload):
        path = Path(self.tmpdir.name) / "order.json"
        path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
        return str(path)

    def run_command(self, *args):
        out = StringIO()
        call_command("resolve_promotions", *args, stdout=out)
        return json.loads(out.getvalue())

    def test_prints_resolution(self):
        """Test the resolved discounts are printed as JSON."""
        promotion = create_promotion(discount_type="fixed_amount", discount_value=Decimal("5.00"))

        output = self.run_command("--tenant", TENANT_ID, "--order", self.write_payload(ORDER_PAYLOAD))

        self.assertEqual(output["total_discount"], "5.00")
        self.assertEqual(output["discounts"][0]["promotion_id"], str(promotion.id))
        self.assertIn("filtering_usage", output["trace"])
        self.assertNotIn("commit", output)
        self.assertFalse(PromotionUsage.objects.exists())

    def test_commit_records_usage(self):
        """Test --commit writes the usage ledger."""
        create_promotion()

        output = self.run_command(
            "--tenant", TENANT_ID, "--order", self.write_payload(ORDER_PAYLOAD), "--commit", "ORD-42"
        )

        self.assertTrue(output["commit"]["success"])
        self.assertEqual(PromotionUsage.objects.get().order_reference, "ORD-42")

    def test_invalid_order_payload(self):
        """Test an invalid order names the failing field."""
        payload = {**ORDER_PAYLOAD, "customer": {"order_count": 1}}
        with self.assertRaisesMessage(CommandError, "customer.id"):
            self.run_command("--tenant", TENANT_ID, "--order", self.write_payload(payload))

    def test_malformed_json(self):
        with self.assertRaisesMessage(CommandError, "not valid JSON"):
            self.run_command("--tenant", TENANT_ID, "--order", self.write_payload("{broken"))

    def test_payload_must_be_object(self):
        with self.assertRaisesMessage(CommandError, "JSON object"):
            self.run_command("--tenant", TENANT_ID, "--order", self.write_payload("[]"))

    def test_missing_file(self):
        with self.assertRaisesMessage(CommandError, "Cannot read order payload"):
            self.run_command("--tenant", TENANT_ID, "--order", str(Path(self.tmpdir.name) / "missing.json"))

    def test_malformed_tenant(self):
        """Test a tenant that is not a UUID is reported as a command error."""
        with self.assertRaisesMessage(CommandError, "tenant_id"):
            self.run_command("--tenant", "acme", "--order", self.write_payload(ORDER_PAYLOAD))

    def test_single_promotion(self):
        """Test --promotion resolves against that promotion only."""
        create_promotion(discount_type="fixed_amount", discount_value=Decimal("5.00"), priority=10)
        chosen = create_promotion(discount_value=Decimal("10.00"), priority=1)

        output = self.run_command(
            "--tenant", TENANT_ID, "--order", self.write_payload(ORDER_PAYLOAD), "--promotion", str(chosen.id)
        )

        self.assertEqual([discount["promotion_id"] for discount in output["discounts"]], [str(chosen.id)])
        self.assertEqual(output["total_discount"], "10.00")

    def test_unknown_promotion(self):
        with self.assertRaisesMessage(CommandError, "not found"):
            self.run_command(
                "--tenant", TENANT_ID, "--order", self.write_payload(ORDER_PAYLOAD), "--promotion", "missing"
            )
