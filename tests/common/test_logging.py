"""
Tests for request-correlated structured logging.
"""

import logging

from django.test import SimpleTestCase

from apps.common.logging import (
    RequestIDFilter,
    StructuredLogAdapter,
    clear_request_context,
    get_logger,
    get_request_context,
    set_request_context,
)


def make_record(**attrs):
    record = logging.LogRecord("apps.promotions", logging.INFO, __file__, 1, "message", (), None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class RequestContextTests(SimpleTestCase):
    """Test thread-local request context helpers."""

    def test_defaults(self):
        """Test an empty context."""
        self.assertEqual(get_request_context(), {"request_id": "-", "user_id": None, "tenant_id": None})

    def test_set_and_clear(self):
        """Test context values are stored and cleared."""
        set_request_context(request_id="req-1", tenant_id="tenant-1", user_id=7)
        self.assertEqual(get_request_context(), {"request_id": "req-1", "user_id": 7, "tenant_id": "tenant-1"})

        clear_request_context()
        self.assertEqual(get_request_context()["request_id"], "-")
        self.assertIsNone(get_request_context()["tenant_id"])

    def test_unknown_field_rejected(self):
        """Test only the known context fields can be set."""
        with self.assertRaises(ValueError):
            set_request_context(session="abc")


class RequestIDFilterTests(SimpleTestCase):
    """Test log record enrichment."""

    def test_injects_context(self):
        """Test the filter copies the current context onto the record."""
        set_request_context(request_id="req-9", tenant_id="tenant-9")
        record = make_record()

        self.assertTrue(RequestIDFilter().filter(record))
        self.assertEqual(record.request_id, "req-9")
        self.assertEqual(record.tenant_id, "tenant-9")
        self.assertIsNone(record.user_id)

    def test_keeps_explicit_values(self):
        """Test values passed via extra are not overwritten."""
        set_request_context(request_id="req-9")
        record = make_record(request_id="explicit")
        RequestIDFilter().filter(record)
        self.assertEqual(record.request_id, "explicit")

    def test_placeholder_without_request(self):
        """Test a dash is used outside of any request."""
        record = make_record()
        RequestIDFilter().filter(record)
        self.assertEqual(record.request_id, "-")


class StructuredLogAdapterTests(SimpleTestCase):
    """Test keyword arguments become structured extra fields."""

    def test_process_moves_kwargs_to_extra(self):
        adapter = StructuredLogAdapter(logging.getLogger("test"), {"component": "promotions"})
        msg, kwargs = adapter.process("hello", {"order_id": "ORD-1", "exc_info": False})

        self.assertEqual(msg, "hello")
        self.assertEqual(kwargs["extra"], {"component": "promotions", "order_id": "ORD-1"})
        self.assertFalse(kwargs["exc_info"])

    def test_get_logger_emits_with_context(self):
        logger = get_logger("apps.promotions.tests", component="engine")
        with self.assertLogs("apps.promotions.tests", level="INFO") as logs:
            logger.info("Resolved", order_id="ORD-2")

        record = logs.records[0]
        self.assertEqual(record.component, "engine")
        self.assertEqual(record.order_id, "ORD-2")
