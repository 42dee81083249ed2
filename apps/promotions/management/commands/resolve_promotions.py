"""
Django management command to resolve promotions for an order payload.
Loads the tenant's candidates and usage history, runs the engine and prints the result as JSON.
"""

import json
import sys
import uuid
from pathlib import Path
from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.common.logging import clear_request_context, get_logger, set_request_context
from apps.common.types import BusinessError
from apps.promotions.serializers import OrderContextSerializer
from apps.promotions.services import PromotionQueryService, PromotionRedemptionService, parse_tenant_id

logger = get_logger(__name__, component="resolve_promotions")


class Command(BaseCommand):
    help = "Resolve the applicable promotions for an order JSON payload"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument("--tenant", required=True, help="Tenant UUID owning the promotions")
        parser.add_argument("--order", required=True, help="Path to the order JSON file ('-' for stdin)")
        parser.add_argument(
            "--promotion",
            metavar="PROMOTION_ID",
            help="Resolve against this promotion only, e.g. to check why it does not apply",
        )
        parser.add_argument(
            "--commit",
            metavar="ORDER_REFERENCE",
            help="Record the resolved discounts in the usage ledger under this order reference",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        tenant_id = options["tenant"]
        payload = self._load_payload(options["order"])

        set_request_context(request_id=str(uuid.uuid4()), tenant_id=tenant_id)
        try:
            tenant_id = parse_tenant_id(tenant_id)
            order = OrderContextSerializer(data=payload).to_order()
            candidates = None
            if options["promotion"]:
                snapshot = PromotionQueryService.get_snapshot(tenant_id, options["promotion"])
                if snapshot.is_err():
                    raise CommandError(snapshot.unwrap_err())
                candidates = [snapshot.unwrap()]
            result = PromotionQueryService.resolve_for_order(tenant_id, order, candidates=candidates)
            output = result.serialize()

            if options["commit"]:
                commit = PromotionRedemptionService.commit(tenant_id, result, order, options["commit"])
                output["commit"] = {
                    "success": commit.success,
                    "usage_ids": commit.usage_ids,
                    "error_code": commit.error_code,
                    "error_message": commit.error_message,
                }
            logger.info(
                "Resolved promotions from command line",
                order_id=order.order_id,
                promotion_ids=result.promotion_ids,
                committed=bool(options["commit"]),
            )
        except BusinessError as e:
            logger.warning("Promotion resolution rejected: %s", e, error=str(e))
            raise CommandError(str(e)) from e
        finally:
            clear_request_context()

        self.stdout.write(json.dumps(output, indent=2, default=str))

    @staticmethod
    def _load_payload(source: str) -> dict[str, Any]:
        try:
            raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
        except OSError as e:
            raise CommandError(f"Cannot read order payload: {e}") from e
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CommandError(f"Order payload is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise CommandError("Order payload must be a JSON object")
        return payload
