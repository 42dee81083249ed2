"""
Promotion services.
Loading tenant snapshots for the engine and committing resolved discounts to the usage ledger.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.common.types import ConfigurationError, Err, Ok, PromotionId, Result, TenantId

from .discounts import DiscountCalculator
from .domain import (
    DEFAULT_QUANTUM,
    ZERO,
    OrderContext,
    PromotionInputError,
    PromotionSnapshot,
    ResolvedDiscount,
    UsageLimitExceededError,
    UsageRecord,
    index_by_id,
)
from .eligibility import EligibilityMatcher
from .engine import PromotionEngine, ResolutionResult
from .models import Promotion, PromotionUsage
from .rules import DEFAULT_LIST_DELIMITER, RuleGroupEvaluator
from .usage import UsageIndex, UsageLimiter

logger = logging.getLogger(__name__)


# ===============================================================================
# Constants
# ===============================================================================

SNAPSHOT_PREFETCH = (
    "product_eligibility",
    "category_eligibility",
    "customer_eligibility",
    "rules",
    "actions",
)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class CommitResult:
    """
    Result of committing resolved discounts to an order.

    Attributes:
        success: Whether every effective discount was recorded.
        usage_ids: UUIDs of the PromotionUsage rows created.
        total_discount: Sum of the recorded discount amounts.
        error_message: Human-readable error message if the commit failed.
        error_code: Machine-readable error code.
            Codes: PROMOTION_NOT_FOUND, GLOBAL_LIMIT_REACHED,
            CUSTOMER_LIMIT_REACHED, ALREADY_COMMITTED
        promotion_id: Promotion that caused the failure, if any.
    """

    success: bool
    usage_ids: list[str] = field(default_factory=list)
    total_discount: Decimal = ZERO
    error_message: str = ""
    error_code: str = ""
    promotion_id: str | None = None


# ===============================================================================
# Engine Factory
# ===============================================================================


def build_engine() -> PromotionEngine:
    """Engine configured from ``PROMOTIONS_*`` settings."""
    raw_quantum = getattr(settings, "PROMOTIONS_CURRENCY_QUANTUM", DEFAULT_QUANTUM)
    try:
        quantum = Decimal(str(raw_quantum))
    except InvalidOperation as e:
        raise ConfigurationError(f"PROMOTIONS_CURRENCY_QUANTUM is not a decimal: {raw_quantum!r}") from e
    if not quantum.is_finite() or quantum <= 0:
        raise ConfigurationError(f"PROMOTIONS_CURRENCY_QUANTUM must be positive: {raw_quantum!r}")

    delimiter = getattr(settings, "PROMOTIONS_LIST_DELIMITER", DEFAULT_LIST_DELIMITER)
    if not delimiter:
        raise ConfigurationError("PROMOTIONS_LIST_DELIMITER cannot be empty")

    matcher = EligibilityMatcher()
    return PromotionEngine(
        matcher=matcher,
        evaluator=RuleGroupEvaluator(delimiter),
        calculator=DiscountCalculator(matcher=matcher, quantum=quantum),
    )


def parse_tenant_id(tenant_id: TenantId) -> TenantId:
    """
    Normalise a tenant id to its canonical UUID string.

    Raises:
        PromotionInputError: when the value is not a UUID.
    """
    try:
        return str(uuid.UUID(str(tenant_id)))
    except ValueError as e:
        raise PromotionInputError("tenant_id", f"Tenant id is not a valid UUID: {tenant_id!r}") from e


# ===============================================================================
# Query Service
# ===============================================================================


class PromotionQueryService:
    """Read side: tenant promotions and usage history as engine snapshots."""

    @staticmethod
    def candidate_queryset(tenant_id: TenantId, at: datetime | None = None) -> QuerySet[Promotion]:
        """Active promotions whose validity window contains ``at``."""
        at = at or timezone.now()
        return (
            Promotion.objects.filter(tenant_id=tenant_id, is_active=True, start_date__lte=at)
            .filter(Q(end_date__isnull=True) | Q(end_date__gte=at))
            .prefetch_related(*SNAPSHOT_PREFETCH)
        )

    @classmethod
    def load_candidates(cls, tenant_id: TenantId, at: datetime | None = None) -> list[PromotionSnapshot]:
        return [promotion.to_snapshot() for promotion in cls.candidate_queryset(tenant_id, at)]

    @staticmethod
    def load_usage_history(tenant_id: TenantId, promotion_ids: Iterable[str] | None = None) -> list[UsageRecord]:
        usages = PromotionUsage.objects.filter(tenant_id=tenant_id)
        if promotion_ids is not None:
            usages = usages.filter(promotion_id__in=list(promotion_ids))
        return [
            UsageRecord(promotion_id=str(promotion_id), customer_id=customer_id, redeemed_at=redeemed_at)
            for promotion_id, customer_id, redeemed_at in usages.values_list(
                "promotion_id", "customer_id", "redeemed_at"
            )
        ]

    @staticmethod
    def get_snapshot(tenant_id: TenantId, promotion_id: PromotionId) -> Result[PromotionSnapshot, str]:
        try:
            promotion = Promotion.objects.prefetch_related(*SNAPSHOT_PREFETCH).get(
                tenant_id=tenant_id, id=promotion_id
            )
        except (Promotion.DoesNotExist, DjangoValidationError):
            return Err(f"Promotion {promotion_id} not found")
        return Ok(promotion.to_snapshot())

    @classmethod
    def resolve_for_order(
        cls,
        tenant_id: TenantId,
        order: OrderContext,
        engine: PromotionEngine | None = None,
        candidates: list[PromotionSnapshot] | None = None,
    ) -> ResolutionResult:
        """
        Load candidates and usage for the tenant, then run the engine.
        Pass ``candidates`` to resolve against an explicit subset of the tenant's promotions.
        """
        tenant_id = parse_tenant_id(tenant_id)
        if candidates is None:
            candidates = cls.load_candidates(tenant_id, order.timestamp)
        history = cls.load_usage_history(tenant_id, [promotion.id for promotion in candidates])
        return (engine or build_engine()).resolve(order, candidates, history)


# ===============================================================================
# Redemption Service
# ===============================================================================


class PromotionRedemptionService:
    """Write side: records applied discounts in the usage ledger."""

    @classmethod
    def commit(
        cls,
        tenant_id: TenantId,
        result: ResolutionResult | Iterable[ResolvedDiscount],
        order: OrderContext,
        order_reference: str,
    ) -> CommitResult:
        """
        Record one PromotionUsage per effective discount, all or nothing.

        Locks the promotion rows with SELECT FOR UPDATE and recounts usage so that
        concurrent commits cannot push a promotion past its limits.

        Raises:
            PromotionInputError: when the order or the tenant id is invalid.
        """
        order.validate()
        tenant_id = parse_tenant_id(tenant_id)
        discounts = result.discounts if isinstance(result, ResolutionResult) else list(result)
        effective = [discount for discount in discounts if discount.amount > 0 or discount.waives_shipping]
        if not effective:
            return CommitResult(success=True)

        promotion_ids = sorted({discount.promotion_id for discount in effective})
        try:
            with transaction.atomic():
                usage_ids = cls._record(tenant_id, promotion_ids, effective, order, order_reference)
        except UsageLimitExceededError as e:
            logger.warning(
                "Promotion commit rejected for order %s: %s",
                order_reference,
                e.message,
                extra={"promotion_id": e.promotion_id, "order_id": order_reference, "error": e.message},
            )
            return CommitResult(
                success=False,
                error_message=e.message,
                error_code=e.code,
                promotion_id=e.promotion_id,
            )
        except IntegrityError:
            logger.warning(
                "Promotions already committed to order %s",
                order_reference,
                extra={"order_id": order_reference, "promotion_ids": promotion_ids},
            )
            return CommitResult(
                success=False,
                error_message=f"Promotions already committed to order {order_reference}",
                error_code="ALREADY_COMMITTED",
            )

        total = sum((discount.amount for discount in effective), ZERO)
        logger.info(
            "Committed %d promotion(s) to order %s: total discount %s",
            len(usage_ids),
            order_reference,
            total,
            extra={"order_id": order_reference, "customer_id": order.customer.id, "promotion_ids": promotion_ids},
        )
        return CommitResult(success=True, usage_ids=usage_ids, total_discount=total)

    @staticmethod
    def _record(
        tenant_id: TenantId,
        promotion_ids: list[str],
        discounts: list[ResolvedDiscount],
        order: OrderContext,
        order_reference: str,
    ) -> list[str]:
        # Lock in a stable order to avoid deadlocks between concurrent commits
        locked = (
            Promotion.objects.select_for_update()
            .filter(tenant_id=tenant_id, id__in=promotion_ids)
            .order_by("id")
            .prefetch_related(*SNAPSHOT_PREFETCH)
        )
        snapshots = index_by_id(promotion.to_snapshot() for promotion in locked)

        missing = [promotion_id for promotion_id in promotion_ids if promotion_id not in snapshots]
        if missing:
            raise UsageLimitExceededError(missing[0], f"Promotion {missing[0]} not found", "PROMOTION_NOT_FOUND")

        index = UsageIndex(PromotionQueryService.load_usage_history(tenant_id, promotion_ids))
        limiter = UsageLimiter()
        for promotion_id in promotion_ids:
            check = limiter.check(snapshots[promotion_id], order.customer.id, index)
            if not check.within_limits:
                raise UsageLimitExceededError(
                    promotion_id,
                    f"Promotion {promotion_id} usage limit reached ({check.total_uses} total, "
                    f"{check.customer_uses} by customer)",
                    check.code,
                )

        usage_ids = []
        for discount in discounts:
            usage = PromotionUsage.objects.create(
                promotion_id=discount.promotion_id,
                tenant_id=tenant_id,
                customer_id=order.customer.id,
                order_reference=order_reference,
                discount_amount=discount.amount,
                waives_shipping=discount.waives_shipping,
                order_total=order.total_amount,
                matched_rule_groups=list(discount.matched_rule_groups),
                applied_to_lines=list(discount.line_ids),
            )
            usage_ids.append(str(usage.id))
        return usage_ids
