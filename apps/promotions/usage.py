"""
Usage limits over the append-only redemption ledger.

These are advisory reads: the count-then-insert sequence is made atomic by the
commit boundary in ``services.PromotionRedemptionService``.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from apps.common.types import CustomerId, PromotionId

from .domain import PromotionSnapshot, UsageRecord


class UsageIndex:
    """Redemption counts per promotion and per (promotion, customer), built once per resolution."""

    def __init__(self, records: Iterable[UsageRecord] = ()) -> None:
        self._records = tuple(records)
        self._totals: Counter[str] = Counter()
        self._per_customer: Counter[tuple[str, str]] = Counter()
        for record in self._records:
            self._totals[record.promotion_id] += 1
            self._per_customer[(record.promotion_id, record.customer_id)] += 1

    @classmethod
    def of(cls, usage_history: UsageIndex | Iterable[UsageRecord]) -> UsageIndex:
        if isinstance(usage_history, UsageIndex):
            return usage_history
        return cls(usage_history)

    def total(self, promotion_id: PromotionId) -> int:
        return self._totals[promotion_id]

    def for_customer(self, promotion_id: PromotionId, customer_id: CustomerId) -> int:
        return self._per_customer[(promotion_id, customer_id)]

    def records_for(self, promotion_id: PromotionId) -> tuple[UsageRecord, ...]:
        return tuple(record for record in self._records if record.promotion_id == promotion_id)


@dataclass(frozen=True)
class UsageCheck:
    """
    Result of a usage limit check.

    Attributes:
        within_limits: False when either cap is reached.
        total_uses: Redemptions of the promotion by anyone.
        customer_uses: Redemptions of the promotion by this customer.
        code: GLOBAL_LIMIT_REACHED or CUSTOMER_LIMIT_REACHED when not within limits.
    """

    within_limits: bool
    total_uses: int = 0
    customer_uses: int = 0
    code: str = ""


@dataclass(frozen=True)
class UsageSummary:
    total_usage: int
    unique_customers: int
    last_redeemed_at: datetime | None = None


class UsageLimiter:
    def within_limits(
        self,
        promotion: PromotionSnapshot,
        customer_id: CustomerId,
        usage_history: UsageIndex | Iterable[UsageRecord],
    ) -> bool:
        return self.check(promotion, customer_id, usage_history).within_limits

    def check(
        self,
        promotion: PromotionSnapshot,
        customer_id: CustomerId,
        usage_history: UsageIndex | Iterable[UsageRecord],
    ) -> UsageCheck:
        index = UsageIndex.of(usage_history)
        total_uses = index.total(promotion.id)
        customer_uses = index.for_customer(promotion.id, customer_id)

        if promotion.usage_limit is not None and total_uses >= promotion.usage_limit:
            return UsageCheck(False, total_uses, customer_uses, "GLOBAL_LIMIT_REACHED")
        if promotion.usage_limit_per_customer is not None and customer_uses >= promotion.usage_limit_per_customer:
            return UsageCheck(False, total_uses, customer_uses, "CUSTOMER_LIMIT_REACHED")
        return UsageCheck(True, total_uses, customer_uses)


def usage_summary(promotion_id: PromotionId, usage_history: UsageIndex | Iterable[UsageRecord]) -> UsageSummary:
    """Totals shown on the promotion usage tab: redemptions and distinct customers."""
    records = UsageIndex.of(usage_history).records_for(promotion_id)
    timestamps = [record.redeemed_at for record in records if record.redeemed_at is not None]
    return UsageSummary(
        total_usage=len(records),
        unique_customers=len({record.customer_id for record in records}),
        last_redeemed_at=max(timestamps) if timestamps else None,
    )


def within_limits(
    promotion: PromotionSnapshot,
    customer_id: CustomerId,
    usage_history: UsageIndex | Iterable[UsageRecord],
) -> bool:
    return UsageLimiter().within_limits(promotion, customer_id, usage_history)
