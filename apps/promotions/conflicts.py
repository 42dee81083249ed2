"""
Conflict resolution between applicable promotions.

Candidates are walked by priority (highest first, earlier-created first on ties).
Every stackable promotion applies; only the first non-stackable one does. The
running total never exceeds the order total.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from .domain import ZERO, DiscountAmount, PromotionSnapshot, ResolvedDiscount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A promotion that passed eligibility, rules and usage, with its computed effect."""

    promotion: PromotionSnapshot
    discount: DiscountAmount
    matched_rule_groups: tuple[int, ...] = ()
    position: int = 0


def priority_key(candidate: Candidate) -> tuple[int, int, float, int]:
    """Sort key: priority desc, then creation time asc (unknown last), then input order."""
    created_at = candidate.promotion.created_at
    return (
        -candidate.promotion.priority,
        0 if created_at is not None else 1,
        created_at.timestamp() if created_at is not None else 0.0,
        candidate.position,
    )


class ConflictResolver:
    def resolve(self, candidates: Iterable[Candidate], order_total: Decimal) -> list[ResolvedDiscount]:
        remaining = max(order_total, ZERO)
        exclusive_applied: str | None = None
        resolved: list[ResolvedDiscount] = []

        for candidate in sorted(candidates, key=priority_key):
            promotion = candidate.promotion
            if not promotion.is_stackable and exclusive_applied is not None:
                logger.debug(
                    "Promotion %s skipped: non-stackable %s already applied",
                    promotion.id,
                    exclusive_applied,
                )
                continue

            amount = min(candidate.discount.amount, remaining)
            if amount <= 0 and not candidate.discount.waives_shipping:
                logger.debug("Promotion %s skipped: no remaining effect", promotion.id)
                continue

            breakdown = dict(candidate.discount.breakdown)
            if amount < candidate.discount.amount:
                breakdown["limited_to_order_value"] = str(amount)

            resolved.append(
                ResolvedDiscount(
                    promotion_id=promotion.id,
                    promotion_name=promotion.name,
                    amount=amount,
                    scope=candidate.discount.scope,
                    line_ids=candidate.discount.line_ids,
                    waives_shipping=candidate.discount.waives_shipping,
                    matched_rule_groups=candidate.matched_rule_groups,
                    priority=promotion.priority,
                    is_stackable=promotion.is_stackable,
                    breakdown=breakdown,
                )
            )
            remaining -= amount
            if not promotion.is_stackable:
                exclusive_applied = promotion.id

        return resolved
