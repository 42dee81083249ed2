"""
Promotion resolution orchestrator.

Stages run in a fixed order and each one filters the survivors of the previous
stage, so a promotion dropped early can never come back:

    GATHERING -> FILTERING_ELIGIBILITY -> FILTERING_RULES -> FILTERING_USAGE
              -> RESOLVING_CONFLICTS -> DONE

The engine is synchronous and side-effect free apart from logging. Recording
usage is the caller's job (see services.PromotionRedemptionService).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .conflicts import Candidate, ConflictResolver
from .discounts import DiscountCalculator
from .domain import (
    ZERO,
    EvaluationWarning,
    OrderContext,
    PromotionInputError,
    PromotionSnapshot,
    ResolvedDiscount,
    UsageRecord,
)
from .eligibility import EligibilityMatcher
from .rules import RuleGroupEvaluator
from .usage import UsageIndex, UsageLimiter

logger = logging.getLogger(__name__)


class ResolutionStage(StrEnum):
    GATHERING = "gathering"
    FILTERING_ELIGIBILITY = "filtering_eligibility"
    FILTERING_RULES = "filtering_rules"
    FILTERING_USAGE = "filtering_usage"
    RESOLVING_CONFLICTS = "resolving_conflicts"
    DONE = "done"


@dataclass(frozen=True)
class StageTrace:
    """Promotion ids still in play after a stage."""

    stage: ResolutionStage
    promotion_ids: tuple[str, ...]


@dataclass
class ResolutionResult:
    """
    Full outcome of a resolution.

    Attributes:
        discounts: Applied discounts, in application order.
        warnings: Configuration warnings for administrators.
        trace: Survivors after each stage, for auditing.
    """

    discounts: list[ResolvedDiscount] = field(default_factory=list)
    warnings: list[EvaluationWarning] = field(default_factory=list)
    trace: list[StageTrace] = field(default_factory=list)

    @property
    def total_discount(self) -> Decimal:
        return sum((discount.amount for discount in self.discounts), ZERO)

    @property
    def waives_shipping(self) -> bool:
        return any(discount.waives_shipping for discount in self.discounts)

    @property
    def promotion_ids(self) -> list[str]:
        return [discount.promotion_id for discount in self.discounts]

    def survivors(self, stage: ResolutionStage) -> tuple[str, ...]:
        for entry in self.trace:
            if entry.stage == stage:
                return entry.promotion_ids
        return ()

    def serialize(self) -> dict[str, Any]:
        return {
            "discounts": [discount.serialize() for discount in self.discounts],
            "total_discount": str(self.total_discount),
            "waives_shipping": self.waives_shipping,
            "warnings": [
                {
                    "code": warning.code,
                    "message": warning.message,
                    "promotion_id": warning.promotion_id,
                    "rule_group": warning.rule_group,
                }
                for warning in self.warnings
            ],
            "trace": {str(entry.stage): list(entry.promotion_ids) for entry in self.trace},
        }


class PromotionEngine:
    """Composes matcher, evaluator, limiter, calculator and resolver into one call."""

    def __init__(
        self,
        matcher: EligibilityMatcher | None = None,
        evaluator: RuleGroupEvaluator | None = None,
        limiter: UsageLimiter | None = None,
        calculator: DiscountCalculator | None = None,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.matcher = matcher or EligibilityMatcher()
        self.evaluator = evaluator or RuleGroupEvaluator()
        self.limiter = limiter or UsageLimiter()
        self.calculator = calculator or DiscountCalculator(matcher=self.matcher)
        self.resolver = resolver or ConflictResolver()

    def resolve(
        self,
        order: OrderContext,
        promotions: Sequence[PromotionSnapshot],
        usage_history: Iterable[UsageRecord] = (),
    ) -> ResolutionResult:
        """
        Resolve the discounts for an order.

        Raises:
            PromotionInputError: when the order context is incomplete or the
                candidate list is ambiguous (duplicate promotion ids).
        """
        result = ResolutionResult()
        extra = {"order_id": order.order_id, "customer_id": getattr(order.customer, "id", None)}

        # GATHERING
        candidates = self._gather(order, promotions)
        self._record(result, ResolutionStage.GATHERING, candidates)

        # FILTERING (eligibility)
        candidates = [promotion for promotion in candidates if self.matcher.is_eligible(promotion, order)]
        self._record(result, ResolutionStage.FILTERING_ELIGIBILITY, candidates)

        # FILTERING (rules)
        matched_groups: dict[str, tuple[int, ...]] = {}
        survivors = []
        for promotion in candidates:
            evaluation = self.evaluator.evaluate(promotion, order)
            result.warnings.extend(evaluation.warnings)
            if evaluation.satisfied:
                matched_groups[promotion.id] = evaluation.matched_groups
                survivors.append(promotion)
        candidates = survivors
        self._record(result, ResolutionStage.FILTERING_RULES, candidates)

        # FILTERING (usage)
        index = UsageIndex.of(usage_history)
        candidates = [
            promotion for promotion in candidates if self.limiter.within_limits(promotion, order.customer.id, index)
        ]
        self._record(result, ResolutionStage.FILTERING_USAGE, candidates)

        # RESOLVING (conflicts)
        computed = [
            Candidate(
                promotion=promotion,
                discount=self.calculator.compute(promotion, order),
                matched_rule_groups=matched_groups.get(promotion.id, ()),
                position=position,
            )
            for position, promotion in enumerate(candidates)
        ]
        result.discounts = self.resolver.resolve(computed, order.total_amount)
        self._record(result, ResolutionStage.RESOLVING_CONFLICTS, computed_ids=result.promotion_ids)

        for warning in result.warnings:
            logger.warning(
                "Promotion %s configuration warning %s: %s",
                warning.promotion_id,
                warning.code,
                warning.message,
                extra={**extra, "promotion_id": warning.promotion_id, "rule_group": warning.rule_group},
            )

        self._record(result, ResolutionStage.DONE, computed_ids=result.promotion_ids)
        logger.info(
            "Resolved %d promotion(s) for order %s: total discount %s",
            len(result.discounts),
            order.order_id or "-",
            result.total_discount,
            extra=extra,
        )
        return result

    def _gather(self, order: OrderContext, promotions: Sequence[PromotionSnapshot]) -> list[PromotionSnapshot]:
        order.validate()
        seen: set[str] = set()
        for promotion in promotions:
            if promotion.id in seen:
                raise PromotionInputError("promotions", f"Duplicate promotion id {promotion.id}")
            seen.add(promotion.id)
        return list(promotions)

    @staticmethod
    def _record(
        result: ResolutionResult,
        stage: ResolutionStage,
        candidates: Iterable[PromotionSnapshot] = (),
        computed_ids: Iterable[str] | None = None,
    ) -> None:
        ids = tuple(computed_ids) if computed_ids is not None else tuple(promotion.id for promotion in candidates)
        result.trace.append(StageTrace(stage=stage, promotion_ids=ids))
        logger.debug("Stage %s: %d promotion(s) remain", stage, len(ids))


def resolve_promotions(
    order: OrderContext,
    candidate_promotions: Sequence[PromotionSnapshot],
    usage_history: Iterable[UsageRecord] = (),
) -> list[ResolvedDiscount]:
    """Single entry point: stateless and side-effect free."""
    return PromotionEngine().resolve(order, candidate_promotions, usage_history).discounts
