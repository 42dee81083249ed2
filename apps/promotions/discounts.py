"""
Discount calculation for eligible, rule-satisfied promotions.

The calculator turns one promotion and one order into a ``DiscountAmount``. It is
deterministic: no randomness and no state is kept between calls.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .domain import (
    DEFAULT_QUANTUM,
    HUNDRED,
    ZERO,
    ActionSpec,
    ActionType,
    CartLine,
    DiscountAmount,
    DiscountScope,
    DiscountType,
    OrderContext,
    PromotionSnapshot,
    PromotionType,
    TargetType,
    ThresholdType,
    quantize_amount,
)
from .eligibility import EligibilityMatcher
from .rules import QuantityField, rule_quantity

TIERED_PROMOTION_TYPES = frozenset({PromotionType.TIERED, PromotionType.BUNDLE, PromotionType.CATEGORY_DISCOUNT})
BUY_X_GET_Y_DISCOUNT_TYPES = frozenset({DiscountType.BUY_X_GET_Y_FREE, DiscountType.BUY_X_GET_Y_DISCOUNT})


class DiscountCalculator:
    """
    Computes the monetary (or shipping) effect of a promotion on an order.

    Dispatch:
        free_shipping                -> shipping waiver, amount 0
        buy_x_get_y_* / buy_x_get_y  -> per-line "buy X get Y" units
        free_item                    -> Y units of the cheapest in-scope line
        percentage / fixed_amount    -> value (or selected tier value) on the base
    """

    def __init__(self, matcher: EligibilityMatcher | None = None, quantum: Decimal = DEFAULT_QUANTUM) -> None:
        self.matcher = matcher or EligibilityMatcher()
        self.quantum = quantum

    def compute(self, promotion: PromotionSnapshot, order: OrderContext) -> DiscountAmount:
        if DiscountType.FREE_SHIPPING in (promotion.discount_type, promotion.promotion_type):
            return DiscountAmount(waives_shipping=True, breakdown={"type": DiscountType.FREE_SHIPPING.value})

        lines = self.matcher.matching_lines(promotion, order)
        narrowed = self.matcher.has_line_scope(promotion)
        base = sum((line.line_total for line in lines), ZERO) if narrowed else order.total_amount
        scope = DiscountScope.LINE_ITEMS if narrowed else DiscountScope.ORDER

        if (
            promotion.discount_type in BUY_X_GET_Y_DISCOUNT_TYPES
            or promotion.promotion_type == PromotionType.BUY_X_GET_Y
        ):
            amount, breakdown, used = self._buy_x_get_y(promotion, lines)
            scope = DiscountScope.LINE_ITEMS
        elif promotion.discount_type == DiscountType.FREE_ITEM:
            amount, breakdown, used = self._free_item(promotion, lines)
            scope = DiscountScope.LINE_ITEMS
        else:
            amount, breakdown = self._value_discount(promotion, order, lines, base)
            used = lines if narrowed else order.lines

        amount = min(max(amount, ZERO), max(base, ZERO))
        if promotion.maximum_discount_amount is not None and amount > promotion.maximum_discount_amount:
            amount = promotion.maximum_discount_amount
            breakdown["capped_at"] = str(promotion.maximum_discount_amount)

        return DiscountAmount(
            amount=quantize_amount(amount, self.quantum),
            scope=scope,
            line_ids=tuple(line.key for line in used),
            breakdown=breakdown,
        )

    # ---------------------------------------------------------------------------
    # Percentage / fixed (optionally tiered)
    # ---------------------------------------------------------------------------

    def _value_discount(
        self,
        promotion: PromotionSnapshot,
        order: OrderContext,
        lines: tuple[CartLine, ...],
        base: Decimal,
    ) -> tuple[Decimal, dict[str, Any]]:
        breakdown: dict[str, Any] = {"type": str(promotion.discount_type), "base_amount": str(base)}
        value = promotion.discount_value

        if promotion.promotion_type == PromotionType.BUNDLE:
            missing = self._missing_bundle_products(promotion, order)
            if missing:
                breakdown["bundle_incomplete"] = sorted(missing)
                return ZERO, breakdown

        if promotion.promotion_type in TIERED_PROMOTION_TYPES:
            tiers = promotion.actions_of(ActionType.TIER)
            if tiers:
                tier = self._select_tier(tiers, base, sum(line.quantity for line in lines))
                if tier is None:
                    breakdown["tier"] = None
                    return ZERO, breakdown
                value = tier.action_value
                breakdown["tier"] = {"threshold": str(tier.threshold), "threshold_type": str(tier.threshold_type)}

        if promotion.discount_type == DiscountType.FIXED_AMOUNT:
            breakdown["fixed_amount"] = str(value)
            return min(value, base), breakdown

        breakdown["percent"] = str(value)
        return base * value / HUNDRED, breakdown

    @staticmethod
    def _select_tier(tiers: tuple[ActionSpec, ...], base: Decimal, quantity: int) -> ActionSpec | None:
        """
        Pick the reached tier with the highest threshold of each threshold type.

        Amount and quantity thresholds are not comparable, so when both kinds are
        reached the tier with the larger action value wins, earlier tiers on ties.
        """
        best: dict[str, tuple[int, ActionSpec]] = {}
        for index, tier in enumerate(tiers):
            threshold = tier.threshold or ZERO
            measured = Decimal(quantity) if tier.threshold_type == ThresholdType.QUANTITY else base
            if measured < threshold:
                continue
            current = best.get(tier.threshold_type)
            if current is None or threshold > (current[1].threshold or ZERO):
                best[tier.threshold_type] = (index, tier)
        if not best:
            return None
        _, winner = min(best.values(), key=lambda item: (-item[1].action_value, item[0]))
        return winner

    def _missing_bundle_products(self, promotion: PromotionSnapshot, order: OrderContext) -> set[str]:
        required = {row.product_id.strip().casefold() for row in promotion.product_eligibility if row.is_included}
        present = {line.product_id.strip().casefold() for line in order.lines}
        return required - present

    # ---------------------------------------------------------------------------
    # Buy X get Y / free item
    # ---------------------------------------------------------------------------

    def _buy_x_get_y(
        self,
        promotion: PromotionSnapshot,
        lines: tuple[CartLine, ...],
    ) -> tuple[Decimal, dict[str, Any], tuple[CartLine, ...]]:
        buy_actions = promotion.actions_of(ActionType.BUY_QUANTITY)
        buy = buy_actions[0].action_value if buy_actions else rule_quantity(promotion, QuantityField.PRODUCT_QUANTITY)
        get = self._get_quantity(promotion)
        breakdown: dict[str, Any] = {"type": "buy_x_get_y", "buy": str(buy), "get": get}

        if buy is None or buy < 1 or get < 1:
            breakdown["reason"] = "buy_quantity_not_configured"
            return ZERO, breakdown, ()

        buy_units = int(buy)
        if buy_actions:
            lines = tuple(line for line in lines if _targets(buy_actions[0], line))

        total = ZERO
        used = []
        per_line = {}
        for line in lines:
            # Every X units bought earn Y discounted units, never more than the line holds
            units = min(line.quantity // buy_units * get, line.quantity)
            if units <= 0:
                continue
            line_discount = units * self._unit_value(promotion, line)
            total += line_discount
            used.append(line)
            per_line[line.key] = {"units": units, "discount": str(line_discount)}

        breakdown["lines"] = per_line
        return total, breakdown, tuple(used)

    def _free_item(
        self,
        promotion: PromotionSnapshot,
        lines: tuple[CartLine, ...],
    ) -> tuple[Decimal, dict[str, Any], tuple[CartLine, ...]]:
        get = self._get_quantity(promotion)
        breakdown: dict[str, Any] = {"type": DiscountType.FREE_ITEM.value, "get": get}
        if not lines or get < 1:
            return ZERO, breakdown, ()

        cheapest = min(lines, key=lambda line: (line.unit_price, line.key))
        units = min(get, cheapest.quantity)
        breakdown["line"] = cheapest.key
        return cheapest.unit_price * units, breakdown, (cheapest,)

    @staticmethod
    def _get_quantity(promotion: PromotionSnapshot) -> int:
        get_actions = promotion.actions_of(ActionType.GET_QUANTITY)
        return int(get_actions[0].action_value) if get_actions else 1

    @staticmethod
    def _unit_value(promotion: PromotionSnapshot, line: CartLine) -> Decimal:
        """Value of one discounted "Y" unit."""
        if promotion.discount_type in (DiscountType.BUY_X_GET_Y_DISCOUNT, DiscountType.PERCENTAGE):
            return line.unit_price * min(promotion.discount_value, HUNDRED) / HUNDRED
        if promotion.discount_type == DiscountType.FIXED_AMOUNT:
            return min(promotion.discount_value, line.unit_price)
        return line.unit_price


def _targets(action: ActionSpec, line: CartLine) -> bool:
    target = action.target_value.strip().casefold()
    if action.target_type == TargetType.PRODUCT:
        return line.product_id.strip().casefold() == target
    if action.target_type == TargetType.CATEGORY:
        return line.category.strip().casefold() == target
    return True


def compute(promotion: PromotionSnapshot, order: OrderContext) -> DiscountAmount:
    """Module-level shortcut for a default calculator."""
    return DiscountCalculator().compute(promotion, order)
