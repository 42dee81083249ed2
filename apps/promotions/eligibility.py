"""
Eligibility matching: is a promotion reachable for an order at all?

Checks the validity window, the minimum order amount, the product/category scope
and the customer scope. Conditional rules are evaluated separately (see rules.py).
"""

from __future__ import annotations

from dataclasses import dataclass

from .domain import (
    CartLine,
    CustomerGroup,
    OrderContext,
    PromotionSnapshot,
)


@dataclass(frozen=True)
class EligibilityResult:
    """
    Result of an eligibility check.

    Attributes:
        is_eligible: Whether the promotion is in scope for the order.
        reason: Human-readable reason when not eligible.
        code: Machine-readable code. One of PROMOTION_INACTIVE, NOT_YET_STARTED,
            EXPIRED, MIN_ORDER_NOT_MET, NO_ELIGIBLE_PRODUCTS, CUSTOMER_EXCLUDED,
            CUSTOMER_INELIGIBLE.
    """

    is_eligible: bool
    reason: str = ""
    code: str = ""


ELIGIBLE = EligibilityResult(is_eligible=True)


def _normalize(value: str | None) -> str:
    return (value or "").strip().casefold()


@dataclass(frozen=True)
class _LineScope:
    """Inclusion/exclusion lists of one scope type (products or categories)."""

    included: frozenset[str]
    excluded: frozenset[str]

    @property
    def is_restricted(self) -> bool:
        return bool(self.included or self.excluded)

    @property
    def has_inclusions(self) -> bool:
        return bool(self.included)


class EligibilityMatcher:
    """Pure eligibility checks; holds no state between calls."""

    def is_eligible(self, promotion: PromotionSnapshot, order: OrderContext) -> bool:
        return self.check(promotion, order).is_eligible

    def check(self, promotion: PromotionSnapshot, order: OrderContext) -> EligibilityResult:  # noqa: PLR0911
        now = order.timestamp

        if not promotion.is_active:
            return EligibilityResult(False, "Promotion is inactive", "PROMOTION_INACTIVE")
        if now < promotion.start_date:
            return EligibilityResult(False, "Promotion has not started yet", "NOT_YET_STARTED")
        if promotion.end_date is not None and now > promotion.end_date:
            return EligibilityResult(False, "Promotion has ended", "EXPIRED")

        if order.total_amount < promotion.minimum_order_amount:
            return EligibilityResult(
                False,
                f"Minimum order of {promotion.minimum_order_amount} required",
                "MIN_ORDER_NOT_MET",
            )

        if self.has_line_scope(promotion) and not self.matching_lines(promotion, order):
            return EligibilityResult(False, "No eligible products in order", "NO_ELIGIBLE_PRODUCTS")

        return self._check_customer(promotion, order)

    # ---------------------------------------------------------------------------
    # Product / category scope
    # ---------------------------------------------------------------------------

    def has_line_scope(self, promotion: PromotionSnapshot) -> bool:
        """True when eligibility rows narrow the promotion to specific cart lines."""
        return any(scope.is_restricted for scope in self._line_scopes(promotion))

    def matching_lines(self, promotion: PromotionSnapshot, order: OrderContext) -> tuple[CartLine, ...]:
        """
        Cart lines inside the promotion's product/category scope.

        A line excluded by either scope never matches. Among the rest, a line
        matches when any scope with inclusion rows lists it (product scope OR
        category scope); scopes made only of exclusions act as pure filters.
        """
        products, categories = self._line_scopes(promotion)
        inclusive = [
            (scope, key)
            for scope, key in ((products, _product_key), (categories, _category_key))
            if scope.has_inclusions
        ]

        matched = []
        for line in order.lines:
            if _product_key(line) in products.excluded or _category_key(line) in categories.excluded:
                continue
            if inclusive and not any(key(line) in scope.included for scope, key in inclusive):
                continue
            matched.append(line)
        return tuple(matched)

    def _line_scopes(self, promotion: PromotionSnapshot) -> tuple[_LineScope, _LineScope]:
        products = _LineScope(
            included=frozenset(_normalize(row.product_id) for row in promotion.product_eligibility if row.is_included),
            excluded=frozenset(
                _normalize(row.product_id) for row in promotion.product_eligibility if not row.is_included
            ),
        )
        categories = _LineScope(
            included=frozenset(_normalize(row.category) for row in promotion.category_eligibility if row.is_included),
            excluded=frozenset(
                _normalize(row.category) for row in promotion.category_eligibility if not row.is_included
            ),
        )
        return products, categories

    # ---------------------------------------------------------------------------
    # Customer scope
    # ---------------------------------------------------------------------------

    def _check_customer(self, promotion: PromotionSnapshot, order: OrderContext) -> EligibilityResult:
        rows = promotion.customer_eligibility
        if not rows:
            return ELIGIBLE

        customer = order.customer
        customer_id = _normalize(customer.id)

        # Exclusion takes precedence over any inclusion row
        for row in rows:
            if row.is_included:
                continue
            if self._row_matches(row.customer_group, row.customer_id, customer_id, customer):
                return EligibilityResult(False, "Customer is excluded from this promotion", "CUSTOMER_EXCLUDED")

        included = [row for row in rows if row.is_included]
        if not included:
            return ELIGIBLE

        for row in included:
            if _normalize(row.customer_group) == CustomerGroup.ALL:
                return ELIGIBLE
            if self._row_matches(row.customer_group, row.customer_id, customer_id, customer):
                return ELIGIBLE

        return EligibilityResult(False, "Customer is not eligible for this promotion", "CUSTOMER_INELIGIBLE")

    @staticmethod
    def _row_matches(group: str, row_customer_id: str | None, customer_id: str, customer) -> bool:
        group = _normalize(group)
        if row_customer_id:
            return _normalize(row_customer_id) == customer_id
        if group in ("", CustomerGroup.SPECIFIC):
            # A specific-customer row without a customer id matches nobody
            return False
        if group == CustomerGroup.ALL:
            return True
        return customer.has_segment(group)


def _product_key(line: CartLine) -> str:
    return _normalize(line.product_id)


def _category_key(line: CartLine) -> str:
    return _normalize(line.category)
