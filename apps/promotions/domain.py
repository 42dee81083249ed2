"""
Immutable snapshots consumed by the promotion resolution engine.

The engine never touches the ORM: models are converted into these frozen
dataclasses (see ``Promotion.to_snapshot``) before resolution, which keeps every
engine stage a pure function of its arguments.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from apps.common.types import BusinessError, ConfigurationError, ValidationError

# ===============================================================================
# Constants
# ===============================================================================

DEFAULT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ===============================================================================
# Enumerations
# ===============================================================================


class PromotionType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BUY_X_GET_Y = "buy_x_get_y"
    FREE_SHIPPING = "free_shipping"
    BUNDLE = "bundle"
    TIERED = "tiered"
    CATEGORY_DISCOUNT = "category_discount"


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_ITEM = "free_item"
    FREE_SHIPPING = "free_shipping"
    BUY_X_GET_Y_FREE = "buy_x_get_y_free"
    BUY_X_GET_Y_DISCOUNT = "buy_x_get_y_discount"


class CustomerGroup(StrEnum):
    ALL = "all"
    NEW = "new"
    RETURNING = "returning"
    VIP = "vip"
    WHOLESALE = "wholesale"
    RETAIL = "retail"
    SPECIFIC = "specific"


class RuleType(StrEnum):
    ORDER = "order"
    PRODUCT = "product"
    CUSTOMER = "customer"
    TIME = "time"
    QUANTITY = "quantity"
    CATEGORY = "category"


class RuleOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"


class LogicalOperator(StrEnum):
    AND = "AND"
    OR = "OR"


class ActionType(StrEnum):
    BUY_QUANTITY = "buy_quantity"
    GET_QUANTITY = "get_quantity"
    TIER = "tier"


class TargetType(StrEnum):
    ORDER = "order"
    PRODUCT = "product"
    CATEGORY = "category"


class ThresholdType(StrEnum):
    AMOUNT = "amount"
    QUANTITY = "quantity"


class DiscountScope(StrEnum):
    ORDER = "order"
    LINE_ITEMS = "line_items"


# ===============================================================================
# Exceptions
# ===============================================================================


class PromotionInputError(ValidationError):
    """Order context is incomplete or inconsistent; resolution must not proceed."""


class RuleConfigurationError(ConfigurationError):
    """A promotion rule cannot be interpreted (unknown field, malformed value, ...)."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class UsageLimitExceededError(BusinessError):
    """A usage cap was reached between resolution and commit."""

    def __init__(self, promotion_id: str, message: str, code: str = "USAGE_LIMIT_REACHED"):
        self.promotion_id = promotion_id
        self.message = message
        self.code = code
        super().__init__(message)


# ===============================================================================
# Helpers
# ===============================================================================


def to_decimal(value: Any) -> Decimal:
    """Coerce ``value`` to a finite Decimal, raising ``ValueError`` otherwise."""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def quantize_amount(value: Decimal, quantum: Decimal = DEFAULT_QUANTUM) -> Decimal:
    """Round a monetary amount to the currency quantum (half up)."""
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


# ===============================================================================
# Promotion snapshots
# ===============================================================================


@dataclass(frozen=True)
class ProductEligibility:
    product_id: str
    is_included: bool = True


@dataclass(frozen=True)
class CategoryEligibility:
    category: str
    is_included: bool = True


@dataclass(frozen=True)
class CustomerEligibility:
    customer_group: str
    customer_id: str | None = None
    is_included: bool = True


@dataclass(frozen=True)
class RuleSpec:
    """
    A conditional rule as authored by administrators.

    ``rule_type``, ``field_name`` and ``operator`` stay raw strings here; they are
    parsed into typed conditions by the rule evaluator so that an unknown value
    fails that rule only instead of the whole snapshot.
    """

    rule_type: str
    field_name: str
    operator: str
    value: str
    logical_operator: str = LogicalOperator.AND
    rule_group: int = 1
    rule_id: str = field(default="", compare=False)


@dataclass(frozen=True)
class ActionSpec:
    """Calculation parameters: buy/get quantities and tier breakpoints."""

    action_type: str
    action_value: Decimal = ZERO
    target_type: str = TargetType.ORDER
    target_value: str = ""
    threshold: Decimal | None = None
    threshold_type: str = ThresholdType.AMOUNT


@dataclass(frozen=True)
class PromotionSnapshot:
    id: str
    name: str
    promotion_type: PromotionType
    discount_type: DiscountType
    discount_value: Decimal
    start_date: datetime
    end_date: datetime | None = None
    minimum_order_amount: Decimal = ZERO
    maximum_discount_amount: Decimal | None = None
    is_active: bool = True
    is_stackable: bool = False
    priority: int = 0
    usage_limit: int | None = None
    usage_limit_per_customer: int | None = None
    created_at: datetime | None = None
    product_eligibility: tuple[ProductEligibility, ...] = ()
    category_eligibility: tuple[CategoryEligibility, ...] = ()
    customer_eligibility: tuple[CustomerEligibility, ...] = ()
    rules: tuple[RuleSpec, ...] = ()
    actions: tuple[ActionSpec, ...] = ()

    def actions_of(self, action_type: ActionType) -> tuple[ActionSpec, ...]:
        return tuple(action for action in self.actions if action.action_type == action_type)


# ===============================================================================
# Order context
# ===============================================================================


@dataclass(frozen=True)
class CustomerContext:
    """
    Customer attributes at resolution time.

    ``segments`` holds the classification tags (new, returning, vip, ...)
    precomputed by customer analytics.
    """

    id: str
    email: str = ""
    order_count: int = 0
    total_spent: Decimal = ZERO
    segments: frozenset[str] = frozenset()

    def has_segment(self, segment: str) -> bool:
        wanted = segment.strip().casefold()
        return any(tag.strip().casefold() == wanted for tag in self.segments)


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    category: str = ""
    sku: str = ""
    line_id: str = ""

    @property
    def key(self) -> str:
        return self.line_id or self.product_id

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderContext:
    customer: CustomerContext
    lines: tuple[CartLine, ...]
    total_amount: Decimal
    timestamp: datetime
    item_count: int | None = None
    status: str = "draft"
    order_id: str = ""
    shipping_amount: Decimal = ZERO

    @property
    def effective_item_count(self) -> int:
        if self.item_count is not None:
            return self.item_count
        return sum(line.quantity for line in self.lines)

    def validate(self) -> None:
        """
        Fail fast on incomplete input.

        Raises:
            PromotionInputError: naming the first offending field.
        """
        if self.customer is None or not str(self.customer.id or "").strip():
            raise PromotionInputError("customer.id", "Customer identity is required")
        if self.timestamp is None:
            raise PromotionInputError("timestamp", "Order timestamp is required")
        if self.timestamp.tzinfo is None or self.timestamp.utcoffset() is None:
            raise PromotionInputError("timestamp", "Order timestamp must be timezone-aware")
        _require_amount("total_amount", self.total_amount)
        _require_amount("customer.total_spent", self.customer.total_spent)
        if self.customer.order_count is None or self.customer.order_count < 0:
            raise PromotionInputError("customer.order_count", "Order count must be a non-negative integer")
        if self.item_count is not None and self.item_count < 0:
            raise PromotionInputError("item_count", "Item count cannot be negative")
        for index, line in enumerate(self.lines):
            prefix = f"lines[{index}]"
            if not str(line.product_id or "").strip():
                raise PromotionInputError(f"{prefix}.product_id", "Product identity is required")
            if line.quantity is None or line.quantity <= 0:
                raise PromotionInputError(f"{prefix}.quantity", "Quantity must be positive")
            _require_amount(f"{prefix}.unit_price", line.unit_price)


def _require_amount(field_name: str, value: Any) -> None:
    if value is None:
        raise PromotionInputError(field_name, "Value is required")
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise PromotionInputError(field_name, str(e)) from e
    if amount < 0:
        raise PromotionInputError(field_name, "Value cannot be negative")


# ===============================================================================
# Usage ledger
# ===============================================================================


@dataclass(frozen=True)
class UsageRecord:
    promotion_id: str
    customer_id: str
    redeemed_at: datetime | None = None


# ===============================================================================
# Results
# ===============================================================================


@dataclass(frozen=True)
class EvaluationWarning:
    """Non-fatal configuration problem surfaced to administrators."""

    code: str
    message: str
    promotion_id: str
    rule_group: int | None = None
    rule_id: str = ""


@dataclass(frozen=True)
class DiscountAmount:
    """
    Effect of one promotion on one order, before conflict resolution.

    Attributes:
        amount: Monetary discount, already capped and quantized.
        waives_shipping: Shipping cost is waived by the order collaborator.
        scope: Whether the amount targets the whole order or specific lines.
        line_ids: Keys of the cart lines the amount was computed from.
        breakdown: How the amount was derived, for auditing.
    """

    amount: Decimal = ZERO
    waives_shipping: bool = False
    scope: DiscountScope = DiscountScope.ORDER
    line_ids: tuple[str, ...] = ()
    breakdown: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_effective(self) -> bool:
        return self.amount > 0 or self.waives_shipping


@dataclass(frozen=True)
class ResolvedDiscount:
    promotion_id: str
    promotion_name: str
    amount: Decimal
    scope: DiscountScope = DiscountScope.ORDER
    line_ids: tuple[str, ...] = ()
    waives_shipping: bool = False
    matched_rule_groups: tuple[int, ...] = ()
    priority: int = 0
    is_stackable: bool = False
    breakdown: dict[str, Any] = field(default_factory=dict, hash=False)

    def serialize(self) -> dict[str, Any]:
        return {
            "promotion_id": self.promotion_id,
            "promotion_name": self.promotion_name,
            "amount": str(self.amount),
            "scope": str(self.scope),
            "line_ids": list(self.line_ids),
            "waives_shipping": self.waives_shipping,
            "matched_rule_groups": list(self.matched_rule_groups),
            "priority": self.priority,
            "is_stackable": self.is_stackable,
            "breakdown": self.breakdown,
        }


def index_by_id(promotions: Iterable[PromotionSnapshot]) -> dict[str, PromotionSnapshot]:
    return {promotion.id: promotion for promotion in promotions}
