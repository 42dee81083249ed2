"""
Rule group evaluation for promotion conditions.

Rules are ``(field, operator, value)`` triples scoped by a rule type. Rules that
share a ``rule_group`` are combined with their logical operator; distinct groups
are OR-combined. Each rule is parsed into a typed ``RuleCondition`` whose value
parser is chosen by ``(rule_type, field_name, operator)``.

Configuration problems never abort evaluation: the offending rule evaluates to
``False`` and an ``EvaluationWarning`` is reported.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any

from .domain import (
    EvaluationWarning,
    LogicalOperator,
    OrderContext,
    PromotionSnapshot,
    RuleConfigurationError,
    RuleOperator,
    RuleSpec,
    RuleType,
    to_decimal,
)

DEFAULT_LIST_DELIMITER = ","
BETWEEN_BOUNDS = 2

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# ===============================================================================
# Typed fields per rule type
# ===============================================================================


class FieldKind(StrEnum):
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"
    WEEKDAY = "weekday"


class OrderField(StrEnum):
    TOTAL_AMOUNT = "total_amount"
    ITEM_COUNT = "item_count"
    STATUS = "status"


class ProductField(StrEnum):
    PRICE = "price"
    CATEGORY = "category"
    SKU = "sku"


class CustomerField(StrEnum):
    EMAIL = "email"
    ORDER_COUNT = "order_count"
    TOTAL_SPENT = "total_spent"


class TimeField(StrEnum):
    DAY_OF_WEEK = "day_of_week"
    HOUR_OF_DAY = "hour_of_day"
    DATE = "date"


class QuantityField(StrEnum):
    PRODUCT_QUANTITY = "product_quantity"
    CATEGORY_QUANTITY = "category_quantity"


class CategoryField(StrEnum):
    CATEGORY_NAME = "category_name"
    CATEGORY_COUNT = "category_count"


RULE_FIELDS: dict[RuleType, type[StrEnum]] = {
    RuleType.ORDER: OrderField,
    RuleType.PRODUCT: ProductField,
    RuleType.CUSTOMER: CustomerField,
    RuleType.TIME: TimeField,
    RuleType.QUANTITY: QuantityField,
    RuleType.CATEGORY: CategoryField,
}


def _per_key_totals(order: OrderContext, key: Callable[[Any], str]) -> tuple[int, ...]:
    totals: dict[str, int] = {}
    for line in order.lines:
        totals[key(line)] = totals.get(key(line), 0) + line.quantity
    return tuple(totals[name] for name in sorted(totals))


def _categories(order: OrderContext) -> tuple[str, ...]:
    return tuple(sorted({line.category for line in order.lines if line.category}))


@dataclass(frozen=True)
class FieldSpec:
    """
    How to read one field from an order.

    ``extract`` always returns a tuple; multi-valued fields (one value per cart
    line, product or category) satisfy a rule when any of their values does.
    """

    kind: FieldKind
    extract: Callable[[OrderContext], tuple[Any, ...]]


FIELD_SPECS: dict[tuple[RuleType, StrEnum], FieldSpec] = {
    (RuleType.ORDER, OrderField.TOTAL_AMOUNT): FieldSpec(FieldKind.NUMBER, lambda o: (o.total_amount,)),
    (RuleType.ORDER, OrderField.ITEM_COUNT): FieldSpec(FieldKind.NUMBER, lambda o: (o.effective_item_count,)),
    (RuleType.ORDER, OrderField.STATUS): FieldSpec(FieldKind.TEXT, lambda o: (o.status,)),
    (RuleType.PRODUCT, ProductField.PRICE): FieldSpec(
        FieldKind.NUMBER, lambda o: tuple(line.unit_price for line in o.lines)
    ),
    (RuleType.PRODUCT, ProductField.CATEGORY): FieldSpec(
        FieldKind.TEXT, lambda o: tuple(line.category for line in o.lines)
    ),
    (RuleType.PRODUCT, ProductField.SKU): FieldSpec(FieldKind.TEXT, lambda o: tuple(line.sku for line in o.lines)),
    (RuleType.CUSTOMER, CustomerField.EMAIL): FieldSpec(FieldKind.TEXT, lambda o: (o.customer.email,)),
    (RuleType.CUSTOMER, CustomerField.ORDER_COUNT): FieldSpec(FieldKind.NUMBER, lambda o: (o.customer.order_count,)),
    (RuleType.CUSTOMER, CustomerField.TOTAL_SPENT): FieldSpec(FieldKind.NUMBER, lambda o: (o.customer.total_spent,)),
    (RuleType.TIME, TimeField.DAY_OF_WEEK): FieldSpec(FieldKind.WEEKDAY, lambda o: (o.timestamp.isoweekday(),)),
    (RuleType.TIME, TimeField.HOUR_OF_DAY): FieldSpec(FieldKind.NUMBER, lambda o: (o.timestamp.hour,)),
    (RuleType.TIME, TimeField.DATE): FieldSpec(FieldKind.DATE, lambda o: (o.timestamp.date(),)),
    (RuleType.QUANTITY, QuantityField.PRODUCT_QUANTITY): FieldSpec(
        FieldKind.NUMBER, lambda o: _per_key_totals(o, lambda line: line.product_id)
    ),
    (RuleType.QUANTITY, QuantityField.CATEGORY_QUANTITY): FieldSpec(
        FieldKind.NUMBER, lambda o: _per_key_totals(o, lambda line: line.category)
    ),
    (RuleType.CATEGORY, CategoryField.CATEGORY_NAME): FieldSpec(FieldKind.TEXT, _categories),
    (RuleType.CATEGORY, CategoryField.CATEGORY_COUNT): FieldSpec(FieldKind.NUMBER, lambda o: (len(_categories(o)),)),
}

ORDERING_OPERATORS = frozenset(
    {RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN, RuleOperator.GREATER_EQUAL, RuleOperator.LESS_EQUAL}
)
LIST_OPERATORS = frozenset({RuleOperator.IN, RuleOperator.NOT_IN})


# ===============================================================================
# Value parsing
# ===============================================================================


def _parse_weekday(raw: str) -> int:
    text = raw.strip().casefold()
    if text.isdigit():
        number = int(text)
        if 1 <= number <= len(WEEKDAYS):
            return number
        raise ValueError(f"Weekday number out of range: {raw!r}")
    for index, name in enumerate(WEEKDAYS, start=1):
        if text in (name, name[:3]):
            return index
    raise ValueError(f"Unknown weekday: {raw!r}")


def _parse_scalar(kind: FieldKind, raw: str, operator: RuleOperator) -> Any:
    """Parse one operand; ordering operators on text fields compare numerically."""
    if kind == FieldKind.DATE:
        return date.fromisoformat(raw.strip())
    if kind == FieldKind.WEEKDAY:
        return _parse_weekday(raw)
    if kind == FieldKind.NUMBER or operator in ORDERING_OPERATORS or operator == RuleOperator.BETWEEN:
        return to_decimal(raw)
    return raw.strip().casefold()


def _coerce_actual(kind: FieldKind, value: Any, operator: RuleOperator) -> Any:
    """Coerce an extracted order value; raises ValueError when it cannot be compared."""
    if value is None:
        raise ValueError("Missing value")
    if kind in (FieldKind.DATE, FieldKind.WEEKDAY):
        return value
    if kind == FieldKind.NUMBER or operator in ORDERING_OPERATORS or operator == RuleOperator.BETWEEN:
        return to_decimal(value)
    return str(value).strip().casefold()


def _split(raw: str, delimiter: str) -> list[str]:
    return [part.strip() for part in raw.split(delimiter) if part.strip()]


# ===============================================================================
# Conditions
# ===============================================================================


@dataclass(frozen=True)
class RuleCondition:
    """A rule parsed into its typed field, operator and operand(s)."""

    rule: RuleSpec
    rule_type: RuleType
    field: StrEnum
    spec: FieldSpec
    operator: RuleOperator
    expected: Any

    def matches(self, order: OrderContext) -> bool:
        return any(self._matches_value(value) for value in self.spec.extract(order))

    def _matches_value(self, value: Any) -> bool:  # noqa: PLR0911
        if self.operator == RuleOperator.CONTAINS:
            return self.expected in str(value if value is not None else "").casefold()
        try:
            actual = _coerce_actual(self.spec.kind, value, self.operator)
        except ValueError:
            # Coercion failure is a plain mismatch, not a configuration error
            return False

        match self.operator:
            case RuleOperator.EQUALS:
                return actual == self.expected
            case RuleOperator.NOT_EQUALS:
                return actual != self.expected
            case RuleOperator.GREATER_THAN:
                return actual > self.expected
            case RuleOperator.LESS_THAN:
                return actual < self.expected
            case RuleOperator.GREATER_EQUAL:
                return actual >= self.expected
            case RuleOperator.LESS_EQUAL:
                return actual <= self.expected
            case RuleOperator.IN:
                return actual in self.expected
            case RuleOperator.NOT_IN:
                return actual not in self.expected
            case RuleOperator.BETWEEN:
                low, high = self.expected
                return low <= actual <= high
        return False


def parse_condition(rule: RuleSpec, delimiter: str = DEFAULT_LIST_DELIMITER) -> RuleCondition:
    """
    Parse a raw rule into a typed condition.

    Raises:
        RuleConfigurationError: unknown rule type, field or operator, or a value
            that does not fit the operator.
    """
    try:
        rule_type = RuleType(str(rule.rule_type).strip().lower())
    except ValueError as e:
        raise RuleConfigurationError("UNKNOWN_RULE_TYPE", f"Unknown rule type {rule.rule_type!r}") from e

    fields = RULE_FIELDS[rule_type]
    try:
        field = fields(str(rule.field_name).strip().lower())
    except ValueError as e:
        raise RuleConfigurationError(
            "UNKNOWN_FIELD", f"Field {rule.field_name!r} is not valid for {rule_type} rules"
        ) from e

    try:
        operator = RuleOperator(str(rule.operator).strip().lower())
    except ValueError as e:
        raise RuleConfigurationError("UNKNOWN_OPERATOR", f"Unknown operator {rule.operator!r}") from e

    spec = FIELD_SPECS[(rule_type, field)]
    raw = "" if rule.value is None else str(rule.value)
    try:
        expected = _parse_expected(spec.kind, operator, raw, delimiter)
    except ValueError as e:
        raise RuleConfigurationError(
            "MALFORMED_VALUE", f"Value {raw!r} is not valid for {rule_type}.{field} {operator}: {e}"
        ) from e

    return RuleCondition(
        rule=rule,
        rule_type=rule_type,
        field=field,
        spec=spec,
        operator=operator,
        expected=expected,
    )


def _parse_expected(kind: FieldKind, operator: RuleOperator, raw: str, delimiter: str) -> Any:
    if not raw.strip():
        raise ValueError("empty value")

    if operator == RuleOperator.CONTAINS:
        return raw.strip().casefold()

    if operator in LIST_OPERATORS:
        parts = _split(raw, delimiter)
        if not parts:
            raise ValueError("empty list")
        return frozenset(_parse_scalar(kind, part, operator) for part in parts)

    if operator == RuleOperator.BETWEEN:
        parts = _split(raw, delimiter)
        if len(parts) != BETWEEN_BOUNDS:
            raise ValueError("between needs exactly two bounds")
        low, high = (_parse_scalar(kind, part, operator) for part in parts)
        if low > high:
            raise ValueError("lower bound is greater than upper bound")
        return (low, high)

    return _parse_scalar(kind, raw, operator)


# ===============================================================================
# Evaluator
# ===============================================================================


@dataclass(frozen=True)
class RuleEvaluation:
    """
    Outcome of evaluating all rule groups of a promotion.

    Attributes:
        satisfied: OR of the per-group results (True when there are no rules).
        matched_groups: Rule groups that evaluated to True, ascending.
        warnings: Configuration warnings raised while evaluating.
    """

    satisfied: bool
    matched_groups: tuple[int, ...] = ()
    warnings: tuple[EvaluationWarning, ...] = ()


class RuleGroupEvaluator:
    """Evaluates promotion rule groups against an order context."""

    def __init__(self, delimiter: str = DEFAULT_LIST_DELIMITER) -> None:
        self.delimiter = delimiter

    def satisfies_rules(self, promotion: PromotionSnapshot, order: OrderContext) -> bool:
        return self.evaluate(promotion, order).satisfied

    def evaluate(self, promotion: PromotionSnapshot, order: OrderContext) -> RuleEvaluation:
        if not promotion.rules:
            return RuleEvaluation(satisfied=True)

        groups: dict[int, list[RuleSpec]] = {}
        for rule in promotion.rules:
            groups.setdefault(rule.rule_group, []).append(rule)

        warnings: list[EvaluationWarning] = []
        matched = tuple(
            group for group in sorted(groups) if self._evaluate_group(promotion, group, groups[group], order, warnings)
        )
        return RuleEvaluation(satisfied=bool(matched), matched_groups=matched, warnings=tuple(warnings))

    def _evaluate_group(
        self,
        promotion: PromotionSnapshot,
        group: int,
        rules: list[RuleSpec],
        order: OrderContext,
        warnings: list[EvaluationWarning],
    ) -> bool:
        combinator = self._group_operator(promotion, group, rules, warnings)
        # Evaluate every rule so that all configuration problems get reported
        results = [self._evaluate_rule(promotion, rule, order, warnings) for rule in rules]
        if combinator == LogicalOperator.OR:
            return any(results)
        return all(results)

    def _group_operator(
        self,
        promotion: PromotionSnapshot,
        group: int,
        rules: list[RuleSpec],
        warnings: list[EvaluationWarning],
    ) -> LogicalOperator:
        operators = set()
        for rule in rules:
            try:
                operators.add(LogicalOperator(str(rule.logical_operator).strip().upper()))
            except ValueError:
                warnings.append(
                    EvaluationWarning(
                        code="UNKNOWN_LOGICAL_OPERATOR",
                        message=f"Unknown logical operator {rule.logical_operator!r}; using AND",
                        promotion_id=promotion.id,
                        rule_group=group,
                        rule_id=rule.rule_id,
                    )
                )
                operators.add(LogicalOperator.AND)

        if len(operators) > 1:
            warnings.append(
                EvaluationWarning(
                    code="MIXED_LOGICAL_OPERATORS",
                    message=f"Rule group {group} mixes AND and OR; combining with AND",
                    promotion_id=promotion.id,
                    rule_group=group,
                )
            )
            return LogicalOperator.AND
        return operators.pop()

    def _evaluate_rule(
        self,
        promotion: PromotionSnapshot,
        rule: RuleSpec,
        order: OrderContext,
        warnings: list[EvaluationWarning],
    ) -> bool:
        try:
            condition = parse_condition(rule, self.delimiter)
        except RuleConfigurationError as e:
            warnings.append(
                EvaluationWarning(
                    code=e.code,
                    message=e.message,
                    promotion_id=promotion.id,
                    rule_group=rule.rule_group,
                    rule_id=rule.rule_id,
                )
            )
            return False
        return condition.matches(order)


def satisfies_rules(promotion: PromotionSnapshot, order: OrderContext) -> bool:
    """Module-level shortcut for a default evaluator."""
    return RuleGroupEvaluator().satisfies_rules(promotion, order)


def rule_quantity(promotion: PromotionSnapshot, field: QuantityField) -> Decimal | None:
    """
    Read a quantity threshold from the promotion's own rules.

    Used by the discount calculator as the "buy X" fallback: the first
    ``quantity.<field>`` rule with an ``equals`` or ``greater_equal`` operator.
    """
    for rule in promotion.rules:
        try:
            condition = parse_condition(rule)
        except RuleConfigurationError:
            continue
        if condition.field == field and condition.operator in (RuleOperator.EQUALS, RuleOperator.GREATER_EQUAL):
            return condition.expected
    return None
