"""
Promotion models for the distribution console.
Tenant-scoped promotion catalog and the append-only usage ledger.

Supports:
- Promotion types (percentage, fixed amount, buy X get Y, free shipping, bundle, tiered, category)
- Product, category and customer eligibility lists
- Grouped conditional rules (AND within a group, OR across groups)
- Calculation actions (buy/get quantities, tier breakpoints)
- Stacking and priority
- Global and per-customer usage limits
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, ClassVar

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .domain import (
    ActionSpec,
    CategoryEligibility,
    CustomerEligibility,
    DiscountType,
    ProductEligibility,
    PromotionSnapshot,
    PromotionType,
    RuleSpec,
    UsageRecord,
)
from .usage import UsageSummary, usage_summary

logger = logging.getLogger(__name__)

# ===============================================================================
# Constants
# ===============================================================================

MAX_DISCOUNT_PERCENT = Decimal("100.00")
MAX_USAGE_LIMIT = 1_000_000
AMOUNT_MAX_DIGITS = 12
AMOUNT_DECIMAL_PLACES = 2


# ===============================================================================
# Promotion Model
# ===============================================================================


class Promotion(models.Model):
    """
    A promotion authored in the marketing console.
    Read-only input to the resolution engine once saved.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True, help_text=_("Owning tenant"))

    # Identification
    name = models.CharField(max_length=200, help_text=_("Promotion name"))
    description = models.TextField(blank=True, help_text=_("Description shown to sales staff"))

    PROMOTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("percentage", _("Percentage Discount")),
        ("fixed_amount", _("Fixed Amount")),
        ("buy_x_get_y", _("Buy X Get Y")),
        ("free_shipping", _("Free Shipping")),
        ("bundle", _("Bundle Discount")),
        ("tiered", _("Tiered Discount")),
        ("category_discount", _("Category Discount")),
    )
    promotion_type = models.CharField(max_length=30, choices=PROMOTION_TYPES, default="percentage")

    DISCOUNT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("percentage", _("Percentage Off")),
        ("fixed_amount", _("Fixed Amount Off")),
        ("free_item", _("Free Item")),
        ("free_shipping", _("Free Shipping")),
        ("buy_x_get_y_free", _("Buy X Get Y Free")),
        ("buy_x_get_y_discount", _("Buy X Get Y Discounted")),
    )
    discount_type = models.CharField(max_length=30, choices=DISCOUNT_TYPES, default="percentage")

    # Discount value (percent or amount depending on discount_type)
    discount_value = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        default=Decimal("0"),
        validators=[MinValueValidator(0)],
    )
    minimum_order_amount = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        default=Decimal("0"),
        validators=[MinValueValidator(0)],
        help_text=_("Minimum order total to qualify"),
    )
    maximum_discount_amount = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Hard ceiling on the computed discount (null = no cap)"),
    )

    # Status and stacking
    is_active = models.BooleanField(default=True, help_text=_("Master switch for promotion"))
    is_stackable = models.BooleanField(default=False, help_text=_("Can be combined with other promotions"))
    priority = models.IntegerField(default=0, help_text=_("Higher priority is considered first"))

    # Validity period
    start_date = models.DateTimeField(default=timezone.now, help_text=_("When promotion becomes valid"))
    end_date = models.DateTimeField(null=True, blank=True, help_text=_("When promotion ends (null = never)"))

    # Usage limits
    usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(MAX_USAGE_LIMIT)],
        help_text=_("Maximum total redemptions (null = unlimited)"),
    )
    usage_limit_per_customer = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(MAX_USAGE_LIMIT)],
        help_text=_("Maximum redemptions per customer (null = unlimited)"),
    )

    # Audit
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_promotions",
    )

    class Meta:
        db_table = "promotions"
        verbose_name = _("Promotion")
        verbose_name_plural = _("Promotions")
        ordering: ClassVar[tuple[str, ...]] = ("-priority", "created_at")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["tenant_id", "is_active"], name="idx_promotion_tenant_active"),
            models.Index(fields=["start_date", "end_date"], name="idx_promotion_validity"),
            models.Index(fields=["priority"], name="idx_promotion_priority"),
        )
        constraints: ClassVar[tuple[models.CheckConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(end_date__isnull=True) | Q(end_date__gte=models.F("start_date")),
                name="promotion_end_after_start",
            ),
            models.CheckConstraint(
                condition=Q(discount_value__gte=0),
                name="promotion_discount_value_non_negative",
            ),
        )

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        """Validate promotion configuration."""
        super().clean()
        self._validate_discount_values()
        self._validate_dates()

    def _validate_discount_values(self) -> None:
        if self.discount_value is not None and self.discount_value < 0:
            raise ValidationError({"discount_value": "Discount value cannot be negative"})
        if self.discount_type in ("percentage", "buy_x_get_y_discount") and (
            self.discount_value is not None and self.discount_value > MAX_DISCOUNT_PERCENT
        ):
            raise ValidationError({"discount_value": "Percentage must be between 0 and 100"})
        if self.maximum_discount_amount is not None and self.maximum_discount_amount < 0:
            raise ValidationError({"maximum_discount_amount": "Maximum discount cannot be negative"})

    def _validate_dates(self) -> None:
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({"end_date": "end_date must be after start_date"})

    def to_snapshot(self) -> PromotionSnapshot:
        """
        Build the immutable engine input.
        Prefetch ``product_eligibility``, ``category_eligibility``,
        ``customer_eligibility``, ``rules`` and ``actions`` to avoid N+1 queries.
        """
        return PromotionSnapshot(
            id=str(self.id),
            name=self.name,
            promotion_type=PromotionType(self.promotion_type),
            discount_type=DiscountType(self.discount_type),
            discount_value=self.discount_value,
            start_date=self.start_date,
            end_date=self.end_date,
            minimum_order_amount=self.minimum_order_amount,
            maximum_discount_amount=self.maximum_discount_amount,
            is_active=self.is_active,
            is_stackable=self.is_stackable,
            priority=self.priority,
            usage_limit=self.usage_limit,
            usage_limit_per_customer=self.usage_limit_per_customer,
            created_at=self.created_at,
            product_eligibility=tuple(row.to_spec() for row in self.product_eligibility.all()),
            category_eligibility=tuple(row.to_spec() for row in self.category_eligibility.all()),
            customer_eligibility=tuple(row.to_spec() for row in self.customer_eligibility.all()),
            rules=tuple(rule.to_spec() for rule in self.rules.all()),
            actions=tuple(action.to_spec() for action in self.actions.all()),
        )

    def usage_summary(self) -> UsageSummary:
        """Redemption totals for the promotion usage tab."""
        return usage_summary(str(self.id), (usage.to_record() for usage in self.usages.all()))


# ===============================================================================
# Eligibility Models
# ===============================================================================


class PromotionProductEligibility(models.Model):
    """Product inclusion/exclusion row. No rows = all products eligible."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="product_eligibility")
    tenant_id = models.UUIDField(db_index=True)
    product_id = models.CharField(max_length=100, help_text=_("Catalog product identifier"))
    is_included = models.BooleanField(default=True)

    class Meta:
        db_table = "promotion_product_eligibility"
        verbose_name = _("Product Eligibility")
        verbose_name_plural = _("Product Eligibility")
        ordering: ClassVar[tuple[str, ...]] = ("id",)
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            models.UniqueConstraint(fields=["promotion", "product_id"], name="unique_promotion_product"),
        )

    def __str__(self) -> str:
        return f"{'+' if self.is_included else '-'}{self.product_id}"

    def to_spec(self) -> ProductEligibility:
        return ProductEligibility(product_id=self.product_id, is_included=self.is_included)


class PromotionCategoryEligibility(models.Model):
    """Category inclusion/exclusion row. No rows = all categories eligible."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="category_eligibility")
    tenant_id = models.UUIDField(db_index=True)
    category = models.CharField(max_length=100)
    is_included = models.BooleanField(default=True)

    class Meta:
        db_table = "promotion_category_eligibility"
        verbose_name = _("Category Eligibility")
        verbose_name_plural = _("Category Eligibility")
        ordering: ClassVar[tuple[str, ...]] = ("id",)
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            models.UniqueConstraint(fields=["promotion", "category"], name="unique_promotion_category"),
        )

    def __str__(self) -> str:
        return f"{'+' if self.is_included else '-'}{self.category}"

    def to_spec(self) -> CategoryEligibility:
        return CategoryEligibility(category=self.category, is_included=self.is_included)


class PromotionCustomerEligibility(models.Model):
    """Customer group row; ``specific`` rows carry a customer id."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="customer_eligibility")
    tenant_id = models.UUIDField(db_index=True)

    CUSTOMER_GROUPS: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("all", _("All Customers")),
        ("new", _("New Customers")),
        ("returning", _("Returning Customers")),
        ("vip", _("VIP Customers")),
        ("wholesale", _("Wholesale Customers")),
        ("retail", _("Retail Customers")),
        ("specific", _("Specific Customers")),
    )
    customer_group = models.CharField(max_length=20, choices=CUSTOMER_GROUPS, default="all")
    customer_id = models.CharField(max_length=100, null=True, blank=True)
    is_included = models.BooleanField(default=True)

    class Meta:
        db_table = "promotion_customer_eligibility"
        verbose_name = _("Customer Eligibility")
        verbose_name_plural = _("Customer Eligibility")
        ordering: ClassVar[tuple[str, ...]] = ("id",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["promotion", "customer_id"], name="idx_promo_customer_elig"),
        )

    def __str__(self) -> str:
        return f"{self.customer_group}:{self.customer_id or '*'}"

    def clean(self) -> None:
        super().clean()
        if self.customer_group == "specific" and not self.customer_id:
            raise ValidationError({"customer_id": "Specific customer eligibility requires a customer"})

    def to_spec(self) -> CustomerEligibility:
        return CustomerEligibility(
            customer_group=self.customer_group,
            customer_id=self.customer_id or None,
            is_included=self.is_included,
        )


# ===============================================================================
# Promotion Rule Model
# ===============================================================================


class PromotionRule(models.Model):
    """
    Conditional rule: ``field_name operator value`` scoped by ``rule_type``.
    Rules sharing a ``rule_group`` combine with their logical operator.
    """

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="rules")
    tenant_id = models.UUIDField(db_index=True)

    RULE_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("order", _("Order")),
        ("product", _("Product")),
        ("customer", _("Customer")),
        ("time", _("Time")),
        ("quantity", _("Quantity")),
        ("category", _("Category")),
    )
    rule_type = models.CharField(max_length=20, choices=RULE_TYPES, default="order")
    field_name = models.CharField(max_length=50, default="total_amount")

    OPERATORS: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("equals", _("Equals")),
        ("not_equals", _("Not Equals")),
        ("greater_than", _("Greater Than")),
        ("less_than", _("Less Than")),
        ("greater_equal", _("Greater Than or Equal")),
        ("less_equal", _("Less Than or Equal")),
        ("contains", _("Contains")),
        ("in", _("In")),
        ("not_in", _("Not In")),
        ("between", _("Between")),
    )
    operator = models.CharField(max_length=20, choices=OPERATORS, default="greater_than")
    value = models.CharField(max_length=500, help_text=_("Comma separated for in, not_in and between"))

    LOGICAL_OPERATORS: ClassVar[tuple[tuple[str, str], ...]] = (
        ("AND", "AND"),
        ("OR", "OR"),
    )
    logical_operator = models.CharField(max_length=3, choices=LOGICAL_OPERATORS, default="AND")
    rule_group = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])

    class Meta:
        db_table = "promotion_rules"
        verbose_name = _("Promotion Rule")
        verbose_name_plural = _("Promotion Rules")
        ordering: ClassVar[tuple[str, ...]] = ("rule_group", "id")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["promotion", "rule_group"], name="idx_promotion_rule_group"),
        )

    def __str__(self) -> str:
        return f"{self.rule_type}.{self.field_name} {self.operator} {self.value}"

    def to_spec(self) -> RuleSpec:
        return RuleSpec(
            rule_type=self.rule_type,
            field_name=self.field_name,
            operator=self.operator,
            value=self.value,
            logical_operator=self.logical_operator,
            rule_group=self.rule_group,
            rule_id=str(self.pk) if self.pk else "",
        )


# ===============================================================================
# Promotion Action Model
# ===============================================================================


class PromotionAction(models.Model):
    """
    Calculation parameters attached to a promotion.

    ``buy_quantity`` / ``get_quantity``: X and Y of buy X get Y (``action_value``),
    optionally targeted at a product or category.
    ``tier``: a breakpoint (``threshold`` + ``threshold_type``) whose
    ``action_value`` replaces the promotion's discount value when reached.
    """

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="actions")
    tenant_id = models.UUIDField(db_index=True)

    ACTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("buy_quantity", _("Buy Quantity")),
        ("get_quantity", _("Get Quantity")),
        ("tier", _("Tier Breakpoint")),
    )
    action_type = models.CharField(max_length=20, choices=ACTION_TYPES)

    TARGET_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("order", _("Order")),
        ("product", _("Product")),
        ("category", _("Category")),
    )
    target_type = models.CharField(max_length=20, choices=TARGET_TYPES, default="order")
    target_value = models.CharField(max_length=100, blank=True)
    action_value = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        default=Decimal("0"),
        validators=[MinValueValidator(0)],
    )

    THRESHOLD_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("amount", _("Order Amount")),
        ("quantity", _("Quantity")),
    )
    threshold = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    threshold_type = models.CharField(max_length=20, choices=THRESHOLD_TYPES, default="amount")

    class Meta:
        db_table = "promotion_actions"
        verbose_name = _("Promotion Action")
        verbose_name_plural = _("Promotion Actions")
        ordering: ClassVar[tuple[str, ...]] = ("id",)

    def __str__(self) -> str:
        return f"{self.action_type}={self.action_value}"

    def clean(self) -> None:
        super().clean()
        if self.action_type == "tier" and self.threshold is None:
            raise ValidationError({"threshold": "Tier actions require a threshold"})
        if self.target_type != "order" and not self.target_value:
            raise ValidationError({"target_value": "Product and category targets require a value"})

    def to_spec(self) -> ActionSpec:
        return ActionSpec(
            action_type=self.action_type,
            action_value=self.action_value,
            target_type=self.target_type,
            target_value=self.target_value,
            threshold=self.threshold,
            threshold_type=self.threshold_type,
        )


# ===============================================================================
# Promotion Usage Model
# ===============================================================================


class PromotionUsage(models.Model):
    """
    Append-only redemption ledger.
    One row per committed discount; counted by the usage limiter, never updated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    promotion = models.ForeignKey(Promotion, on_delete=models.PROTECT, related_name="usages")
    tenant_id = models.UUIDField(db_index=True)
    customer_id = models.CharField(max_length=100, db_index=True)
    order_reference = models.CharField(max_length=100, help_text=_("Order the discount was committed to"))

    # Snapshot of the applied discount
    discount_amount = models.DecimalField(
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        default=Decimal("0"),
    )
    waives_shipping = models.BooleanField(default=False)
    order_total = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    matched_rule_groups = models.JSONField(default=list, blank=True)
    applied_to_lines = models.JSONField(default=list, blank=True)

    redeemed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "promotion_usages"
        verbose_name = _("Promotion Usage")
        verbose_name_plural = _("Promotion Usages")
        ordering: ClassVar[tuple[str, ...]] = ("-redeemed_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["promotion", "customer_id"], name="idx_usage_promo_customer"),
            models.Index(fields=["tenant_id", "-redeemed_at"], name="idx_usage_tenant_recent"),
        )
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            # Prevent the same promotion being committed to the same order twice
            models.UniqueConstraint(fields=["promotion", "order_reference"], name="unique_promotion_per_order"),
        )

    def __str__(self) -> str:
        return f"{self.promotion_id} on {self.order_reference}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Ledger rows are insert-only."""
        if not self._state.adding:
            raise ValidationError("Promotion usage records are immutable")
        super().save(*args, **kwargs)

    def to_record(self) -> UsageRecord:
        return UsageRecord(
            promotion_id=str(self.promotion_id),
            customer_id=self.customer_id,
            redeemed_at=self.redeemed_at,
        )
