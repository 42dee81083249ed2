# Generated manually for Promotions App - promotion catalog and usage ledger

import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def amount_field(**kwargs):
    return models.DecimalField(decimal_places=2, max_digits=12, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Promotion",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True, help_text="Owning tenant")),
                ("name", models.CharField(help_text="Promotion name", max_length=200)),
                ("description", models.TextField(blank=True, help_text="Description shown to sales staff")),
                (
                    "promotion_type",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage Discount"),
                            ("fixed_amount", "Fixed Amount"),
                            ("buy_x_get_y", "Buy X Get Y"),
                            ("free_shipping", "Free Shipping"),
                            ("bundle", "Bundle Discount"),
                            ("tiered", "Tiered Discount"),
                            ("category_discount", "Category Discount"),
                        ],
                        default="percentage",
                        max_length=30,
                    ),
                ),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage Off"),
                            ("fixed_amount", "Fixed Amount Off"),
                            ("free_item", "Free Item"),
                            ("free_shipping", "Free Shipping"),
                            ("buy_x_get_y_free", "Buy X Get Y Free"),
                            ("buy_x_get_y_discount", "Buy X Get Y Discounted"),
                        ],
                        default="percentage",
                        max_length=30,
                    ),
                ),
                (
                    "discount_value",
                    amount_field(default=Decimal("0"), validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "minimum_order_amount",
                    amount_field(
                        default=Decimal("0"),
                        help_text="Minimum order total to qualify",
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "maximum_discount_amount",
                    amount_field(
                        blank=True,
                        help_text="Hard ceiling on the computed discount (null = no cap)",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("is_active", models.BooleanField(default=True, help_text="Master switch for promotion")),
                ("is_stackable", models.BooleanField(default=False, help_text="Can be combined with other promotions")),
                ("priority", models.IntegerField(default=0, help_text="Higher priority is considered first")),
                (
                    "start_date",
                    models.DateTimeField(default=django.utils.timezone.now, help_text="When promotion becomes valid"),
                ),
                (
                    "end_date",
                    models.DateTimeField(blank=True, help_text="When promotion ends (null = never)", null=True),
                ),
                (
                    "usage_limit",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Maximum total redemptions (null = unlimited)",
                        null=True,
                        validators=[django.core.validators.MaxValueValidator(1000000)],
                    ),
                ),
                (
                    "usage_limit_per_customer",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Maximum redemptions per customer (null = unlimited)",
                        null=True,
                        validators=[django.core.validators.MaxValueValidator(1000000)],
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_promotions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Promotion",
                "verbose_name_plural": "Promotions",
                "db_table": "promotions",
                "ordering": ("-priority", "created_at"),
                "indexes": [
                    models.Index(fields=["tenant_id", "is_active"], name="idx_promotion_tenant_active"),
                    models.Index(fields=["start_date", "end_date"], name="idx_promotion_validity"),
                    models.Index(fields=["priority"], name="idx_promotion_priority"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("end_date__isnull", True),
                            ("end_date__gte", models.F("start_date")),
                            _connector="OR",
                        ),
                        name="promotion_end_after_start",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("discount_value__gte", 0)),
                        name="promotion_discount_value_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionProductEligibility",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("product_id", models.CharField(help_text="Catalog product identifier", max_length=100)),
                ("is_included", models.BooleanField(default=True)),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_eligibility",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product Eligibility",
                "verbose_name_plural": "Product Eligibility",
                "db_table": "promotion_product_eligibility",
                "ordering": ("id",),
                "constraints": [
                    models.UniqueConstraint(fields=("promotion", "product_id"), name="unique_promotion_product"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionCategoryEligibility",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("category", models.CharField(max_length=100)),
                ("is_included", models.BooleanField(default=True)),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="category_eligibility",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Category Eligibility",
                "verbose_name_plural": "Category Eligibility",
                "db_table": "promotion_category_eligibility",
                "ordering": ("id",),
                "constraints": [
                    models.UniqueConstraint(fields=("promotion", "category"), name="unique_promotion_category"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionCustomerEligibility",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.UUIDField(db_index=True)),
                (
                    "customer_group",
                    models.CharField(
                        choices=[
                            ("all", "All Customers"),
                            ("new", "New Customers"),
                            ("returning", "Returning Customers"),
                            ("vip", "VIP Customers"),
                            ("wholesale", "Wholesale Customers"),
                            ("retail", "Retail Customers"),
                            ("specific", "Specific Customers"),
                        ],
                        default="all",
                        max_length=20,
                    ),
                ),
                ("customer_id", models.CharField(blank=True, max_length=100, null=True)),
                ("is_included", models.BooleanField(default=True)),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="customer_eligibility",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Customer Eligibility",
                "verbose_name_plural": "Customer Eligibility",
                "db_table": "promotion_customer_eligibility",
                "ordering": ("id",),
                "indexes": [
                    models.Index(fields=["promotion", "customer_id"], name="idx_promo_customer_elig"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionRule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.UUIDField(db_index=True)),
                (
                    "rule_type",
                    models.CharField(
                        choices=[
                            ("order", "Order"),
                            ("product", "Product"),
                            ("customer", "Customer"),
                            ("time", "Time"),
                            ("quantity", "Quantity"),
                            ("category", "Category"),
                        ],
                        default="order",
                        max_length=20,
                    ),
                ),
                ("field_name", models.CharField(default="total_amount", max_length=50)),
                (
                    "operator",
                    models.CharField(
                        choices=[
                            ("equals", "Equals"),
                            ("not_equals", "Not Equals"),
                            ("greater_than", "Greater Than"),
                            ("less_than", "Less Than"),
                            ("greater_equal", "Greater Than or Equal"),
                            ("less_equal", "Less Than or Equal"),
                            ("contains", "Contains"),
                            ("in", "In"),
                            ("not_in", "Not In"),
                            ("between", "Between"),
                        ],
                        default="greater_than",
                        max_length=20,
                    ),
                ),
                (
                    "value",
                    models.CharField(help_text="Comma separated for in, not_in and between", max_length=500),
                ),
                (
                    "logical_operator",
                    models.CharField(choices=[("AND", "AND"), ("OR", "OR")], default="AND", max_length=3),
                ),
                (
                    "rule_group",
                    models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)]),
                ),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="rules",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Promotion Rule",
                "verbose_name_plural": "Promotion Rules",
                "db_table": "promotion_rules",
                "ordering": ("rule_group", "id"),
                "indexes": [
                    models.Index(fields=["promotion", "rule_group"], name="idx_promotion_rule_group"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PromotionAction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tenant_id", models.UUIDField(db_index=True)),
                (
                    "action_type",
                    models.CharField(
                        choices=[
                            ("buy_quantity", "Buy Quantity"),
                            ("get_quantity", "Get Quantity"),
                            ("tier", "Tier Breakpoint"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "target_type",
                    models.CharField(
                        choices=[("order", "Order"), ("product", "Product"), ("category", "Category")],
                        default="order",
                        max_length=20,
                    ),
                ),
                ("target_value", models.CharField(blank=True, max_length=100)),
                (
                    "action_value",
                    amount_field(default=Decimal("0"), validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "threshold",
                    amount_field(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0)]),
                ),
                (
                    "threshold_type",
                    models.CharField(
                        choices=[("amount", "Order Amount"), ("quantity", "Quantity")],
                        default="amount",
                        max_length=20,
                    ),
                ),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="actions",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Promotion Action",
                "verbose_name_plural": "Promotion Actions",
                "db_table": "promotion_actions",
                "ordering": ("id",),
            },
        ),
        migrations.CreateModel(
            name="PromotionUsage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("customer_id", models.CharField(db_index=True, max_length=100)),
                (
                    "order_reference",
                    models.CharField(help_text="Order the discount was committed to", max_length=100),
                ),
                ("discount_amount", amount_field(default=Decimal("0"))),
                ("waives_shipping", models.BooleanField(default=False)),
                ("order_total", amount_field()),
                ("matched_rule_groups", models.JSONField(blank=True, default=list)),
                ("applied_to_lines", models.JSONField(blank=True, default=list)),
                ("redeemed_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "promotion",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usages",
                        to="promotions.promotion",
                    ),
                ),
            ],
            options={
                "verbose_name": "Promotion Usage",
                "verbose_name_plural": "Promotion Usages",
                "db_table": "promotion_usages",
                "ordering": ("-redeemed_at",),
                "indexes": [
                    models.Index(fields=["promotion", "customer_id"], name="idx_usage_promo_customer"),
                    models.Index(fields=["tenant_id", "-redeemed_at"], name="idx_usage_tenant_recent"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("promotion", "order_reference"), name="unique_promotion_per_order"),
                ],
            },
        ),
    ]
