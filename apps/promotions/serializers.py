"""
Promotion Serializers
DRF serializers for the marketing console payloads and raw order contexts.
"""

from __future__ import annotations

import copy
from typing import Any, ClassVar

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction
from rest_framework import serializers

from .domain import (
    ZERO,
    CartLine,
    CustomerContext,
    OrderContext,
    PromotionInputError,
    RuleConfigurationError,
    RuleSpec,
)
from .models import (
    Promotion,
    PromotionAction,
    PromotionCategoryEligibility,
    PromotionCustomerEligibility,
    PromotionProductEligibility,
    PromotionRule,
)
from .rules import parse_condition


# ===============================================================================
# Nested child serializers
# ===============================================================================


class PromotionProductEligibilitySerializer(serializers.ModelSerializer):
    class Meta:
        model = PromotionProductEligibility
        fields: ClassVar[list[str]] = ["id", "product_id", "is_included"]
        read_only_fields: ClassVar[list[str]] = ["id"]


class PromotionCategoryEligibilitySerializer(serializers.ModelSerializer):
    class Meta:
        model = PromotionCategoryEligibility
        fields: ClassVar[list[str]] = ["id", "category", "is_included"]
        read_only_fields: ClassVar[list[str]] = ["id"]


class PromotionCustomerEligibilitySerializer(serializers.ModelSerializer):
    """Customer group row; ``specific`` requires a customer id"""

    class Meta:
        model = PromotionCustomerEligibility
        fields: ClassVar[list[str]] = ["id", "customer_group", "customer_id", "is_included"]
        read_only_fields: ClassVar[list[str]] = ["id"]

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs.get("customer_group") == "specific" and not attrs.get("customer_id"):
            raise serializers.ValidationError({"customer_id": "Specific customer eligibility requires a customer"})
        return attrs


class PromotionRuleSerializer(serializers.ModelSerializer):
    """Conditional rule; rejected when the engine could not interpret it"""

    class Meta:
        model = PromotionRule
        fields: ClassVar[list[str]] = [
            "id", "rule_type", "field_name", "operator", "value", "logical_operator", "rule_group",
        ]
        read_only_fields: ClassVar[list[str]] = ["id"]

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        spec = RuleSpec(
            rule_type=attrs.get("rule_type", "order"),
            field_name=attrs.get("field_name", "total_amount"),
            operator=attrs.get("operator", "greater_than"),
            value=attrs.get("value", ""),
        )
        try:
            parse_condition(spec)
        except RuleConfigurationError as e:
            raise serializers.ValidationError({"value": f"{e.code}: {e.message}"}) from e
        return attrs


class PromotionActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PromotionAction
        fields: ClassVar[list[str]] = [
            "id", "action_type", "target_type", "target_value", "action_value", "threshold", "threshold_type",
        ]
        read_only_fields: ClassVar[list[str]] = ["id"]

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs.get("action_type") == "tier" and attrs.get("threshold") is None:
            raise serializers.ValidationError({"threshold": "Tier actions require a threshold"})
        if attrs.get("target_type", "order") != "order" and not attrs.get("target_value"):
            raise serializers.ValidationError({"target_value": "Product and category targets require a value"})
        return attrs


# ===============================================================================
# Promotion serializer
# ===============================================================================

CHILD_MODELS: dict[str, type[models.Model]] = {
    "product_eligibility": PromotionProductEligibility,
    "category_eligibility": PromotionCategoryEligibility,
    "customer_eligibility": PromotionCustomerEligibility,
    "rules": PromotionRule,
    "actions": PromotionAction,
}


class PromotionSerializer(serializers.ModelSerializer):
    """
    Full promotion with nested eligibility, rules and actions.

    Writes replace each submitted child collection wholesale (delete then
    insert); collections omitted from a partial update are left untouched.
    """

    product_eligibility = PromotionProductEligibilitySerializer(many=True, required=False)
    category_eligibility = PromotionCategoryEligibilitySerializer(many=True, required=False)
    customer_eligibility = PromotionCustomerEligibilitySerializer(many=True, required=False)
    rules = PromotionRuleSerializer(many=True, required=False)
    actions = PromotionActionSerializer(many=True, required=False)

    class Meta:
        model = Promotion
        fields: ClassVar[list[str]] = [
            "id", "tenant_id", "name", "description", "promotion_type", "discount_type",
            "discount_value", "minimum_order_amount", "maximum_discount_amount",
            "is_active", "is_stackable", "priority", "start_date", "end_date",
            "usage_limit", "usage_limit_per_customer", "created_at", "updated_at",
            "product_eligibility", "category_eligibility", "customer_eligibility", "rules", "actions",
        ]
        read_only_fields: ClassVar[list[str]] = ["id", "created_at", "updated_at"]

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        # Run the model's clean() against the merged state
        candidate = copy.copy(self.instance) if self.instance is not None else Promotion()
        for name, value in attrs.items():
            if name not in CHILD_MODELS:
                setattr(candidate, name, value)
        try:
            candidate.clean()
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict) from e
        return attrs

    @transaction.atomic
    def create(self, validated_data: dict[str, Any]) -> Promotion:
        children = self._pop_children(validated_data)
        promotion = Promotion.objects.create(**validated_data)
        self._replace_children(promotion, children)
        return promotion

    @transaction.atomic
    def update(self, instance: Promotion, validated_data: dict[str, Any]) -> Promotion:
        children = self._pop_children(validated_data)
        for name, value in validated_data.items():
            setattr(instance, name, value)
        instance.save()
        self._replace_children(instance, children)
        return instance

    @staticmethod
    def _pop_children(validated_data: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
        return {name: validated_data.pop(name) for name in CHILD_MODELS if name in validated_data}

    @staticmethod
    def _replace_children(promotion: Promotion, children: dict[str, list[dict[str, Any]]]) -> None:
        for name, rows in children.items():
            model = CHILD_MODELS[name]
            model.objects.filter(promotion=promotion).delete()
            for row in rows:
                model.objects.create(promotion=promotion, tenant_id=promotion.tenant_id, **row)


# ===============================================================================
# Order context input
# ===============================================================================


class CustomerContextSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=100)
    email = serializers.CharField(max_length=254, required=False, allow_blank=True, default="")
    order_count = serializers.IntegerField(min_value=0, default=0)
    total_spent = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=ZERO, default=ZERO)
    segments = serializers.ListField(child=serializers.CharField(max_length=50), default=list)


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.CharField(max_length=100)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    line_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class OrderContextSerializer(serializers.Serializer):
    """Input serializer for a resolution request; produces an ``OrderContext``"""

    customer = CustomerContextSerializer()
    lines = CartLineSerializer(many=True, default=list)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=ZERO)
    timestamp = serializers.DateTimeField()
    item_count = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    status = serializers.CharField(max_length=20, default="draft")
    order_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    shipping_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=ZERO, default=ZERO)

    def to_order(self) -> OrderContext:
        """
        Validate the payload and build the engine input.

        Raises:
            PromotionInputError: naming the first invalid field.
        """
        if not self.is_valid():
            field_name, message = first_error(self.errors)
            raise PromotionInputError(field_name, message)

        data = self.validated_data
        customer = data["customer"]
        order = OrderContext(
            customer=CustomerContext(
                id=customer["id"],
                email=customer["email"],
                order_count=customer["order_count"],
                total_spent=customer["total_spent"],
                segments=frozenset(customer["segments"]),
            ),
            lines=tuple(CartLine(**line) for line in data["lines"]),
            total_amount=data["total_amount"],
            timestamp=data["timestamp"],
            item_count=data["item_count"],
            status=data["status"],
            order_id=data["order_id"],
            shipping_amount=data["shipping_amount"],
        )
        order.validate()
        return order


def first_error(errors: Any, path: str = "") -> tuple[str, str]:
    """Flatten nested DRF errors to ``("lines[1].quantity", "message")``."""
    if isinstance(errors, dict):
        for key, value in errors.items():
            if value:
                child = key if not path else f"{path}.{key}"
                if isinstance(key, int):
                    # Newer DRF keys many=True item errors by index
                    child = f"{path}[{key}]"
                elif key == "non_field_errors":
                    child = path or key
                return first_error(value, child)
    elif isinstance(errors, list):
        for index, value in enumerate(errors):
            if isinstance(value, dict):
                # Per-item errors for many=True serializers
                if value:
                    return first_error(value, f"{path}[{index}]")
            elif isinstance(value, list):
                if value:
                    return first_error(value, path)
            elif value:
                return path, str(value)
    return path or "non_field_errors", str(errors)
