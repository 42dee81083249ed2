# ===============================================================================
# TEST FACTORIES - CENTRALIZED TEST DATA GENERATION
# ===============================================================================
"""
Builders for promotion engine inputs and persisted promotions.

Usage:
    from tests.factories import make_order, make_promotion

    order = make_order(total="100.00")
    promotion = make_promotion("P1", discount_value="10")
"""

from tests.factories.promotion_factories import (
    NOW,
    TENANT_ID,
    create_promotion,
    make_action,
    make_customer,
    make_line,
    make_order,
    make_promotion,
    make_rule,
    make_usage,
)

__all__ = [
    "NOW",
    "TENANT_ID",
    "create_promotion",
    "make_action",
    "make_customer",
    "make_line",
    "make_order",
    "make_promotion",
    "make_rule",
    "make_usage",
]
