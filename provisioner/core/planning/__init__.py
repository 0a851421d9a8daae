"""Plan building — from recipe data to an ordered step list."""

from provisioner.core.planning.builder import (
    PlanOptions,
    build_plan,
    list_products,
    product_checks,
    resolve_product,
    validate_plan,
)

__all__ = [
    "PlanOptions",
    "build_plan",
    "list_products",
    "product_checks",
    "resolve_product",
    "validate_plan",
]
