"""Registry of upstream delivery categories.

Each module defines a module-level ``CATEGORY``; this package collects them
by name for the pipeline and the HTTP surface.
"""

from __future__ import annotations

from src.reshaper.categories import (
    appointments,
    communications,
    customer,
    notifications,
    showroom_visits,
    status,
)
from src.reshaper.categories.base import CategoryConfig

CATEGORIES: dict[str, CategoryConfig] = {
    module.CATEGORY.name: module.CATEGORY
    for module in (appointments, communications, notifications, showroom_visits, status, customer)
}


class UnknownCategoryError(LookupError):
    """Raised when a delivery names a category that is not registered."""


def get_category(name: str) -> CategoryConfig:
    try:
        return CATEGORIES[name]
    except KeyError:
        msg = f"unknown category '{name}', expected one of {sorted(CATEGORIES)}"
        raise UnknownCategoryError(msg) from None


__all__ = ["CATEGORIES", "CategoryConfig", "UnknownCategoryError", "get_category"]
