from typing import Mapping
from ..data.base import Category, POIBundle

# Business choices pending stakeholder sign-off; see DESIGN.md.
CATEGORY_WEIGHTS: dict[Category, float] = {
    Category.TRANSPORT: 2.5,
    Category.SCHOOLS: 2.0,
    Category.SHOPS: 2.0,
    Category.HOSPITALS: 1.5,
    Category.SERVICES: 2.0,
}
SATURATION_COUNT = 10   # POIs at which a category maxes out
MAX_RATING = 10.0

def rate(
    bundle: POIBundle | None,
    weights: Mapping[Category, float] = CATEGORY_WEIGHTS,
    saturation: int = SATURATION_COUNT,
) -> float:
    """
    Weighted mean of per-category scores, each min(count / saturation, 1) * 10.
    A missing bundle rates like an empty one.
    """
    total_weight = sum(weights.values())
    if bundle is None or total_weight <= 0:
        return 0.0
    total = 0.0
    for category, weight in weights.items():
        count = len(bundle.get(category))
        total += min(count / saturation, 1.0) * MAX_RATING * weight
    return total / total_weight

def rating_label(rating: float) -> str:
    """Human-friendly band for a rating."""
    if rating >= 8:
        return "excellent"
    if rating >= 6:
        return "good"
    if rating >= 4:
        return "average"
    return "weak"
