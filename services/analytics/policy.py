"""Category axis configuration shared by the aggregation engines."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from shared.config import AnalyticsSettings


@dataclass(frozen=True)
class CategoryPolicy:
    """Configured patient categories and their non-ordering thresholds."""

    categories: tuple[str, ...] = ("Veteran", "Civilian")
    non_ordering_threshold_by_category: Mapping[str, int] = field(
        default_factory=lambda: {"Veteran": 2, "Civilian": 3}
    )
    never_ordered_months: int = 12
    default_category: str = "Veteran"

    @classmethod
    def from_settings(cls, settings: AnalyticsSettings) -> "CategoryPolicy":
        return cls(
            categories=tuple(settings.categories),
            non_ordering_threshold_by_category=dict(settings.non_ordering_thresholds),
            never_ordered_months=settings.never_ordered_months,
            default_category=settings.default_category,
        )

    def threshold_for(self, category: str) -> int | None:
        return self.non_ordering_threshold_by_category.get(category)

    def with_threshold(self, category: str, months: int) -> "CategoryPolicy":
        """Return a copy with ``category``'s threshold replaced."""

        thresholds = dict(self.non_ordering_threshold_by_category)
        thresholds[category] = months
        return CategoryPolicy(
            categories=self.categories,
            non_ordering_threshold_by_category=thresholds,
            never_ordered_months=self.never_ordered_months,
            default_category=self.default_category,
        )


__all__ = ["CategoryPolicy"]
