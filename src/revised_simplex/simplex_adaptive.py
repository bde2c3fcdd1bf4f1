"""Adaptive tuning of the refactorization frequency.

The number of product-form updates absorbed between factorizations trades
solve cost against accuracy. The tuner shrinks the limit when the basis
becomes ill-conditioned and grows it again while conditioning stays good.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .data import SolverOptions


class AdaptiveTuner:
    """Adjusts the update limit from condition estimates and tracks degeneracy.

    Attributes:
        logger: Logger for recording adaptation decisions.
        current_update_limit: Product-form updates allowed before refactorizing.
        degenerate_pivot_count: Pivots with a zero step.
        total_pivot_count: Pivots recorded.
        options: Solver configuration options.
    """

    def __init__(self, options: SolverOptions, logger: logging.Logger):
        self.logger = logger
        self.options = options
        self.current_update_limit = options.update_limit
        self.degenerate_pivot_count = 0
        self.total_pivot_count = 0

    def adjust_update_limit(self, condition_number: float | None) -> None:
        """Adapt the update limit to the latest condition estimate.

        Strategy:
        - Above ten times the threshold: halve the limit
        - Above the threshold: reduce it by 20%
        - Otherwise: grow it by 10%, and by at least one
        The result stays within ``[adaptive_update_min, adaptive_update_max]``.

        Args:
            condition_number: Estimated condition number of the basis, or None if
                              not available.
        """
        if condition_number is None:
            return

        threshold = self.options.condition_number_threshold
        if condition_number > threshold * 10:
            new_limit = max(self.options.adaptive_update_min, int(self.current_update_limit * 0.5))
        elif condition_number > threshold:
            new_limit = max(self.options.adaptive_update_min, int(self.current_update_limit * 0.8))
        else:
            grown = max(self.current_update_limit + 1, int(self.current_update_limit * 1.1))
            new_limit = min(self.options.adaptive_update_max, grown)

        if new_limit != self.current_update_limit:
            self.logger.debug(
                f"Adjusted update_limit: {self.current_update_limit} → {new_limit}",
                extra={
                    "old_limit": self.current_update_limit,
                    "new_limit": new_limit,
                    "condition_number": f"{condition_number:.2e}",
                },
            )
            self.current_update_limit = new_limit

    def record_pivot(self, is_degenerate: bool) -> None:
        """Record pivot statistics.

        Args:
            is_degenerate: Whether the pivot was degenerate (step = 0).
        """
        self.total_pivot_count += 1
        if is_degenerate:
            self.degenerate_pivot_count += 1

    @property
    def degenerate_ratio(self) -> float:
        if self.total_pivot_count == 0:
            return 0.0
        return self.degenerate_pivot_count / self.total_pivot_count
