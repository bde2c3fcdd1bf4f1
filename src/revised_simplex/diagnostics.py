"""Convergence diagnostics and stalling detection for the simplex drivers.

The primal driver watches its objective through a ``ConvergenceMonitor`` and
switches to Bland's rule once progress stalls.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field


@dataclass
class ConvergenceMonitor:
    """Monitors objective progress and detects stalling.

    Attributes:
        window_size: Number of recent iterations to track
        stall_threshold: Relative improvement threshold for stalling detection

    Examples:
        >>> monitor = ConvergenceMonitor(window_size=50, stall_threshold=1e-8)
        >>> for objective_value, is_degenerate_pivot in pivots:
        ...     monitor.record_iteration(objective_value, is_degenerate_pivot)
        ...     if monitor.is_stalled():
        ...         pricing = BlandPricing(num_tot)
    """

    window_size: int = 50
    stall_threshold: float = 1e-8

    objective_history: deque[float] = field(default_factory=lambda: deque(maxlen=50))
    degenerate_pivots: int = 0
    total_pivots: int = 0

    consecutive_no_improvement: int = 0

    def __post_init__(self) -> None:
        self.objective_history = deque(maxlen=self.window_size)

    def record_iteration(
        self,
        objective: float,
        is_degenerate: bool = False,
    ) -> None:
        """Record an iteration's objective and whether its step was zero."""
        self.objective_history.append(objective)
        self.total_pivots += 1
        if is_degenerate:
            self.degenerate_pivots += 1

        if len(self.objective_history) >= 2:
            prev_obj = self.objective_history[-2]
            current_obj = self.objective_history[-1]

            if abs(prev_obj) > 1e-12:
                rel_improvement = abs(current_obj - prev_obj) / abs(prev_obj)
            else:
                rel_improvement = abs(current_obj - prev_obj)

            if rel_improvement < self.stall_threshold:
                self.consecutive_no_improvement += 1
            else:
                self.consecutive_no_improvement = 0

    def is_stalled(self, min_consecutive: int = 10) -> bool:
        """True after at least ``min_consecutive`` iterations without improvement."""
        return self.consecutive_no_improvement >= min_consecutive

    def get_degeneracy_ratio(self) -> float:
        """Ratio of degenerate pivots to total pivots."""
        if self.total_pivots == 0:
            return 0.0
        return self.degenerate_pivots / self.total_pivots

    def reset(self) -> None:
        """Clear all history, e.g. when the driver changes phase."""
        self.objective_history.clear()
        self.degenerate_pivots = 0
        self.total_pivots = 0
        self.consecutive_no_improvement = 0
