"""Tests for convergence monitoring."""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.diagnostics import ConvergenceMonitor  # noqa: E402


class TestConvergenceMonitor:
    """Tests for ConvergenceMonitor."""

    def test_initialization(self):
        monitor = ConvergenceMonitor(window_size=20, stall_threshold=1e-6)

        assert monitor.window_size == 20
        assert monitor.objective_history.maxlen == 20
        assert monitor.total_pivots == 0
        assert not monitor.is_stalled()

    def test_record_iteration_basic(self):
        monitor = ConvergenceMonitor()
        monitor.record_iteration(100.0, is_degenerate=False)
        monitor.record_iteration(90.0, is_degenerate=True)

        assert list(monitor.objective_history) == [100.0, 90.0]
        assert monitor.total_pivots == 2
        assert monitor.degenerate_pivots == 1
        assert monitor.consecutive_no_improvement == 0

    def test_stalling_detection(self):
        """Identical objectives accumulate until the monitor reports a stall."""
        monitor = ConvergenceMonitor()
        monitor.record_iteration(5.0)
        for _ in range(9):
            monitor.record_iteration(5.0, is_degenerate=True)
        assert not monitor.is_stalled()

        monitor.record_iteration(5.0, is_degenerate=True)
        assert monitor.is_stalled()
        assert monitor.is_stalled(min_consecutive=10)
        assert not monitor.is_stalled(min_consecutive=50)

    def test_improvement_resets_stall_count(self):
        monitor = ConvergenceMonitor()
        for _ in range(12):
            monitor.record_iteration(5.0)
        assert monitor.is_stalled()

        monitor.record_iteration(4.0)
        assert monitor.consecutive_no_improvement == 0
        assert not monitor.is_stalled()

    def test_degeneracy_ratio(self):
        monitor = ConvergenceMonitor()
        for value in range(9):
            monitor.record_iteration(float(value), is_degenerate=True)
        monitor.record_iteration(10.0, is_degenerate=False)

        assert monitor.get_degeneracy_ratio() == 0.9

    def test_zero_objective_handling(self):
        monitor = ConvergenceMonitor()
        monitor.record_iteration(0.0)
        monitor.record_iteration(1e-3)
        assert monitor.consecutive_no_improvement == 0

    def test_window_size_limit(self):
        monitor = ConvergenceMonitor(window_size=3)
        for value in range(6):
            monitor.record_iteration(float(value))
        assert list(monitor.objective_history) == [3.0, 4.0, 5.0]

    def test_reset(self):
        monitor = ConvergenceMonitor()
        for _ in range(15):
            monitor.record_iteration(1.0, is_degenerate=True)
        monitor.reset()

        assert len(monitor.objective_history) == 0
        assert monitor.total_pivots == 0
        assert monitor.get_degeneracy_ratio() == 0.0
        assert not monitor.is_stalled()
