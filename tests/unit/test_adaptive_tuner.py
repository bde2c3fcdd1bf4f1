"""Direct unit tests for AdaptiveTuner class."""

import logging
import sys
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.data import SolverOptions  # noqa: E402
from revised_simplex.simplex_adaptive import AdaptiveTuner  # noqa: E402


def _tuner(**overrides):
    options = replace(SolverOptions(), **overrides)
    return AdaptiveTuner(options, logging.getLogger("test"))


class TestAdaptiveTunerInitialization:
    """Test AdaptiveTuner initialization."""

    def test_starts_from_configured_update_limit(self):
        tuner = _tuner(update_limit=64)
        assert tuner.current_update_limit == 64
        assert tuner.degenerate_pivot_count == 0
        assert tuner.total_pivot_count == 0
        assert tuner.degenerate_ratio == 0.0


class TestAdjustUpdateLimit:
    """Test update limit adaptation from condition estimates."""

    def test_none_leaves_limit_unchanged(self):
        tuner = _tuner()
        tuner.adjust_update_limit(None)
        assert tuner.current_update_limit == 64

    def test_severe_ill_conditioning_halves_limit(self):
        """Above ten times the threshold the limit is halved."""
        tuner = _tuner()
        tuner.adjust_update_limit(1e14)
        assert tuner.current_update_limit == 32

    def test_mild_ill_conditioning_reduces_limit(self):
        tuner = _tuner()
        tuner.adjust_update_limit(5e12)
        assert tuner.current_update_limit == 51

    def test_good_conditioning_grows_limit(self):
        tuner = _tuner()
        tuner.adjust_update_limit(10.0)
        assert tuner.current_update_limit == 70

    def test_small_limit_still_grows(self):
        tuner = _tuner(update_limit=5, adaptive_update_min=2)
        for expected in (6, 7, 8, 9, 10, 11):
            tuner.adjust_update_limit(10.0)
            assert tuner.current_update_limit == expected

    def test_limit_respects_minimum(self):
        tuner = _tuner(update_limit=20)
        for _ in range(5):
            tuner.adjust_update_limit(1e20)
        assert tuner.current_update_limit == 20

    def test_limit_respects_maximum(self):
        tuner = _tuner(update_limit=190)
        for _ in range(5):
            tuner.adjust_update_limit(1.0)
        assert tuner.current_update_limit == 200

    def test_changes_are_logged(self, caplog):
        tuner = _tuner()
        with caplog.at_level(logging.DEBUG, logger="test"):
            tuner.adjust_update_limit(1e14)
        assert any("Adjusted update_limit" in record.message for record in caplog.records)


class TestRecordPivot:
    def test_degenerate_ratio(self):
        tuner = _tuner()
        for degenerate in (True, False, True, True):
            tuner.record_pivot(degenerate)

        assert tuner.total_pivot_count == 4
        assert tuner.degenerate_pivot_count == 3
        assert tuner.degenerate_ratio == 0.75
