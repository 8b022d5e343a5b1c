"""
Tests for gnss_qc.usability module.
"""

import pytest
import numpy as np

from gnss_qc.receiver import ReceiverState
from gnss_qc.tracks import create_tracks
from gnss_qc.usability import evaluate_usability, is_usable_ratio


class TestIsUsableRatio:
    """Test the estimable epochs ratio."""

    @pytest.mark.parametrize(
        "usable_epochs, expected",
        [(100, True), (75, True), (74, False), (0, False)],
    )
    def test_boundary(self, usable_epochs, expected):
        """Test the boundary counts as usable."""
        assert is_usable_ratio(usable_epochs, 30.0, 100, 30.0, 0.75) is expected

    def test_sampling(self):
        """Test coarser observations count for more time."""
        assert is_usable_ratio(40, 60.0, 100, 30.0, 0.75)
        assert not is_usable_ratio(40, 30.0, 100, 30.0, 0.75)

    def test_zero_ratio(self):
        """Test ratio 0 accepts everything."""
        assert is_usable_ratio(0, 30.0, 100, 30.0, 0.0)


class TestEvaluateUsability:
    """Test the station decision."""

    def test_usable(self, make_receiver, short_times, config):
        """Test a complete station is usable."""
        receiver = make_receiver(short_times)
        create_tracks(receiver, 20)

        decision = evaluate_usability(receiver, config)

        assert decision.usable
        assert decision.usable_epochs == len(short_times)
        assert decision.disabled_epochs == 0
        assert receiver.state == ReceiverState.USABLE
        assert receiver.track_count() > 0

    def test_exact_ratio_kept(self, make_receiver, short_times, config):
        """Test exactly the required ratio keeps the station."""
        receiver = make_receiver(short_times)
        receiver.disable(np.arange(20))

        decision = evaluate_usability(receiver, config)

        assert decision.usable
        assert decision.usable_epochs == 60
        assert decision.disabled_epochs == 20

    def test_half_disabled(self, make_receiver, short_times, config):
        """Test a station with half of its epochs usable is disabled."""
        receiver = make_receiver(short_times)
        receiver.disable(np.arange(40))
        create_tracks(receiver, 20)

        decision = evaluate_usability(receiver, config)

        assert not decision.usable
        assert decision.usable_epochs == 0
        assert decision.disabled_epochs == len(short_times)
        assert receiver.state == ReceiverState.DISABLED
        assert receiver.tracks == {}
        assert "40 of 80" in receiver.disable_reason

    def test_disabled_receiver(self, make_receiver, short_times, config):
        """Test a disabled receiver stays disabled with its first reason."""
        receiver = make_receiver(short_times)
        receiver.disable(reason="no tracks")

        decision = evaluate_usability(receiver, config)

        assert not decision.usable
        assert receiver.disable_reason == "no tracks"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
