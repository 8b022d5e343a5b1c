"""
Tests for gnss_qc.clock module.

Tests the code only clock estimation and the gross outlier rejection on
simulated stations.
"""

import pytest
import numpy as np

from gnss_qc.clock import disable_gross_code_outliers, estimate_initial_clock
from gnss_qc.equations import ObservationEquations
from gnss_qc.observations import C1, C2, CODE_COLUMNS


def _seconds(times):
    return (times.tai.mjd - times[0].tai.mjd) * 86400.0


class TestEstimateInitialClock:
    """Test the initial clock estimation."""

    def test_clock_recovered(self, make_receiver, transmitters, short_times, config):
        """Test the estimated clock follows the simulated clock."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)

        status = estimate_initial_clock(receiver, equations, config)

        assert status.ok
        assert status.events == ()
        assert np.all(receiver.usable)
        expected = 3000.0 + 0.05 * _seconds(short_times)
        assert np.allclose(receiver.clock, expected, atol=1.5)

    def test_residuals_updated(self, make_receiver, transmitters, short_times, config):
        """Test code residuals are small after the clock estimation."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)
        estimate_initial_clock(receiver, equations, config)

        for obs in receiver.observations.values():
            residuals = obs.residuals[:, CODE_COLUMNS][obs.valid[:, CODE_COLUMNS]]
            assert np.all(np.abs(residuals) < 20.0)

    def test_kinematic_position(self, make_receiver, transmitters, short_times, config):
        """Test the position estimate stays near the approximate position."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)

        status = estimate_initial_clock(receiver, equations, config._replace(estimate_position=True))

        assert status.ok
        assert np.all(receiver.usable)
        offsets = np.linalg.norm(receiver.position - receiver.approx_position, axis=1)
        assert np.all(offsets < config.code_max_position_diff)
        assert np.all(offsets > 0)

    def test_position_too_far(self, make_receiver, transmitters, short_times, config):
        """Test epochs are disabled if the position is far off."""
        receiver = make_receiver(short_times)
        receiver.approx_position = receiver.approx_position + [1000.0, 0.0, 0.0]
        receiver.position = np.tile(receiver.approx_position, (len(short_times), 1))
        equations = ObservationEquations.build(receiver, transmitters)

        status = estimate_initial_clock(receiver, equations, config._replace(estimate_position=True))

        assert not status.ok
        assert status.reason == "no epoch with a code solution"
        assert status.events[0].reason == "position too far"
        assert status.events[0].count == len(short_times)

    def test_missing_code(self, make_receiver, transmitters, short_times, config):
        """Test epochs without code observations are disabled."""
        code_missing = np.zeros(len(short_times), dtype=bool)
        code_missing[[5, 6]] = True
        receiver = make_receiver(short_times, code_missing=code_missing)
        equations = ObservationEquations.build(receiver, transmitters)

        status = estimate_initial_clock(receiver, equations, config)

        assert status.ok
        assert np.flatnonzero(~receiver.usable).tolist() == [5, 6]
        assert status.events[0].reason == "too few code observations"
        assert status.events[0].count == 2

    def test_unknown_transmitters(self, make_receiver, short_times, config):
        """Test a station without known transmitters has no clock solution."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, [])

        status = estimate_initial_clock(receiver, equations, config)

        assert not status.ok
        assert receiver.usable_epoch_count() == 0


class TestDisableGrossCodeOutliers:
    """Test gross code outlier rejection."""

    def test_single_outlier_invalidated(self, make_receiver, transmitters, short_times, config):
        """Test a single gross outlier is invalidated and the epoch kept."""
        receiver = make_receiver(short_times, code_outliers=[("G01", 10, 150.0)])
        equations = ObservationEquations.build(receiver, transmitters)
        estimate_initial_clock(receiver, equations, config)

        status = disable_gross_code_outliers(receiver, config)

        assert status.ok
        assert receiver.usable[10]
        valid = receiver.observations["G01"].valid
        assert not valid[10, C1] and not valid[10, C2]
        assert valid[11, C1] and valid[9, C2]
        reasons = {event.reason: event.count for event in status.events}
        assert reasons == {"code observation invalidated": 2}

    def test_epoch_disabled(self, make_receiver, transmitters, short_times, config):
        """Test an epoch with mostly gross outliers is disabled."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)
        estimate_initial_clock(receiver, equations, config)
        for obs in receiver.observations.values():
            obs.residuals[10, CODE_COLUMNS] = 150.0

        status = disable_gross_code_outliers(receiver, config)

        assert status.ok
        assert np.flatnonzero(~receiver.usable).tolist() == [10]
        reasons = {event.reason: event.count for event in status.events}
        assert reasons == {"epoch disabled": 1}

    def test_half_outliers_tolerated(self, make_receiver, transmitters, short_times, config):
        """Test exactly half outliers do not disable the epoch."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)
        estimate_initial_clock(receiver, equations, config)
        prns = sorted(receiver.observations)
        for prn in prns[: len(prns) // 2]:
            receiver.observations[prn].residuals[10, CODE_COLUMNS] = -150.0

        disable_gross_code_outliers(receiver, config)

        assert receiver.usable[10]
        for prn in prns[: len(prns) // 2]:
            assert not np.any(receiver.observations[prn].valid[10, CODE_COLUMNS])

    def test_all_epochs_disabled(self, make_receiver, transmitters, short_times, config):
        """Test failure when every epoch has gross outliers."""
        receiver = make_receiver(short_times)
        equations = ObservationEquations.build(receiver, transmitters)
        estimate_initial_clock(receiver, equations, config)
        for obs in receiver.observations.values():
            obs.residuals[:, CODE_COLUMNS] = 500.0

        status = disable_gross_code_outliers(receiver, config)

        assert not status.ok
        assert receiver.usable_epoch_count() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
