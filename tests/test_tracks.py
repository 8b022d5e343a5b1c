"""
Tests for gnss_qc.tracks module.
"""

import pytest
import numpy as np

from gnss_qc.receiver import ReceiverState
from gnss_qc.tracks import create_tracks, remove_low_elevation_tracks, segment_epochs


class _FixedElevations:
    """Equations stand-in with a constant elevation per transmitter."""

    def __init__(self, elevations, n_epochs):
        self.elevations = {prn: np.full(n_epochs, value) for prn, value in elevations.items()}

    def elevation(self, prn):
        return self.elevations[prn]


class TestSegmentEpochs:
    """Test splitting epochs into runs."""

    def test_runs(self):
        """Test gaps split the runs."""
        runs = segment_epochs(np.array([1, 1, 0, 1, 1, 1, 0, 0, 1], dtype=bool), 1)
        assert [run.tolist() for run in runs] == [[0, 1], [3, 4, 5], [8]]

    def test_min_count(self):
        """Test short runs are dropped."""
        runs = segment_epochs(np.array([1, 1, 0, 1, 1, 1, 0, 0, 1], dtype=bool), 3)
        assert [run.tolist() for run in runs] == [[3, 4, 5]]

    def test_empty(self):
        """Test no available epoch gives no run."""
        assert segment_epochs(np.zeros(5, dtype=bool), 1) == []


class TestCreateTracks:
    """Test track creation."""

    def test_track_invariants(self, make_receiver, short_times):
        """Test tracks are consecutive usable complete epochs."""
        receiver = make_receiver(short_times)
        status = create_tracks(receiver, 20)

        assert status.ok
        assert receiver.track_count() > 0
        for prn, tracks in receiver.tracks.items():
            obs = receiver.observations[prn]
            for track in tracks:
                assert len(track) >= 20
                assert np.all(np.diff(track.epochs) == 1)
                assert np.all(receiver.usable[track.epochs])
                assert np.all(obs.complete()[track.epochs])
                assert len(track.tec) == len(track) == len(track.mw)

    def test_gap_splits_tracks(self, make_receiver, short_times):
        """Test a gap of all observations splits every track."""
        missing = np.zeros(len(short_times), dtype=bool)
        missing[30:33] = True
        receiver = make_receiver(short_times, missing=missing)
        create_tracks(receiver, 20)

        assert not np.any(receiver.usable[30:33])
        for tracks in receiver.tracks.values():
            assert all(not np.any((track.epochs >= 30) & (track.epochs < 33)) for track in tracks)
        assert any(len(tracks) == 2 for tracks in receiver.tracks.values())

    def test_short_track_invalidated(self, make_receiver, short_times):
        """Test observations of dropped short runs are invalidated."""
        missing = np.zeros(len(short_times), dtype=bool)
        missing[10] = True
        receiver = make_receiver(short_times, missing=missing)
        status = create_tracks(receiver, 20)

        assert status.ok
        assert any(event.reason == "short track dropped" for event in status.events)
        for prn, tracks in receiver.tracks.items():
            assert all(track.first > 10 for track in tracks)
            assert not np.any(receiver.observations[prn].valid[:10])

    def test_no_tracks(self, make_receiver, short_times):
        """Test failure when every run is too short."""
        receiver = make_receiver(short_times)
        status = create_tracks(receiver, len(short_times) + 1)

        assert not status.ok
        assert status.reason == "no tracks"
        assert receiver.tracks == {}

    def test_disabled_epochs_excluded(self, make_receiver, short_times):
        """Test disabled epochs are never part of a track."""
        receiver = make_receiver(short_times)
        receiver.disable(np.arange(50, 80))
        create_tracks(receiver, 20)
        for tracks in receiver.tracks.values():
            assert all(track.last < 50 for track in tracks)


class TestRemoveLowElevationTracks:
    """Test the track elevation filter."""

    def test_low_track_removed(self, make_receiver, short_times):
        """Test tracks below the minimum elevation are dropped."""
        receiver = make_receiver(short_times)
        create_tracks(receiver, 20)
        elevations = {prn: 40.0 for prn in receiver.observations}
        elevations["G01"] = 10.0
        equations = _FixedElevations(elevations, len(short_times))

        status = remove_low_elevation_tracks(receiver, equations, 15.0)

        assert status.ok
        assert "G01" not in receiver.tracks
        assert not np.any(receiver.observations["G01"].valid)
        assert status.events[0].reason == "low elevation track"
        assert status.events[0].count == 1

    def test_all_low(self, make_receiver, short_times):
        """Test failure when no track reaches the minimum."""
        receiver = make_receiver(short_times)
        create_tracks(receiver, 20)
        equations = _FixedElevations({prn: 5.0 for prn in receiver.observations}, len(short_times))

        status = remove_low_elevation_tracks(receiver, equations, 15.0)

        assert not status.ok
        assert receiver.track_count() == 0
        # stage failure alone does not disable the receiver
        assert receiver.state == ReceiverState.CANDIDATE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
