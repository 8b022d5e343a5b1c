"""
Pytest configuration and fixtures for gnss_qc tests.
"""

import pytest
import numpy as np
from astropy.coordinates import EarthLocation
import astropy.units as u
from astropy.time import Time

from gnss_qc.config import PreprocessingConfig
from gnss_qc.rinex import GPS_TAI_OFFSET, gps_times
from gnss_qc.simulation import simulate_constellation, simulate_receiver


@pytest.fixture
def sample_times():
    """Two hours of 30 s epochs."""
    return gps_times("2024-06-18T12:00:00") + np.arange(120) * 30 * u.s


@pytest.fixture
def short_times():
    """80 epochs of 30 s."""
    return gps_times("2024-06-18T12:00:00") + np.arange(80) * 30 * u.s


@pytest.fixture
def sample_station():
    """Generate sample GNSS station location."""
    return EarthLocation.from_geodetic(
        lon=6.6*u.deg,
        lat=52.9*u.deg,
        height=16*u.m
    )


@pytest.fixture
def station_position(sample_station):
    """ECEF position of the sample station in meters."""
    return np.array([coord.to_value(u.m) for coord in sample_station.geocentric])


@pytest.fixture
def transmitters(station_position, sample_times):
    """Eight transmitters above the sample station."""
    return simulate_constellation(station_position, sample_times[0])


@pytest.fixture
def config():
    """Default thresholds with tracks short enough for the test data."""
    return PreprocessingConfig(min_obs_count_per_track=20)


@pytest.fixture
def make_receiver(station_position, transmitters):
    """Factory for simulated receivers above the sample station."""

    def _make(times, name="sim1", **kwargs):
        return simulate_receiver(name, times, station_position, transmitters, **kwargs)

    return _make


def _rinex_line(content: str, label: str) -> str:
    return f"{content:<60}{label}"


@pytest.fixture
def write_rinex():
    """Writer of receivers as RINEX 3 observation files."""

    def _write(path, receiver, marker_name=None):
        types = [str(t) for t in next(iter(receiver.observations.values())).types]
        x, y, z = receiver.approx_position
        lines = [
            _rinex_line("     3.04           OBSERVATION DATA    M", "RINEX VERSION / TYPE"),
            _rinex_line(marker_name or receiver.name, "MARKER NAME"),
            _rinex_line(f"{x:14.4f}{y:14.4f}{z:14.4f}", "APPROX POSITION XYZ"),
            _rinex_line(f"G{len(types):5d} " + " ".join(types), "SYS / # / OBS TYPES"),
            _rinex_line("", "END OF HEADER"),
        ]
        # calendar labels of the GPS times, rounded to milliseconds
        total = np.round((receiver.times.tai - GPS_TAI_OFFSET).mjd * 86400.0, 3)
        days = np.floor(total / 86400.0)
        dates = Time(days, format="mjd").ymdhms
        for epoch, (date, day) in enumerate(zip(dates, days)):
            seconds = total[epoch] - day * 86400.0
            records = []
            for prn, obs in sorted(receiver.observations.items()):
                values = obs.values[epoch]
                if not np.any(np.isfinite(values)):
                    continue
                fields = "".join(
                    f"{value:14.3f}  " if np.isfinite(value) else " " * 16 for value in values
                )
                records.append(f"{prn}{fields}")
            if not records:
                continue
            lines.append(
                f"> {date['year']:4d} {date['month']:02d} {date['day']:02d}"
                f" {int(seconds // 3600):02d} {int(seconds % 3600 // 60):02d}{seconds % 60:11.7f}"
                f"  0{len(records):3d}"
            )
            lines.extend(records)
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write
