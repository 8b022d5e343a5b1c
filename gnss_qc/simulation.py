"""
Synthetic transmitters and receiver observations.

Transmitters move on circular orbits and positions are given directly in
the terrestrial frame (use with the identity rotation). Observations
contain receiver and transmitter clocks, a smooth ionosphere, white noise,
integer ambiguities and optionally cycle slips, code outliers and data gaps.
"""

from typing import Optional, Sequence

import numpy as np
from astropy.time import Time

from gnss_qc.config import SPEED_OF_LIGHT
from gnss_qc.equations import identity_rotation, local_up, transmitter_geometry
from gnss_qc.observations import C1, C2, L1, L2, get_frequencies, make_satellite_observations
from gnss_qc.receiver import Receiver

GPS_ORBIT_RADIUS = 26_560e3  # m
GPS_ORBIT_PERIOD = 43_082.0  # s

SIMULATED_TYPES = ("C1W", "C2W", "L1W", "L2W")


def _seconds_since(times: Time, reference_mjd: float) -> np.ndarray:
    return (np.atleast_1d(times.tai.mjd) - reference_mjd) * 86400.0


class CircularOrbitTransmitter:
    """
    Transmitter on a circular orbit.

    Parameters
    ----------
    name : str
        PRN, e.g. ``"G05"``
    u, v : np.ndarray
        Orthonormal vectors spanning the orbit plane, ``u`` is the direction
        at the reference time and ``v`` the direction of motion
    reference_time : Time
        Epoch of the direction ``u``
    radius : float, optional
        Orbit radius in meters
    period : float, optional
        Orbit period in seconds
    clock_offset : float, optional
        Clock error at the reference time in meters
    clock_drift : float, optional
        Clock drift in meters per second
    usable : bool, optional
        Returned by ``useable()``
    """

    def __init__(
        self,
        name: str,
        u: np.ndarray,
        v: np.ndarray,
        reference_time: Time,
        radius: float = GPS_ORBIT_RADIUS,
        period: float = GPS_ORBIT_PERIOD,
        clock_offset: float = 0.0,
        clock_drift: float = 0.0,
        usable: bool = True,
    ):
        self.name = name
        self.u = np.asarray(u, dtype=float)
        self.v = np.asarray(v, dtype=float)
        self.reference_mjd = float(reference_time.tai.mjd)
        self.radius = radius
        self.period = period
        self.clock_offset = clock_offset
        self.clock_drift = clock_drift
        self.usable = usable

    @classmethod
    def above(
        cls,
        name: str,
        station_position: np.ndarray,
        azimuth: float,
        elevation: float,
        reference_time: Time,
        **kwargs,
    ) -> "CircularOrbitTransmitter":
        """
        Transmitter seen at a given azimuth and elevation at the reference time.

        The transmitter moves towards the zenith of the station.

        Parameters
        ----------
        name : str
            PRN
        station_position : np.ndarray
            ECEF station position in meters
        azimuth, elevation : float
            Direction in degrees
        reference_time : Time
            Epoch of the given direction
        **kwargs
            Passed to the constructor
        """
        radius = kwargs.get("radius", GPS_ORBIT_RADIUS)
        r = np.asarray(station_position, dtype=float)
        up = local_up(r)
        east = np.cross([0.0, 0.0, 1.0], up)
        east /= np.linalg.norm(east)
        north = np.cross(up, east)
        az, el = np.deg2rad(azimuth), np.deg2rad(elevation)
        direction = np.cos(el) * (np.sin(az) * east + np.cos(az) * north) + np.sin(el) * up

        # distance along direction to the orbit sphere
        rd = r @ direction
        distance = -rd + np.sqrt(rd**2 - (r @ r - radius**2))
        u = (r + distance * direction) / radius
        v = up - (up @ u) * u
        if np.linalg.norm(v) < 1e-9:
            v = east - (east @ u) * u
        return cls(name, u, v / np.linalg.norm(v), reference_time, **kwargs)

    def useable(self) -> bool:
        return self.usable

    def position(self, times: Time) -> np.ndarray:
        angle = 2 * np.pi * _seconds_since(times, self.reference_mjd) / self.period
        return self.radius * (
            np.cos(angle)[:, np.newaxis] * self.u + np.sin(angle)[:, np.newaxis] * self.v
        )

    def clock(self, times: Time) -> np.ndarray:
        return self.clock_offset + self.clock_drift * _seconds_since(times, self.reference_mjd)


def simulate_constellation(
    station_position: np.ndarray,
    reference_time: Time,
    n_transmitters: int = 8,
    elevations: Sequence[float] = (40.0, 70.0),
    seed: int = 0,
) -> list[CircularOrbitTransmitter]:
    """
    GPS-like transmitters spread in azimuth above a station.

    Parameters
    ----------
    station_position : np.ndarray
        ECEF station position in meters
    reference_time : Time
        Epoch of the initial directions
    n_transmitters : int, optional
        Number of transmitters, named G01, G02, ...
    elevations : Sequence[float], optional
        Range of initial elevations in degrees
    seed : int, optional
        Seed of the clock errors

    Returns
    -------
    list[CircularOrbitTransmitter]
    """
    rng = np.random.default_rng(seed)
    azimuths = np.linspace(0.0, 360.0, n_transmitters, endpoint=False)
    initial_elevations = np.linspace(*elevations, n_transmitters)
    return [
        CircularOrbitTransmitter.above(
            f"G{k + 1:02d}",
            station_position,
            azimuth,
            elevation,
            reference_time,
            clock_offset=rng.uniform(-1e4, 1e4),
            clock_drift=rng.uniform(-1e-3, 1e-3),
        )
        for k, (azimuth, elevation) in enumerate(zip(azimuths, initial_elevations))
    ]


def simulate_receiver(
    name: str,
    times: Time,
    position: np.ndarray,
    transmitters: list,
    seed: int = 0,
    code_noise: float = 0.3,
    phase_noise: float = 0.002,
    clock_offset: float = 3000.0,
    clock_drift: float = 0.05,
    slips: Sequence[tuple[str, int, int, int]] = (),
    code_outliers: Sequence[tuple[str, int, float]] = (),
    missing: Optional[np.ndarray] = None,
    code_missing: Optional[np.ndarray] = None,
) -> Receiver:
    """
    Simulate dual-frequency observations of one station.

    Parameters
    ----------
    name : str
        Station name
    times : Time
        Time axis
    position : np.ndarray
        ECEF station position in meters
    transmitters : list
        Transmitters, positions in the terrestrial frame
    seed : int, optional
        Seed of the random generator
    code_noise, phase_noise : float, optional
        Standard deviation of the white noise in meters
    clock_offset, clock_drift : float, optional
        Receiver clock error in meters and meters per second
    slips : Sequence[tuple[str, int, int, int]], optional
        Cycle slips (prn, epoch, n1, n2) added to all epochs from ``epoch`` on
    code_outliers : Sequence[tuple[str, int, float]], optional
        Offsets (prn, epoch, meters) added to both code observations
    missing : np.ndarray, optional
        Boolean mask of epochs without any observation
    code_missing : np.ndarray, optional
        Boolean mask of epochs without code observations

    Returns
    -------
    Receiver
        Receiver at candidate state

    Examples
    --------
    >>> transmitters = simulate_constellation(position, times[0])
    >>> receiver = simulate_receiver("sim1", times, position, transmitters,
    ...                              slips=[("G01", 40, 2, 0)])
    """
    generator = np.random.default_rng(seed)
    position = np.asarray(position, dtype=float)
    n_epochs = len(times)
    seconds = _seconds_since(times, float(times[0].tai.mjd))
    receiver_clock = clock_offset + clock_drift * seconds
    up = local_up(position)
    rotation = identity_rotation(times)

    observations = {}
    for trans in transmitters:
        prn = trans.name
        f1, f2 = get_frequencies(prn)
        wl1, wl2 = SPEED_OF_LIGHT / f1, SPEED_OF_LIGHT / f2

        rng, los, send_times = transmitter_geometry(trans, times, position, rotation)
        above_horizon = los @ up > 0
        geometry = rng + receiver_clock - trans.clock(send_times)

        # smooth slant ionosphere on f1 in meters
        iono1 = generator.uniform(2.0, 6.0) + generator.uniform(-0.3, 0.3) * seconds / 3600.0
        iono2 = iono1 * (f1 / f2) ** 2
        ambiguity1, ambiguity2 = generator.integers(-10_000, 10_000, size=2)

        values = np.empty((n_epochs, 4))
        values[:, C1] = geometry + iono1 + generator.normal(0, code_noise, n_epochs)
        values[:, C2] = geometry + iono2 + generator.normal(0, code_noise, n_epochs)
        values[:, L1] = (geometry - iono1 + generator.normal(0, phase_noise, n_epochs)) / wl1 + ambiguity1
        values[:, L2] = (geometry - iono2 + generator.normal(0, phase_noise, n_epochs)) / wl2 + ambiguity2

        for slip_prn, epoch, n1, n2 in slips:
            if slip_prn == prn:
                values[epoch:, L1] += n1
                values[epoch:, L2] += n2
        for outlier_prn, epoch, offset in code_outliers:
            if outlier_prn == prn:
                values[epoch, [C1, C2]] += offset

        values[~above_horizon] = np.nan
        if missing is not None:
            values[missing] = np.nan
        if code_missing is not None:
            values[np.ix_(code_missing, [C1, C2])] = np.nan
        observations[prn] = make_satellite_observations(SIMULATED_TYPES, values)

    return Receiver(
        name=name,
        times=times,
        approx_position=position,
        observations=observations,
    )
