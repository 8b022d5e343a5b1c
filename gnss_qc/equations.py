"""
Observation equations of one receiver.

Computes the receiver-transmitter geometry (range, line of sight, elevation)
and the observations reduced by the computed range, the transmitter clock
and the caller supplied model corrections.
"""

from typing import Callable, NamedTuple, Optional

import numpy as np
import astropy.units as u
from astropy.coordinates import EarthLocation
from astropy.time import Time

from gnss_qc.config import SPEED_OF_LIGHT
from gnss_qc.observations import C1, C2, L1, L2, get_frequencies
from gnss_qc.receiver import Receiver

RotationFunction = Callable[[Time], np.ndarray]
"""Celestial to terrestrial rotation, times -> [n, 3, 3]"""

ReduceModelsFunction = Callable[[Receiver, str, np.ndarray, np.ndarray], np.ndarray]
"""Model corrections (receiver, prn, line of sight, elevation) -> [n] meters"""


class EquationSeries(NamedTuple):
    """Geometry and reduced observations of one transmitter."""

    range: np.ndarray
    """Geometric range [n_epochs] in meters"""
    los: np.ndarray
    """Unit vectors receiver to transmitter [n_epochs, 3]"""
    elevation: np.ndarray
    """Elevation [n_epochs] in degrees"""
    reduced: np.ndarray
    """Observed minus computed [n_epochs, 4] in meters (phase with ambiguity)"""


def identity_rotation(times: Time) -> np.ndarray:
    """Rotation used when positions are already terrestrial."""
    return np.tile(np.eye(3), (len(times), 1, 1))


def local_up(position: np.ndarray) -> np.ndarray:
    """
    Ellipsoidal up unit vector at an ECEF position.

    Parameters
    ----------
    position : np.ndarray
        ECEF position [3] in meters

    Returns
    -------
    np.ndarray
        Unit vector [3]
    """
    location = EarthLocation.from_geocentric(*position, unit=u.m)
    lat = location.lat.rad
    lon = location.lon.rad
    return np.array(
        [np.cos(lat) * np.cos(lon), np.cos(lat) * np.sin(lon), np.sin(lat)]
    )


def ionosphere_free(prn: str, first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """Ionosphere-free combination of two observations in meters."""
    f1, f2 = get_frequencies(prn)
    return (f1**2 * first - f2**2 * second) / (f1**2 - f2**2)


def transmitter_geometry(
    transmitter, times: Time, position: np.ndarray, rotation: np.ndarray
) -> tuple[np.ndarray, np.ndarray, Time]:
    """
    Range and line of sight from a receiver to a transmitter.

    Parameters
    ----------
    transmitter
        Object with ``position(times)`` in the celestial frame
    times : Time
        Receive times
    position : np.ndarray
        Terrestrial receiver positions [n, 3] in meters
    rotation : np.ndarray
        Celestial to terrestrial rotation matrices [n, 3, 3]

    Returns
    -------
    tuple[np.ndarray, np.ndarray, Time]
        Range [n] in meters, unit lines of sight [n, 3] and send times
    """
    # signal travel time from the first range approximation
    sat_pos = np.einsum("nij,nj->ni", rotation, transmitter.position(times))
    travel = np.linalg.norm(sat_pos - position, axis=1) / SPEED_OF_LIGHT
    send_times = times - travel * u.s
    sat_pos = np.einsum("nij,nj->ni", rotation, transmitter.position(send_times))

    delta = sat_pos - position
    rng = np.linalg.norm(delta, axis=1)
    return rng, delta / rng[:, np.newaxis], send_times


class ObservationEquations:
    """
    Observation equations of all transmitters seen by a receiver.

    Parameters
    ----------
    receiver : Receiver
        Receiver whose observations are reduced
    series : dict[str, EquationSeries]
        Geometry and reduced observations per transmitter PRN
    """

    def __init__(self, receiver: Receiver, series: dict[str, EquationSeries]):
        self.receiver = receiver
        self.series = series

    @classmethod
    def build(
        cls,
        receiver: Receiver,
        transmitters: list,
        rotation_crf2trf: Optional[RotationFunction] = None,
        reduce_models: Optional[ReduceModelsFunction] = None,
        elevation_cutoff: float = 0.0,
    ) -> "ObservationEquations":
        """
        Compute the observation equations.

        Observations of unknown or unusable transmitters and observations
        below the elevation cutoff are flagged invalid.

        Parameters
        ----------
        receiver : Receiver
            Receiver with observations
        transmitters : list
            Objects with ``name``, ``useable()``, ``position(times)`` (celestial
            frame, meters) and ``clock(times)`` (meters)
        rotation_crf2trf : callable, optional
            Celestial to terrestrial rotation, identity if omitted
        reduce_models : callable, optional
            Additional model corrections in meters
        elevation_cutoff : float, optional
            Elevation cutoff in degrees

        Returns
        -------
        ObservationEquations
        """
        rotation_crf2trf = rotation_crf2trf or identity_rotation
        by_name = {trans.name: trans for trans in transmitters}
        times = receiver.times
        rotation = rotation_crf2trf(times)
        up = local_up(receiver.approx_position)

        series = {}
        for prn, obs in receiver.observations.items():
            trans = by_name.get(prn)
            if trans is None or not trans.useable():
                obs.valid[:] = False
                continue

            rng, los, send_times = transmitter_geometry(
                trans, times, receiver.position, rotation
            )
            elevation = np.rad2deg(np.arcsin(np.clip(los @ up, -1.0, 1.0)))

            computed = rng - trans.clock(send_times)
            if reduce_models is not None:
                computed = computed + reduce_models(receiver, prn, los, elevation)

            f1, f2 = get_frequencies(prn)
            reduced = np.empty_like(obs.values)
            reduced[:, C1] = obs.values[:, C1] - computed
            reduced[:, C2] = obs.values[:, C2] - computed
            reduced[:, L1] = obs.values[:, L1] * SPEED_OF_LIGHT / f1 - computed
            reduced[:, L2] = obs.values[:, L2] * SPEED_OF_LIGHT / f2 - computed

            obs.valid[elevation < elevation_cutoff] = False
            obs.valid[~np.isfinite(reduced)] = False
            series[prn] = EquationSeries(
                range=rng, los=los, elevation=elevation, reduced=reduced
            )

        equations = cls(receiver, series)
        equations.update_residuals()
        return equations

    def code_observations(self, epoch: int) -> tuple[list[str], np.ndarray, np.ndarray]:
        """
        Ionosphere-free code observations of one epoch.

        Returns
        -------
        tuple[list[str], np.ndarray, np.ndarray]
            PRNs, reduced observations [n] and lines of sight [n, 3]
        """
        prns, values, los = [], [], []
        for prn, eq in self.series.items():
            valid = self.receiver.observations[prn].valid[epoch]
            if not (valid[C1] and valid[C2]):
                continue
            prns.append(prn)
            values.append(ionosphere_free(prn, eq.reduced[epoch, C1], eq.reduced[epoch, C2]))
            los.append(eq.los[epoch])
        return prns, np.array(values), np.array(los).reshape(-1, 3)

    def update_residuals(self):
        """Refresh the residuals from the current receiver clock and position."""
        receiver = self.receiver
        dpos = receiver.position - receiver.approx_position
        for prn, eq in self.series.items():
            correction = np.einsum("ni,ni->n", eq.los, dpos) - receiver.clock
            residuals = eq.reduced + correction[:, np.newaxis]
            receiver.observations[prn].residuals[:] = np.where(
                np.isfinite(residuals), residuals, 0.0
            )

    def elevation(self, prn: str) -> np.ndarray:
        return self.series[prn].elevation
