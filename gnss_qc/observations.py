"""
Observation types and per-transmitter observation series.

Signal types are a closed tagged variant (``ObservationKind`` plus band and
tracking attribute) instead of a class hierarchy, so combinations are plain
functions over the set of types present.
"""

from enum import Enum
from typing import NamedTuple

import numpy as np
from astropy.time import Time

from gnss_qc.config import FREQ

# Column order of every observation array: C1, C2, L1, L2
C1, C2, L1, L2 = 0, 1, 2, 3
CODE_COLUMNS = (C1, C2)
PHASE_COLUMNS = (L1, L2)


class ObservationKind(Enum):
    """Kind of a GNSS observation (RINEX type letter)."""

    RANGE = "C"
    PHASE = "L"


class SignalType(NamedTuple):
    """One observed signal, e.g. ``C1W`` or ``L2W``."""

    kind: ObservationKind
    band: str
    attribute: str

    @classmethod
    def parse(cls, code: str) -> "SignalType":
        """
        Parse a RINEX 3 observation code.

        Raises
        ------
        ValueError
            If the code is not a code or phase observation
        """
        if len(code) != 3:
            raise ValueError(f"Invalid observation code: {code!r}")
        return cls(ObservationKind(code[0]), code[1], code[2])

    def __str__(self) -> str:
        return f"{self.kind.value}{self.band}{self.attribute}"


class SatelliteObservations(NamedTuple):
    """Dual-frequency observations of one transmitter at one receiver."""

    types: tuple[SignalType, SignalType, SignalType, SignalType]
    """Signal types of the columns (C1, C2, L1, L2)"""
    values: np.ndarray
    """Observations [n_epochs, 4]; code in meters, phase in cycles, NaN = missing"""
    valid: np.ndarray
    """Validity flags [n_epochs, 4]"""
    residuals: np.ndarray
    """Observed minus computed [n_epochs, 4] in meters"""

    def complete(self) -> np.ndarray:
        """Epochs where all four signals are valid."""
        return np.all(self.valid, axis=1)


def make_satellite_observations(
    types: list[str] | tuple[str, ...], values: np.ndarray
) -> SatelliteObservations:
    """
    Wrap an observation array.

    Parameters
    ----------
    types : list[str]
        Observation codes of the four columns (C1, C2, L1, L2)
    values : np.ndarray
        Observations [n_epochs, 4], NaN where missing

    Returns
    -------
    SatelliteObservations
        Observations with validity derived from finite values and zero residuals
    """
    values = np.array(values, dtype=float)
    if values.ndim != 2 or values.shape[1] != 4:
        raise ValueError(f"Expected observation array [n_epochs, 4], got {values.shape}")
    signal_types = tuple(SignalType.parse(code) for code in types)
    kinds = [t.kind for t in signal_types]
    if kinds != [ObservationKind.RANGE] * 2 + [ObservationKind.PHASE] * 2:
        raise ValueError(f"Expected types ordered C1, C2, L1, L2, got {list(types)}")
    return SatelliteObservations(
        types=signal_types,
        values=values,
        valid=np.isfinite(values),
        residuals=np.zeros_like(values),
    )


def get_frequencies(prn: str) -> tuple[float, float]:
    """Frequencies f1, f2 in Hz of the transmitter's constellation."""
    constellation = prn[0]
    if constellation not in FREQ:
        raise KeyError(f"Unknown constellation: {constellation}")
    return FREQ[constellation]["f1"], FREQ[constellation]["f2"]


def median_sampling(times: Time) -> float:
    """
    Median spacing of a time axis.

    Parameters
    ----------
    times : Time
        Epochs of the time axis

    Returns
    -------
    float
        Median sampling in seconds (0 for fewer than two epochs)
    """
    if len(times) < 2:
        return 0.0
    return float(np.median(np.diff(times.mjd)) * 86400.0)
