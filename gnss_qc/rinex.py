"""
RINEX 3 observation file reading.

Files may be Hatanaka and/or gzip compressed, decompression is done by the
``hatanaka`` package. For each constellation the best dual-frequency
code/phase quadruple is selected according to ``GNSS_OBS_PRIORITY`` and the
records are aligned onto the shared time axis.
"""

from fnmatch import fnmatch
from pathlib import Path
from typing import NamedTuple, Optional, Sequence

import astropy.units as u
import hatanaka
import numpy as np
from astropy.time import Time

from gnss_qc.config import GNSS_OBS_PRIORITY, PreprocessingConfig
from gnss_qc.exceptions import ObservationFileError
from gnss_qc.observations import make_satellite_observations, median_sampling
from gnss_qc.receiver import Receiver

# GPS time runs 19 s behind TAI
GPS_TAI_OFFSET = 19 * u.s

# Width of one observation field (F14.3 value, LLI and signal strength)
_FIELD_WIDTH = 16
_VALUE_WIDTH = 14


class RinexHeader(NamedTuple):
    version: str
    datatypes: dict[str, list[str]]
    """Observation codes per constellation"""
    approx_position: Optional[np.ndarray] = None
    marker_name: str = ""


class RinexData(NamedTuple):
    data: dict[str, np.ndarray]
    """Observations per PRN [n_epochs, n_types], NaN where missing"""
    times: Time
    header: RinexHeader


def gps_times(isot: Sequence[str] | str) -> Time:
    """
    Epochs given as GPS time labels.

    Parameters
    ----------
    isot : Sequence[str] or str
        Calendar labels in ISO format, e.g. ``"2024-06-18T12:00:00"``

    Returns
    -------
    Time
        Times in the TAI scale
    """
    return Time(isot, format="isot", scale="tai") + GPS_TAI_OFFSET


def read_rinex_header(raw_rinex_lines: list[str]) -> tuple[RinexHeader, int]:
    """Read header information from rinex 3 file

    Parameters
    ----------
    raw_rinex_lines : list[str]
        all lines in the file

    Returns
    -------
    tuple[RinexHeader, int]
        header and the line number of END OF HEADER

    Raises
    ------
    ObservationFileError
        If the header is not terminated
    """
    version = ""
    marker_name = ""
    approx_position = None
    obs_map = {}
    sys = ""
    for line_number, line in enumerate(raw_rinex_lines):
        label = line[60:80]
        if "END OF HEADER" in label:
            header = RinexHeader(
                version=version,
                datatypes=obs_map,
                approx_position=approx_position,
                marker_name=marker_name,
            )
            return header, line_number
        if "RINEX VERSION / TYPE" in label:
            version = line[:20].strip()
        elif "MARKER NAME" in label:
            marker_name = line[:60].strip()
        elif "APPROX POSITION XYZ" in label:
            approx_position = np.array([float(x) for x in line[:60].split()[:3]])
        elif "SYS / # / OBS TYPES" in label:
            toks = line[7:60].split()
            if not sys:
                sys = line[0]  # satellite system (G,E,S,R,C,J,I)
                nobs = int(line[3:6])
                types = toks
            else:
                types += toks
            if len(types) < nobs:
                # continuation lines
                continue
            obs_map[sys] = types
            sys = ""
    raise ObservationFileError("RINEX header without END OF HEADER")


def parse_rinex_lines(rinex_lines: list[str]) -> RinexData:
    """
    Parse the lines of a rinex 3 observation file.

    Epochs with an event flag above 1 are skipped together with their
    records.

    Raises
    ------
    ObservationFileError
        If the file is not a RINEX 3 observation file
    """
    header, end_of_header = read_rinex_header(rinex_lines)
    if not header.version or header.version[0] not in ("3", "4"):
        raise ObservationFileError(f"Unsupported RINEX version: {header.version!r}")

    labels = []
    records = []
    epoch_records = None
    for line in rinex_lines[end_of_header + 1 :]:
        if line.startswith(">"):  # epoch record
            epoch_records = None
            parts = line[1:].split()
            try:
                yr, mo, dy, hr, mi = map(int, parts[:5])
                sec = float(parts[5])
                flag = int(parts[6]) if len(parts) > 6 else 0
            except (ValueError, IndexError):
                continue  # skip until the next valid epoch
            if flag > 1:
                continue
            labels.append(f"{yr:04d}-{mo:02d}-{dy:02d}T{hr:02d}:{mi:02d}:{sec:010.7f}")
            epoch_records = {}
            records.append(epoch_records)
            continue
        if epoch_records is None:
            continue
        sat_id = line[:3].strip()
        if not sat_id or sat_id[0] not in header.datatypes:
            continue
        sat_id = f"{sat_id[0]}{int(sat_id[1:]):02d}"
        n_types = len(header.datatypes[sat_id[0]])
        values = []
        for start in range(3, 3 + n_types * _FIELD_WIDTH, _FIELD_WIDTH):
            field = line[start : start + _VALUE_WIDTH].strip()
            values.append(float(field) if field else np.nan)
        epoch_records[sat_id] = values

    if not labels:
        raise ObservationFileError("No observation epochs found")

    data = {}
    for epoch, epoch_records in enumerate(records):
        for sat_id, values in epoch_records.items():
            if sat_id not in data:
                n_types = len(header.datatypes[sat_id[0]])
                data[sat_id] = np.full((len(records), n_types), np.nan)
            data[sat_id][epoch] = values
    for values in data.values():
        # zero means not observed
        values[values == 0.0] = np.nan
    return RinexData(data=data, times=gps_times(labels), header=header)


def get_rinex_data(fname: Path) -> RinexData:
    """parse rinex3 file

    Parameters
    ----------
    fname : Path
        path to the file, plain or hatanaka (+optional gzip) compressed

    Returns
    -------
    RinexData
        object with data, times (gps time) and header

    Raises
    ------
    ObservationFileError
        If the file is missing or cannot be decoded
    """
    fname = Path(fname)
    if not fname.exists():
        raise ObservationFileError(f"Observation file not found: {fname}")
    try:
        rinex_lines = hatanaka.decompress(fname).decode().split("\n")
    except (OSError, ValueError, UnicodeDecodeError) as e:
        raise ObservationFileError(f"Cannot decompress {fname}: {e}") from e
    return parse_rinex_lines(rinex_lines)


def _matches_any(code: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch(code, pattern) for pattern in patterns)


def select_observation_codes(
    labels: list[str],
    constellation: str,
    use_types: Sequence[str] = (),
    ignore_types: Sequence[str] = (),
) -> Optional[tuple[str, str, str, str]]:
    """
    Best available dual-frequency code/phase quadruple.

    Parameters
    ----------
    labels : list[str]
        Observation codes in the file for this constellation
    constellation : str
        Constellation identifier
    use_types : Sequence[str], optional
        If given, only codes matching any of these glob patterns are used
    ignore_types : Sequence[str], optional
        Codes matching any of these glob patterns are ignored

    Returns
    -------
    tuple[str, str, str, str] or None
        Codes (C1, C2, L1, L2) with phase tracking matching the code, None if
        no consistent quadruple exists

    Examples
    --------
    >>> select_observation_codes(["C1C", "C1W", "C2W", "L1C", "L1W", "L2W"], "G")
    ('C1W', 'C2W', 'L1W', 'L2W')
    """
    if constellation not in GNSS_OBS_PRIORITY:
        return None
    available = [
        code
        for code in labels
        if (not use_types or _matches_any(code, use_types))
        and not _matches_any(code, ignore_types)
    ]
    priority = GNSS_OBS_PRIORITY[constellation]
    for c1 in priority["C1"]:
        for c2 in priority["C2"]:
            l1 = f"L{c1[1:]}"
            l2 = f"L{c2[1:]}"
            if all(code in available for code in (c1, c2, l1, l2)):
                return c1, c2, l1, l2
    return None


def align_to_time_axis(file_times: Time, times: Time) -> tuple[np.ndarray, np.ndarray]:
    """
    Match file epochs to the nearest time axis epoch.

    Epochs further than half the axis sampling from any axis epoch are
    dropped.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Indices into the file epochs and the matching time axis indices
    """
    axis_seconds = (times.tai.mjd - times.tai.mjd[0]) * 86400.0
    file_seconds = (file_times.tai.mjd - times.tai.mjd[0]) * 86400.0
    tolerance = 0.5 * (median_sampling(times) or 1.0)

    if len(times) == 1:
        nearest = np.zeros(len(file_seconds), dtype=int)
    else:
        right = np.clip(np.searchsorted(axis_seconds, file_seconds), 1, len(times) - 1)
        left_closer = np.abs(file_seconds - axis_seconds[right - 1]) <= np.abs(
            axis_seconds[right] - file_seconds
        )
        nearest = np.where(left_closer, right - 1, right)
    matched = np.abs(file_seconds - axis_seconds[nearest]) <= tolerance
    return np.flatnonzero(matched), nearest[matched]


def read_receiver_observations(
    fname: Path,
    times: Time,
    station: Optional[str] = None,
    approx_position: Optional[np.ndarray] = None,
    use_types: Sequence[str] = (),
    ignore_types: Sequence[str] = (),
) -> Receiver:
    """
    Read the observations of one station.

    Parameters
    ----------
    fname : Path
        RINEX 3 observation file
    times : Time
        Shared time axis
    station : str, optional
        Station name, defaults to the marker name of the file
    approx_position : np.ndarray, optional
        Approximate ECEF position in meters, defaults to the header position
    use_types, ignore_types : Sequence[str], optional
        Glob patterns restricting the observation codes

    Returns
    -------
    Receiver
        Receiver whose usability mask marks the epochs with data

    Raises
    ------
    ObservationFileError
        If the file cannot be read or has no usable observations
    """
    rinex_data = get_rinex_data(fname)
    header = rinex_data.header
    station = station or header.marker_name or Path(fname).name[:4]
    if approx_position is None:
        approx_position = header.approx_position
    if approx_position is None:
        raise ObservationFileError(f"No approximate position for {station}")

    file_idx, axis_idx = align_to_time_axis(rinex_data.times, times)
    observations = {}
    for constellation, labels in header.datatypes.items():
        codes = select_observation_codes(labels, constellation, use_types, ignore_types)
        if codes is None:
            continue
        columns = [labels.index(code) for code in codes]
        for prn, prn_data in rinex_data.data.items():
            if prn[0] != constellation:
                continue
            values = np.full((len(times), 4), np.nan)
            values[axis_idx] = prn_data[np.ix_(file_idx, columns)]
            if np.any(np.isfinite(values)):
                observations[prn] = make_satellite_observations(codes, values)

    if not observations:
        raise ObservationFileError(f"No dual-frequency observations for {station}")

    return Receiver(
        name=station,
        times=times,
        approx_position=approx_position,
        observations=observations,
        observation_sampling=median_sampling(rinex_data.times),
    )


def load_station(
    station: str, template: str, times: Time, config: PreprocessingConfig
) -> Receiver:
    """
    Load a station from a file name template.

    Parameters
    ----------
    station : str
        Station name, fills ``{station}`` in the template
    template : str
        Observation file template, e.g. ``"data/{station}0010.24o"``
    times : Time
        Shared time axis
    config : PreprocessingConfig
        Provides the observation type patterns

    Returns
    -------
    Receiver
    """
    return read_receiver_observations(
        Path(template.format(station=station)),
        times,
        station=station,
        use_types=config.use_types,
        ignore_types=config.ignore_types,
    )
