"""
Diagnostic track dumps.

One text file per track with the MJD and both combinations, written before
and after the cycle slip processing when a file template is configured.
"""

from pathlib import Path

import numpy as np

from gnss_qc.receiver import Receiver, Track
from gnss_qc.rinex import GPS_TAI_OFFSET

_TIME_FORMAT = "%Y%m%d_%H%M%S"


def track_file_name(template: str, receiver: Receiver, track: Track) -> str:
    """
    Fill a track file template.

    Parameters
    ----------
    template : str
        Format string using ``{station}``, ``{prn}``, ``{timeStart}``,
        ``{timeEnd}`` and ``{types}``
    receiver : Receiver
        Receiver of the track
    track : Track
        The track

    Returns
    -------
    str
        File name
    """
    types = receiver.observations[track.prn].types
    # calendar labels in GPS time
    start, end = receiver.times[[track.first, track.last]].tai - GPS_TAI_OFFSET
    return template.format(
        station=receiver.name,
        prn=track.prn,
        timeStart=start.strftime(_TIME_FORMAT),
        timeEnd=end.strftime(_TIME_FORMAT),
        types="".join(str(t) for t in types),
    )


def write_tracks(template: str, receiver: Receiver) -> list[Path]:
    """
    Write all tracks of a receiver.

    Parameters
    ----------
    template : str
        Track file template, an empty template writes nothing
    receiver : Receiver
        Receiver with tracks

    Returns
    -------
    list[Path]
        Written files
    """
    if not template:
        return []

    written = []
    for prn in sorted(receiver.tracks):
        for track in receiver.tracks[prn]:
            path = Path(track_file_name(template, receiver, track))
            path.parent.mkdir(parents=True, exist_ok=True)
            mjd = (receiver.times[track.epochs].tai - GPS_TAI_OFFSET).mjd
            data = np.column_stack([mjd, track.tec, track.mw])
            np.savetxt(
                path,
                data,
                fmt=("%.8f", "%.4f", "%.4f"),
                header=f"{receiver.name} {prn}\nMJD(GPS) TEC-like[cycles] MW-like[cycles]",
            )
            written.append(path)
    return written
