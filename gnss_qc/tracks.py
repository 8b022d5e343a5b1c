"""
Track segmentation and track filtering.

A track is a maximal run of consecutive usable epochs in which all four
signals of a transmitter are valid. Tracks are derived data: they are
rebuilt from the usability mask and the observation flags whenever those
change.
"""

import numpy as np

from gnss_qc.combinations import update_combinations
from gnss_qc.equations import ObservationEquations
from gnss_qc.receiver import Receiver, StageStatus, Track, collect_events


def segment_epochs(available: np.ndarray, min_count: int) -> list[np.ndarray]:
    """
    Split available epochs into runs of consecutive epochs.

    Parameters
    ----------
    available : np.ndarray
        Boolean flag per epoch
    min_count : int
        Runs shorter than this are dropped

    Returns
    -------
    list[np.ndarray]
        Epoch indices of each run, in epoch order

    Examples
    --------
    >>> segment_epochs(np.array([1, 1, 0, 1, 1, 1], dtype=bool), 2)
    [array([0, 1]), array([3, 4, 5])]
    """
    epochs = np.flatnonzero(available)
    if epochs.size == 0:
        return []
    breaks = np.flatnonzero(np.diff(epochs) > 1) + 1
    return [run for run in np.split(epochs, breaks) if len(run) >= min_count]


def drop_track(receiver: Receiver, track: Track):
    """Invalidate all observations of a track."""
    receiver.invalidate(track.prn, track.epochs)


def set_tracks(receiver: Receiver, prn: str, tracks: list[Track]):
    """Replace the tracks of one transmitter (empty lists are removed)."""
    if tracks:
        receiver.tracks[prn] = tracks
    else:
        receiver.tracks.pop(prn, None)


def create_tracks(receiver: Receiver, min_obs_count: int) -> StageStatus:
    """
    Build the tracks of all transmitters.

    Observations outside of any kept track are invalidated, so later stages
    see only observations that belong to a track.

    Parameters
    ----------
    receiver : Receiver
        Receiver with usability mask and observation flags
    min_obs_count : int
        Minimum number of epochs per track

    Returns
    -------
    StageStatus
        Failed if no track is left
    """
    receiver.tracks = {}
    short_dropped = 0
    for prn in sorted(receiver.observations):
        obs = receiver.observations[prn]
        available = receiver.usable & obs.complete()
        runs = segment_epochs(available, min_obs_count)
        short_dropped += len(segment_epochs(available, 1)) - len(runs)

        in_track = np.zeros(receiver.epoch_count, dtype=bool)
        tracks = []
        for epochs in runs:
            in_track[epochs] = True
            tracks.append(update_combinations(receiver, Track(prn, epochs)))
        obs.valid[~in_track] = False
        set_tracks(receiver, prn, tracks)

    events = collect_events(receiver.name, "tracks", {"short track dropped": short_dropped})
    if not receiver.tracks:
        return StageStatus(ok=False, reason="no tracks", events=events)
    return StageStatus(ok=True, events=events)


def remove_low_elevation_tracks(
    receiver: Receiver, equations: ObservationEquations, elevation_track_minimum: float
) -> StageStatus:
    """
    Remove tracks whose maximum elevation stays below a threshold.

    Parameters
    ----------
    receiver : Receiver
        Receiver with tracks
    equations : ObservationEquations
        Geometry of the receiver
    elevation_track_minimum : float
        Minimum elevation in degrees a track must reach

    Returns
    -------
    StageStatus
        Failed if no track is left
    """
    removed = 0
    for prn in list(receiver.tracks):
        elevation = equations.elevation(prn)
        kept = []
        for track in receiver.tracks[prn]:
            if np.max(elevation[track.epochs]) < elevation_track_minimum:
                drop_track(receiver, track)
                removed += 1
            else:
                kept.append(track)
        set_tracks(receiver, prn, kept)

    events = collect_events(receiver.name, "track_filter", {"low elevation track": removed})
    if not receiver.tracks:
        return StageStatus(ok=False, reason="no tracks above minimum elevation", events=events)
    return StageStatus(ok=True, events=events)
