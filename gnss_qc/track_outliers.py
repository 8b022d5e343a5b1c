"""
Outlier detection within tracks.

Both combinations of a track are fitted robustly, the MW-like combination
by a constant and the TEC-like combination by a low-degree polynomial in
time. Pending cycle slips enter the fit as additional offsets so the jump
itself is not mistaken for outliers.
"""

import numpy as np

from gnss_qc.config import TEC_OUTLIER_DEGREE, PreprocessingConfig
from gnss_qc.receiver import Receiver, SlipEvent, StageStatus, Track, collect_events
from gnss_qc.robust import robust_least_squares
from gnss_qc.tracks import drop_track, set_tracks


def _slip_columns(track: Track, slips: list[SlipEvent]) -> np.ndarray:
    """Heaviside step per pending slip inside the track [n_epochs, n_slips]."""
    columns = [
        (track.epochs >= slip.epoch).astype(float)
        for slip in slips
        if slip.prn == track.prn and track.first < slip.epoch <= track.last
    ]
    return np.array(columns).reshape(-1, len(track)).T


def _outliers(A: np.ndarray, y: np.ndarray, config: PreprocessingConfig) -> np.ndarray:
    """Epochs whose residual stays above huber*sigma0 after convergence."""
    if len(y) <= A.shape[1]:
        return np.zeros(len(y), dtype=bool)
    solution = robust_least_squares(A, y, config.huber, config.huber_power)
    return np.abs(solution.residuals) > config.huber * solution.sigma0


def find_track_outliers(
    track: Track, config: PreprocessingConfig, slips: list[SlipEvent] = ()
) -> np.ndarray:
    """
    Flag outlying epochs of one track.

    Parameters
    ----------
    track : Track
        Track with combinations
    config : PreprocessingConfig
        Huber parameters
    slips : list[SlipEvent], optional
        Slips not yet repaired, modelled as offsets

    Returns
    -------
    np.ndarray
        Boolean flag per track epoch
    """
    steps = _slip_columns(track, slips)
    epochs = track.epochs.astype(float)
    half_span = max(0.5 * (epochs[-1] - epochs[0]), 1.0)
    t = (epochs - 0.5 * (epochs[-1] + epochs[0])) / half_span

    mw_design = np.column_stack([np.ones(len(track)), steps])
    tec_design = np.column_stack([np.vander(t, TEC_OUTLIER_DEGREE + 1), steps])
    return _outliers(mw_design, track.mw, config) | _outliers(tec_design, track.tec, config)


def detect_track_outliers(
    receiver: Receiver, config: PreprocessingConfig, slips: list[SlipEvent] = ()
) -> StageStatus:
    """
    Remove outlying epochs from all tracks of a receiver.

    Observations of outlying epochs are invalidated, tracks falling below
    ``min_obs_count_per_track`` are dropped completely.

    Parameters
    ----------
    receiver : Receiver
        Receiver with tracks
    config : PreprocessingConfig
        Huber parameters and minimum track length
    slips : list[SlipEvent], optional
        Detected slips that are repaired later

    Returns
    -------
    StageStatus
        Failed if no track is left
    """
    counts = {"epoch invalidated": 0, "track dropped": 0}
    for prn in list(receiver.tracks):
        kept = []
        for track in receiver.tracks[prn]:
            outliers = find_track_outliers(track, config, slips)
            if np.any(outliers):
                receiver.invalidate(prn, track.epochs[outliers])
                counts["epoch invalidated"] += int(np.count_nonzero(outliers))
                track = track.subset(~outliers)
            if len(track) < config.min_obs_count_per_track:
                drop_track(receiver, track)
                counts["track dropped"] += 1
                continue
            kept.append(track)
        set_tracks(receiver, prn, kept)

    events = collect_events(receiver.name, "track_outliers", counts)
    if not receiver.tracks:
        return StageStatus(ok=False, reason="no tracks after outlier detection", events=events)
    return StageStatus(ok=True, events=events)
