"""
Cycle slip detection and repair.

Detection works on the TEC-like and MW-like combinations of each track,
see ``gnss_qc.combinations``. Each candidate boundary is confirmed by
estimating the integer jumps of both phases; confirmed slips are handed to
the repairer as ``SlipEvent`` records. Repair corrects the phase of all
later epochs of the track, splitting the track is the fallback.
"""

from itertools import product
from typing import Optional

import numpy as np

from gnss_qc.combinations import (
    jump_coefficients,
    moving_median,
    moving_sigma,
    total_variation_denoise,
    update_combinations,
)
from gnss_qc.config import (
    MAD_SCALE,
    MIN_SLIP_SEGMENT,
    MW_CLOSURE_TOLERANCE,
    REPAIR_FIT_WINDOW,
    SIGMA0_FLOOR,
    TEC_CLOSURE_TOLERANCE,
    PreprocessingConfig,
)
from gnss_qc.observations import PHASE_COLUMNS
from gnss_qc.receiver import Receiver, SlipEvent, StageStatus, Track, collect_events
from gnss_qc.tracks import drop_track, set_tracks

# Integer search radius around the rounded float jumps
_SEARCH_RADIUS = 2


# ============================================================================
# Detection
# ============================================================================


def _tec_candidates(tec: np.ndarray, config: PreprocessingConfig) -> tuple[np.ndarray, np.ndarray]:
    """Positions (first epoch after the step) and strength of TEC-like steps."""
    steps = np.diff(tec)
    window = config.tec_window_size
    if window > 0 and len(tec) >= window:
        # moving median step is the local ionospheric trend
        detrended = steps - moving_median(steps, window)
        statistic = np.abs(detrended)
        scale = moving_sigma(detrended, window)
    else:
        statistic = np.abs(steps - np.median(steps))
        scale = max(MAD_SCALE * float(np.median(statistic)), SIGMA0_FLOOR)
    strength = statistic / (config.tec_sigma_factor * scale)
    positions = np.flatnonzero(strength > 1.0) + 1
    return positions, strength[positions - 1]


def _mw_candidates(mw: np.ndarray, config: PreprocessingConfig) -> np.ndarray:
    """Positions where the denoised MW-like combination jumps by whole cycles."""
    denoised = total_variation_denoise(mw, config.denoising_lambda)
    return np.flatnonzero(np.round(np.diff(denoised)) != 0) + 1


def find_slip_candidates(track: Track, config: PreprocessingConfig) -> list[int]:
    """
    Candidate slip boundaries of a track.

    Parameters
    ----------
    track : Track
        Track with combinations
    config : PreprocessingConfig
        Denoising and TEC window parameters

    Returns
    -------
    list[int]
        Track positions of the first epoch after each candidate jump, sorted.
        Candidates of both combinations within one epoch are merged, the
        TEC-like position is preferred since phase is more precise.
    """
    if len(track) < 2:
        return []

    tec_positions, tec_strength = _tec_candidates(track.tec, config)
    mw_positions = _mw_candidates(track.mw, config)

    # priority: TEC-like by strength, then MW-like
    priority = {int(pos): 1.0 for pos in mw_positions}
    for pos, strength in zip(tec_positions, tec_strength):
        priority[int(pos)] = 1.0 + float(strength)

    merged = []
    group = []
    for pos in sorted(priority):
        if group and pos - group[-1] > 1:
            merged.append(max(group, key=lambda p: priority[p]))
            group = []
        group.append(pos)
    if group:
        merged.append(max(group, key=lambda p: priority[p]))
    return merged


def estimate_float_jump(
    track: Track, position: int, lower: int = 0, upper: Optional[int] = None
) -> Optional[tuple[float, float]]:
    """
    Float jumps of both combinations across a boundary.

    Parameters
    ----------
    track : Track
        Track with combinations
    position : int
        Track position of the first epoch after the jump
    lower, upper : int, optional
        Track positions bounding the segments used on both sides (e.g.
        neighbouring slips)

    Returns
    -------
    tuple[float, float] or None
        MW-like jump (segment medians) and TEC-like jump (linear fits of up
        to REPAIR_FIT_WINDOW epochs evaluated at the boundary), None if a
        side is shorter than MIN_SLIP_SEGMENT
    """
    upper = len(track) if upper is None else upper
    if position - lower < MIN_SLIP_SEGMENT or upper - position < MIN_SLIP_SEGMENT:
        return None

    mw_jump = np.median(track.mw[position:upper]) - np.median(track.mw[lower:position])

    epochs = track.epochs.astype(float)
    boundary = 0.5 * (epochs[position - 1] + epochs[position])
    before = slice(max(lower, position - REPAIR_FIT_WINDOW), position)
    after = slice(position, min(upper, position + REPAIR_FIT_WINDOW))
    fit_before = np.polyfit(epochs[before] - boundary, track.tec[before], 1)
    fit_after = np.polyfit(epochs[after] - boundary, track.tec[after], 1)
    tec_jump = fit_after[-1] - fit_before[-1]
    return float(mw_jump), float(tec_jump)


def estimate_integer_jump(
    prn: str, mw_jump: float, tec_jump: float
) -> Optional[tuple[int, int]]:
    """
    Integer phase jumps explaining the jumps of both combinations.

    Parameters
    ----------
    prn : str
        Transmitter identifier, defines the frequencies
    mw_jump : float
        Jump of the MW-like combination in wide-lane cycles
    tec_jump : float
        Jump of the TEC-like combination in L1 cycles

    Returns
    -------
    tuple[int, int] or None
        Jumps (n1, n2) of L1 and L2 phase in cycles, None if no integer pair
        closes both combinations within MW_CLOSURE_TOLERANCE and
        TEC_CLOSURE_TOLERANCE
    """
    coefficients = jump_coefficients(prn)
    observed = np.array([mw_jump, tec_jump])
    tolerance = np.array([MW_CLOSURE_TOLERANCE, TEC_CLOSURE_TOLERANCE])
    float_jump = np.linalg.solve(coefficients, observed)
    center = np.round(float_jump).astype(int)

    offsets = range(-_SEARCH_RADIUS, _SEARCH_RADIUS + 1)
    candidates = [center + (d1, d2) for d1, d2 in product(offsets, offsets)]
    misfits = [(observed - coefficients @ candidate) / tolerance for candidate in candidates]
    best = int(np.argmin([np.sum(misfit**2) for misfit in misfits]))
    if np.any(np.abs(misfits[best]) > 1.0):
        return None
    n1, n2 = candidates[best]
    return int(n1), int(n2)


def detect_cycle_slips(
    receiver: Receiver, config: PreprocessingConfig
) -> tuple[StageStatus, list[SlipEvent]]:
    """
    Detect cycle slips in all tracks of a receiver.

    Parameters
    ----------
    receiver : Receiver
        Receiver with tracks
    config : PreprocessingConfig
        Detection parameters

    Returns
    -------
    tuple[StageStatus, list[SlipEvent]]
        Status and the confirmed slips. Candidates resolving to a zero jump
        are discarded, unresolvable ones are returned with ``jumps=None``.
    """
    slips = []
    rejected = 0
    for prn in sorted(receiver.tracks):
        for track in receiver.tracks[prn]:
            positions = find_slip_candidates(track, config)
            bounds = [0] + positions + [len(track)]
            for k, position in enumerate(positions):
                float_jump = estimate_float_jump(track, position, bounds[k], bounds[k + 2])
                jumps = None if float_jump is None else estimate_integer_jump(prn, *float_jump)
                if jumps == (0, 0):
                    rejected += 1
                    continue
                slips.append(SlipEvent(prn, int(track.epochs[position]), jumps))

    events = collect_events(
        receiver.name,
        "cycle_slip_detection",
        {"slip detected": len(slips), "candidate rejected": rejected},
    )
    return StageStatus(ok=True, events=events), slips


# ============================================================================
# Repair
# ============================================================================


def _apply_jump(receiver: Receiver, track: Track, position: int, jumps: tuple[int, int], sign: int = -1):
    values = receiver.observations[track.prn].values
    later = track.epochs[position:]
    for column, jump in zip(PHASE_COLUMNS, jumps):
        values[later, column] += sign * jump


def _split(track: Track, positions: list[int]) -> list[Track]:
    bounds = [0] + sorted(set(positions)) + [len(track)]
    pieces = []
    for start, end in zip(bounds[:-1], bounds[1:]):
        mask = np.zeros(len(track), dtype=bool)
        mask[start:end] = True
        pieces.append(track.subset(mask))
    return pieces


def _repair_track(
    receiver: Receiver, track: Track, slips: list[SlipEvent], min_obs_count: int, counts: dict
) -> list[Track]:
    """Repair the slips of one track, returns the resulting tracks."""
    positions = [int(np.searchsorted(track.epochs, slip.epoch)) for slip in slips]
    bounds = [0] + positions + [len(track)]
    split_at = []
    for k, (slip, position) in enumerate(zip(slips, positions)):
        if position <= 0 or position >= len(track):
            continue
        if slip.jumps is None:
            split_at.append(position)
            continue

        _apply_jump(receiver, track, position, slip.jumps)
        update_combinations(receiver, track)
        remaining = estimate_float_jump(track, position, bounds[k], bounds[k + 2])
        if remaining is not None and (
            abs(remaining[0]) < MW_CLOSURE_TOLERANCE and abs(remaining[1]) < TEC_CLOSURE_TOLERANCE
        ):
            counts["slip repaired"] += 1
            continue

        _apply_jump(receiver, track, position, slip.jumps, sign=+1)
        update_combinations(receiver, track)
        split_at.append(position)

    kept = []
    for piece in _split(track, split_at):
        if len(piece) >= min_obs_count:
            kept.append(update_combinations(receiver, piece))
        else:
            drop_track(receiver, piece)
            counts["short piece dropped"] += 1
    counts["track split"] += len(split_at)
    return kept


def repair_cycle_slips(
    receiver: Receiver, slips: list[SlipEvent], config: PreprocessingConfig
) -> StageStatus:
    """
    Repair detected cycle slips, splitting tracks where repair fails.

    Each slip is corrected by subtracting the integer jumps from the L1/L2
    phase of all later epochs of its track. The correction is kept only if
    the recomputed combinations no longer jump. Slips of removed tracks are
    ignored.

    Parameters
    ----------
    receiver : Receiver
        Receiver with tracks, phases are corrected in place
    slips : list[SlipEvent]
        Output of ``detect_cycle_slips``
    config : PreprocessingConfig
        Provides ``min_obs_count_per_track`` for split pieces

    Returns
    -------
    StageStatus
        Failed if no track is left
    """
    counts = {"slip repaired": 0, "track split": 0, "short piece dropped": 0}
    for prn in list(receiver.tracks):
        pending = sorted((s for s in slips if s.prn == prn), key=lambda s: s.epoch)
        if not pending:
            continue
        tracks = []
        for track in receiver.tracks[prn]:
            own = [s for s in pending if track.first < s.epoch <= track.last]
            if own:
                tracks.extend(
                    _repair_track(receiver, track, own, config.min_obs_count_per_track, counts)
                )
            else:
                tracks.append(track)
        set_tracks(receiver, prn, tracks)

    events = collect_events(receiver.name, "cycle_slip_repair", counts)
    if not receiver.tracks:
        return StageStatus(ok=False, reason="no tracks after cycle slip repair", events=events)
    return StageStatus(ok=True, events=events)
