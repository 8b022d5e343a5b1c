"""
Initial receiver clock estimation and gross code outlier rejection.
"""

import numpy as np

from gnss_qc.config import GROSS_OUTLIER_RATIO, PreprocessingConfig
from gnss_qc.equations import ObservationEquations
from gnss_qc.observations import CODE_COLUMNS
from gnss_qc.receiver import Receiver, StageStatus, collect_events
from gnss_qc.robust import robust_least_squares


def estimate_initial_clock(
    receiver: Receiver, equations: ObservationEquations, config: PreprocessingConfig
) -> StageStatus:
    """
    Estimate the receiver clock per epoch from code observations.

    Robust least squares on the ionosphere-free code combination of every
    usable epoch. The unknown is the clock error in meters, optionally
    together with a kinematic position correction. Epochs without enough
    observations, with a failing solver or with a position further than
    ``code_max_position_diff`` from the approximate position are disabled.

    Parameters
    ----------
    receiver : Receiver
        Receiver, its clock and position are updated in place
    equations : ObservationEquations
        Reduced observations of the receiver
    config : PreprocessingConfig
        Huber parameters and position threshold

    Returns
    -------
    StageStatus
        Failed if no epoch could be solved
    """
    n_parameters = 4 if config.estimate_position else 1
    counts = {"too few code observations": 0, "solver failed": 0, "position too far": 0}

    for epoch in np.flatnonzero(receiver.usable):
        _, l, los = equations.code_observations(epoch)
        if len(l) < n_parameters:
            receiver.disable(epoch)
            counts["too few code observations"] += 1
            continue

        if config.estimate_position:
            A = np.column_stack([-los, np.ones(len(l))])
        else:
            A = np.ones((len(l), 1))

        try:
            solution = robust_least_squares(A, l, config.huber, config.huber_power)
        except (ValueError, np.linalg.LinAlgError):
            receiver.disable(epoch)
            counts["solver failed"] += 1
            continue

        if config.estimate_position:
            dpos = solution.x[:3]
            if np.linalg.norm(dpos) > config.code_max_position_diff:
                receiver.disable(epoch)
                counts["position too far"] += 1
                continue
            receiver.position[epoch] = receiver.approx_position + dpos
        receiver.clock[epoch] = solution.x[-1]

    equations.update_residuals()
    events = collect_events(receiver.name, "clock", counts)
    if receiver.usable_epoch_count() == 0:
        return StageStatus(ok=False, reason="no epoch with a code solution", events=events)
    return StageStatus(ok=True, events=events)


def disable_gross_code_outliers(
    receiver: Receiver,
    config: PreprocessingConfig,
    outlier_ratio: float = GROSS_OUTLIER_RATIO,
) -> StageStatus:
    """
    Reject code observations with gross residuals.

    Code observations whose residual exceeds ``code_max_position_diff`` are
    invalidated. An epoch is disabled if more than ``outlier_ratio`` of its
    code observations are outliers.

    Parameters
    ----------
    receiver : Receiver
        Receiver with residuals from the initial clock estimation
    config : PreprocessingConfig
        Provides the threshold ``code_max_position_diff`` in meters
    outlier_ratio : float, optional
        Tolerated fraction of outliers per epoch

    Returns
    -------
    StageStatus
        Failed if no usable epoch is left
    """
    threshold = config.code_max_position_diff
    n_epochs = receiver.epoch_count
    count = np.zeros(n_epochs, dtype=int)
    outliers = np.zeros(n_epochs, dtype=int)

    flagged = {}
    for prn, obs in receiver.observations.items():
        code_valid = obs.valid[:, CODE_COLUMNS]
        is_outlier = code_valid & (np.abs(obs.residuals[:, CODE_COLUMNS]) > threshold)
        count += np.sum(code_valid, axis=1)
        outliers += np.sum(is_outlier, axis=1)
        flagged[prn] = is_outlier

    disabled = receiver.usable & (outliers > outlier_ratio * count)
    receiver.disable(disabled)

    invalidated = 0
    for prn, is_outlier in flagged.items():
        is_outlier &= receiver.usable[:, np.newaxis]
        for k, column in enumerate(CODE_COLUMNS):
            receiver.observations[prn].valid[is_outlier[:, k], column] = False
        invalidated += int(np.count_nonzero(is_outlier))

    events = collect_events(
        receiver.name,
        "gross_outliers",
        {"epoch disabled": int(np.count_nonzero(disabled)), "code observation invalidated": invalidated},
    )
    if receiver.usable_epoch_count() == 0:
        return StageStatus(ok=False, reason="all epochs with gross code outliers", events=events)
    return StageStatus(ok=True, events=events)
