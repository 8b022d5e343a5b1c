"""
Final station usability decision.
"""

from gnss_qc.config import PreprocessingConfig
from gnss_qc.observations import median_sampling
from gnss_qc.receiver import Receiver, ReceiverState, UsabilityDecision


def is_usable_ratio(
    usable_epochs: int,
    observation_sampling: float,
    total_epochs: int,
    sampling: float,
    ratio: float,
) -> bool:
    """
    Whether enough epochs are estimable.

    Parameters
    ----------
    usable_epochs : int
        Number of usable epochs of the receiver
    observation_sampling : float
        Sampling of the receiver's observations in seconds
    total_epochs : int
        Number of epochs of the time axis
    sampling : float
        Median sampling of the time axis in seconds
    ratio : float
        Required ratio in [0, 1]

    Returns
    -------
    bool
        ``usable_epochs*observation_sampling >= ratio*total_epochs*sampling``,
        the boundary counts as usable

    Examples
    --------
    >>> is_usable_ratio(75, 30.0, 100, 30.0, 0.75)
    True
    >>> is_usable_ratio(74, 30.0, 100, 30.0, 0.75)
    False
    """
    return usable_epochs * observation_sampling >= ratio * total_epochs * sampling


def evaluate_usability(receiver: Receiver, config: PreprocessingConfig) -> UsabilityDecision:
    """
    Decide whether a receiver is kept.

    A receiver below ``min_estimable_epochs_ratio`` is disabled wholesale
    (no tracks are emitted), otherwise it becomes ``USABLE``.

    Parameters
    ----------
    receiver : Receiver
        Preprocessed receiver
    config : PreprocessingConfig
        Provides ``min_estimable_epochs_ratio``

    Returns
    -------
    UsabilityDecision
    """
    total = receiver.epoch_count
    usable_epochs = receiver.usable_epoch_count()
    usable = receiver.state != ReceiverState.DISABLED and is_usable_ratio(
        usable_epochs,
        receiver.observation_sampling,
        total,
        median_sampling(receiver.times),
        config.min_estimable_epochs_ratio,
    )
    if usable:
        receiver.state = ReceiverState.USABLE
    else:
        receiver.disable(
            reason=f"only {usable_epochs} of {total} epochs usable "
            f"(required ratio {config.min_estimable_epochs_ratio})"
        )
        usable_epochs = 0

    return UsabilityDecision(
        station=receiver.name,
        usable=usable,
        usable_epochs=usable_epochs,
        total_epochs=total,
        disabled_epochs=total - usable_epochs,
    )
