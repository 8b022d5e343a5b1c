"""
Receiver data model.

A ``Receiver`` owns the per-epoch usability mask, the clock/position series
aligned to the shared time axis and the observations of every transmitter.
Tracks and slip events are derived data, rebuilt whenever upstream flags
change.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import numpy as np
from astropy.time import Time

from gnss_qc.observations import SatelliteObservations, median_sampling


class ReceiverState(Enum):
    """Lifecycle of a receiver within one processing run."""

    CANDIDATE = "candidate"
    UNDER_PREPROCESSING = "under_preprocessing"
    USABLE = "usable"
    DISABLED = "disabled"


@dataclass
class Track:
    """Contiguous run of epochs of one receiver-transmitter pair."""

    prn: str
    epochs: np.ndarray
    """Strictly increasing indices into the time axis"""
    tec: np.ndarray = field(default_factory=lambda: np.empty(0))
    """TEC-like combination in L1 cycles"""
    mw: np.ndarray = field(default_factory=lambda: np.empty(0))
    """MW-like combination in wide-lane cycles"""

    def __len__(self) -> int:
        return len(self.epochs)

    @property
    def first(self) -> int:
        return int(self.epochs[0])

    @property
    def last(self) -> int:
        return int(self.epochs[-1])

    def subset(self, mask: np.ndarray) -> "Track":
        """Track restricted to the selected epochs (combinations included)."""
        return Track(
            prn=self.prn,
            epochs=self.epochs[mask],
            tec=self.tec[mask] if len(self.tec) else self.tec,
            mw=self.mw[mask] if len(self.mw) else self.mw,
        )


class SlipEvent(NamedTuple):
    """Detected discontinuity within a track."""

    prn: str
    epoch: int
    """Time axis index of the first epoch after the jump"""
    jumps: tuple[int, int] | None = None
    """Integer jumps of L1 and L2 phase in cycles, None if not resolvable"""


class UsabilityDecision(NamedTuple):
    """Final station level decision."""

    station: str
    usable: bool
    usable_epochs: int
    total_epochs: int
    disabled_epochs: int


class DiagnosticEvent(NamedTuple):
    """Structured diagnostic returned by the stages."""

    station: str
    stage: str
    reason: str
    count: int = 1


class StageStatus(NamedTuple):
    """Outcome of one pipeline stage."""

    ok: bool
    reason: str | None = None
    events: tuple[DiagnosticEvent, ...] = ()
    """Epoch or track level diagnostics of the stage"""


@dataclass
class Receiver:
    """One ground station."""

    name: str
    times: Time
    approx_position: np.ndarray
    observations: dict[str, SatelliteObservations]
    observation_sampling: float = 0.0
    usable: np.ndarray | None = None
    clock: np.ndarray | None = None
    position: np.ndarray | None = None
    state: ReceiverState = ReceiverState.CANDIDATE
    disable_reason: str | None = None
    tracks: dict[str, list[Track]] = field(default_factory=dict)

    def __post_init__(self):
        n_epochs = len(self.times)
        self.approx_position = np.asarray(self.approx_position, dtype=float)
        if self.usable is None:
            # epochs without any observation carry no information
            has_data = np.zeros(n_epochs, dtype=bool)
            for obs in self.observations.values():
                has_data |= np.any(obs.valid, axis=1)
            self.usable = has_data
        if self.clock is None:
            self.clock = np.zeros(n_epochs)
        if self.position is None:
            self.position = np.tile(self.approx_position, (n_epochs, 1))
        if not self.observation_sampling:
            self.observation_sampling = median_sampling(self.times)

    @property
    def epoch_count(self) -> int:
        return len(self.times)

    def useable(self, epoch: int | None = None) -> bool:
        """Whether the receiver (or one of its epochs) can be used."""
        if self.state == ReceiverState.DISABLED:
            return False
        if epoch is None:
            return bool(np.any(self.usable))
        return bool(self.usable[epoch])

    def usable_epoch_count(self) -> int:
        return int(np.count_nonzero(self.usable))

    def disable(self, epoch: int | np.ndarray | None = None, reason: str | None = None):
        """
        Disable one or more epochs, or the whole receiver.

        Parameters
        ----------
        epoch : int or np.ndarray, optional
            Epoch index (or indices / boolean mask). If None the receiver is
            disabled wholesale, which is terminal.
        reason : str, optional
            Why the whole receiver was disabled
        """
        if epoch is not None:
            self.usable[epoch] = False
            return
        self.usable[:] = False
        self.tracks = {}
        self.state = ReceiverState.DISABLED
        if self.disable_reason is None:
            self.disable_reason = reason

    def invalidate(self, prn: str, epochs: np.ndarray, columns=None):
        """Flag observations of one transmitter as invalid."""
        obs = self.observations[prn]
        if columns is None:
            obs.valid[epochs] = False
        else:
            for column in columns:
                obs.valid[epochs, column] = False

    def track_count(self) -> int:
        return sum(len(tracks) for tracks in self.tracks.values())


def collect_events(station: str, stage: str, counts: dict[str, int]) -> tuple[DiagnosticEvent, ...]:
    """Turn reason counters of a stage into diagnostic events (zero counts skipped)."""
    return tuple(
        DiagnosticEvent(station, stage, reason, count)
        for reason, count in counts.items()
        if count
    )
