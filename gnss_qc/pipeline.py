"""
Preprocessing of single stations and of station networks.

Per station the stages run in a fixed order; a stage that leaves the
station without data disables it, errors are converted into a disabled
station instead of aborting the run.
"""

import logging
from typing import Iterator, NamedTuple, Optional

import numpy as np

from gnss_qc.clock import disable_gross_code_outliers, estimate_initial_clock
from gnss_qc.config import PreprocessingConfig
from gnss_qc.cycle_slips import detect_cycle_slips, repair_cycle_slips
from gnss_qc.dumps import write_tracks
from gnss_qc.equations import ObservationEquations, ReduceModelsFunction, RotationFunction
from gnss_qc.exceptions import AggregationError, ConfigurationError
from gnss_qc.logger import report_events
from gnss_qc.parallel import WorkerOutput, WorkerState, run_partitioned, synchronize
from gnss_qc.receiver import (
    DiagnosticEvent,
    Receiver,
    ReceiverState,
    SlipEvent,
    StageStatus,
    UsabilityDecision,
)
from gnss_qc.track_outliers import detect_track_outliers
from gnss_qc.tracks import create_tracks, remove_low_elevation_tracks
from gnss_qc.usability import evaluate_usability

logger = logging.getLogger(__name__)


class StationResult(NamedTuple):
    """Outcome of preprocessing one station."""

    receiver: Receiver
    decision: UsabilityDecision
    events: list[DiagnosticEvent]
    slips: list[SlipEvent]
    """Slips detected in the station's tracks"""
    usable_history: list[tuple[str, int]]
    """Usable epoch count after each stage"""


class NetworkResult(NamedTuple):
    """Outcome of preprocessing a station network."""

    stations: list[StationResult]
    """Per station, in input order"""
    worker_states: list[WorkerState]
    """Per worker, each holding the broadcast disabled-station vector"""
    disabled_count: int
    disabled_epochs: int


def _stages(
    receiver: Receiver,
    transmitters: list,
    config: PreprocessingConfig,
    rotation_crf2trf: Optional[RotationFunction],
    reduce_models: Optional[ReduceModelsFunction],
    slips: list[SlipEvent],
) -> Iterator[tuple[str, StageStatus]]:
    """Run the stages one by one, yielding the status of each."""
    equations = ObservationEquations.build(
        receiver, transmitters, rotation_crf2trf, reduce_models, config.elevation_cutoff
    )
    yield "clock", estimate_initial_clock(receiver, equations, config)
    yield "gross_outliers", disable_gross_code_outliers(receiver, config)
    yield "tracks", create_tracks(receiver, config.min_obs_count_per_track)
    write_tracks(config.track_file_before, receiver)

    status, detected = detect_cycle_slips(receiver, config)
    slips.extend(detected)
    yield "cycle_slip_detection", status
    yield "track_filter", remove_low_elevation_tracks(
        receiver, equations, config.elevation_track_minimum
    )
    yield "track_outliers", detect_track_outliers(receiver, config, slips)
    yield "cycle_slip_repair", repair_cycle_slips(receiver, slips, config)
    write_tracks(config.track_file_after, receiver)


def preprocess_station(
    receiver: Receiver,
    transmitters: list,
    config: PreprocessingConfig,
    rotation_crf2trf: Optional[RotationFunction] = None,
    reduce_models: Optional[ReduceModelsFunction] = None,
) -> StationResult:
    """
    Preprocess the observations of one station.

    Stages: initial clock, gross code outliers, track segmentation, cycle
    slip detection, low elevation track filter, track outliers, cycle slip
    repair and the final usability decision.

    Parameters
    ----------
    receiver : Receiver
        Station observations, modified in place
    transmitters : list
        Transmitter objects, see ``ObservationEquations.build``
    config : PreprocessingConfig
        Thresholds of the run
    rotation_crf2trf : callable, optional
        Celestial to terrestrial rotation
    reduce_models : callable, optional
        Additional model corrections in meters

    Returns
    -------
    StationResult
        The receiver, its usability decision and the diagnostics

    Raises
    ------
    ConfigurationError, AggregationError
        Fatal for the whole run, any other error disables the station
    """
    receiver.state = ReceiverState.UNDER_PREPROCESSING
    events: list[DiagnosticEvent] = []
    slips: list[SlipEvent] = []
    history = [("initial", receiver.usable_epoch_count())]
    try:
        for stage, status in _stages(
            receiver, transmitters, config, rotation_crf2trf, reduce_models, slips
        ):
            events.extend(status.events)
            history.append((stage, receiver.usable_epoch_count()))
            if not status.ok:
                receiver.disable(reason=f"{stage}: {status.reason}")
                break
    except (ConfigurationError, AggregationError):
        raise
    except Exception as e:
        receiver.disable(reason=f"{type(e).__name__}: {e}")
        events.append(DiagnosticEvent(receiver.name, "preprocessing", str(e)))

    decision = evaluate_usability(receiver, config)
    history.append(("usability", receiver.usable_epoch_count()))
    return StationResult(
        receiver=receiver,
        decision=decision,
        events=events,
        slips=slips,
        usable_history=history,
    )


def _preprocess_partition(
    rank: int,
    n_stations: int,
    owned: list[tuple[int, Receiver]],
    transmitters: list,
    config: PreprocessingConfig,
    rotation_crf2trf: Optional[RotationFunction],
    reduce_models: Optional[ReduceModelsFunction],
) -> WorkerOutput:
    """Preprocess the stations owned by one worker."""
    disabled = np.zeros(n_stations)
    payload = {}
    events = []
    for index, receiver in owned:
        result = preprocess_station(
            receiver, transmitters, config, rotation_crf2trf, reduce_models
        )
        disabled[index] = 0.0 if result.decision.usable else 1.0
        payload[index] = result
        events.extend(result.events)
    return WorkerOutput(rank=rank, local=disabled, payload=payload, events=events)


def preprocess_network(
    receivers: list[Receiver],
    transmitters: list,
    config: PreprocessingConfig,
    n_workers: int = 1,
    rotation_crf2trf: Optional[RotationFunction] = None,
    reduce_models: Optional[ReduceModelsFunction] = None,
) -> NetworkResult:
    """
    Preprocess all stations of a network in parallel.

    Stations are distributed round robin over ``n_workers`` processes. After
    all workers finished, the disabled-station flags are summed and
    broadcast so every worker sees the same global state.

    Parameters
    ----------
    receivers : list[Receiver]
        Stations of the network
    transmitters : list
        Transmitter objects (must be picklable for more than one worker)
    config : PreprocessingConfig
        Thresholds of the run, validated before any station is processed
    n_workers : int, optional
        Number of workers
    rotation_crf2trf, reduce_models : callable, optional
        Passed on to ``preprocess_station`` (must be picklable)

    Returns
    -------
    NetworkResult
        Station results in input order and the synchronized worker states

    Examples
    --------
    >>> result = preprocess_network(receivers, transmitters, PreprocessingConfig(), n_workers=4)
    >>> usable = [s.receiver for s in result.stations if s.decision.usable]
    """
    config.validate()
    outputs = run_partitioned(
        _preprocess_partition,
        receivers,
        n_workers,
        transmitters,
        config,
        rotation_crf2trf,
        reduce_models,
    )
    states = synchronize(outputs)

    payload = {}
    events = []
    for output in outputs:
        payload.update(output.payload)
        events.extend(output.events)
    stations = [payload[index] for index in range(len(receivers))]

    report_events(events, logger)
    for result in stations:
        if not result.decision.usable:
            logger.warning("%s disabled: %s", result.decision.station, result.receiver.disable_reason)

    disabled_count = int(states[0].global_vector.sum()) if states else 0
    disabled_epochs = sum(result.decision.disabled_epochs for result in stations)
    logger.info(
        "%d of %d stations disabled, %d epochs disabled",
        disabled_count,
        len(receivers),
        disabled_epochs,
    )
    return NetworkResult(
        stations=stations,
        worker_states=states,
        disabled_count=disabled_count,
        disabled_epochs=disabled_epochs,
    )
