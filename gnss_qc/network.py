"""
Selection of stations from lists of alternatives.

Each row of a station list names one or more alternative stations (e.g.
co-located receivers). The first alternative that can be loaded and has
enough usable epochs is chosen.
"""

import logging
from typing import Callable, NamedTuple, Optional

import numpy as np
from astropy.time import Time

from gnss_qc.config import PreprocessingConfig
from gnss_qc.exceptions import AggregationError, ConfigurationError
from gnss_qc.logger import report_events
from gnss_qc.observations import median_sampling
from gnss_qc.parallel import WorkerOutput, run_partitioned, synchronize
from gnss_qc.receiver import DiagnosticEvent, Receiver
from gnss_qc.usability import is_usable_ratio

logger = logging.getLogger(__name__)


class StationSelection(NamedTuple):
    receivers: list[Receiver]
    """Chosen receivers in station list order"""
    chosen: np.ndarray
    """1-based index of the chosen alternative per row, 0 = none"""
    events: list[DiagnosticEvent]


def _select_partition(
    rank: int,
    n_rows: int,
    owned: list[tuple[int, list[str]]],
    load_receiver: Callable[[str], Receiver],
    times: Time,
    config: PreprocessingConfig,
) -> WorkerOutput:
    """Try the alternatives of the rows owned by one worker."""
    chosen = np.zeros(n_rows)
    payload = {}
    events = []
    sampling = median_sampling(times)
    for index, alternatives in owned:
        for k, name in enumerate(alternatives):
            try:
                receiver = load_receiver(name)
            except (ConfigurationError, AggregationError):
                raise
            except Exception as e:
                events.append(DiagnosticEvent(name, "selection", f"not loaded: {e}"))
                continue
            if not is_usable_ratio(
                receiver.usable_epoch_count(),
                receiver.observation_sampling,
                len(times),
                sampling,
                config.min_estimable_epochs_ratio,
            ):
                events.append(DiagnosticEvent(name, "selection", "too few usable epochs"))
                continue
            chosen[index] = k + 1
            payload[index] = receiver
            break
    return WorkerOutput(rank=rank, local=chosen, payload=payload, events=events)


def select_station_alternatives(
    station_list: list[list[str]],
    load_receiver: Callable[[str], Receiver],
    times: Time,
    config: PreprocessingConfig,
    n_workers: int = 1,
    max_station_count: Optional[int] = None,
) -> StationSelection:
    """
    Choose one station per row of alternatives.

    Parameters
    ----------
    station_list : list[list[str]]
        Alternatives per row, in order of preference
    load_receiver : callable
        Loads a station by name, e.g.
        ``functools.partial(load_station, template=..., times=..., config=...)``.
        Must be picklable for more than one worker.
    times : Time
        Shared time axis
    config : PreprocessingConfig
        Provides ``min_estimable_epochs_ratio``
    n_workers : int, optional
        Number of workers
    max_station_count : int, optional
        Keep at most this many stations (in list order)

    Returns
    -------
    StationSelection
        Chosen receivers and the broadcast choice vector
    """
    outputs = run_partitioned(
        _select_partition, station_list, n_workers, load_receiver, times, config
    )
    states = synchronize(outputs)
    chosen = states[0].global_vector.astype(int)

    payload = {}
    events = []
    for output in outputs:
        payload.update(output.payload)
        events.extend(output.events)
    receivers = [payload[index] for index in range(len(station_list)) if chosen[index] > 0]
    if max_station_count is not None:
        receivers = receivers[:max_station_count]

    report_events(events, logger)
    logger.info("%d of %d stations selected", len(receivers), len(station_list))
    return StationSelection(receivers=receivers, chosen=chosen, events=events)
