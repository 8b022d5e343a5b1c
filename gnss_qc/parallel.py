"""
Worker model for processing station networks.

Stations are distributed round robin over the workers, each worker owns its
stations exclusively. Workers run in separate processes; collecting all of
their results is the barrier after which station level vectors are summed
and broadcast back, so every worker ends up with identical global state.
"""

from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Callable, NamedTuple, Sequence

import numpy as np

from gnss_qc.config import MAX_WORKERS_PREPROCESSING
from gnss_qc.exceptions import AggregationError
from gnss_qc.receiver import DiagnosticEvent


class WorkerOutput(NamedTuple):
    """Result of one worker before synchronization."""

    rank: int
    local: np.ndarray
    """Station level vector, only entries of owned stations are set"""
    payload: dict[int, Any]
    """Result per owned station index"""
    events: list[DiagnosticEvent]


class WorkerState(NamedTuple):
    """Result of one worker after the global vector was broadcast."""

    rank: int
    payload: dict[int, Any]
    global_vector: np.ndarray


def round_robin(n_items: int, n_workers: int, rank: int) -> list[int]:
    """
    Indices owned by a worker.

    Examples
    --------
    >>> round_robin(7, 3, 1)
    [1, 4]
    """
    if n_workers < 1:
        raise ValueError(f"n_workers must be at least 1, got {n_workers}")
    return list(range(rank, n_items, n_workers))


def reduce_sum(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """
    Element-wise sum of the local vectors of all workers.

    Raises
    ------
    AggregationError
        If the vectors differ in shape
    """
    if not vectors:
        raise AggregationError("Nothing to reduce")
    shape = np.shape(vectors[0])
    for rank, vector in enumerate(vectors):
        if np.shape(vector) != shape:
            raise AggregationError(
                f"Worker {rank} contributed shape {np.shape(vector)}, expected {shape}"
            )
    return np.sum(np.stack(vectors), axis=0)


def broadcast(vector: np.ndarray, n_workers: int) -> list[np.ndarray]:
    """Independent copies of the global vector, one per worker."""
    return [np.array(vector, copy=True) for _ in range(n_workers)]


def run_partitioned(
    worker: Callable[..., WorkerOutput],
    items: Sequence,
    n_workers: int,
    *args,
) -> list[WorkerOutput]:
    """
    Run a worker function on each round robin partition.

    Parameters
    ----------
    worker : callable
        ``worker(rank, n_items, owned, *args) -> WorkerOutput`` where
        ``owned`` is a list of (index, item). Must be picklable.
    items : Sequence
        All items (stations)
    n_workers : int
        Number of partitions; a single worker runs in this process
    *args
        Passed on to the worker

    Returns
    -------
    list[WorkerOutput]
        Results ordered by rank

    Raises
    ------
    Exception
        Any exception raised by a worker terminates the run
    """
    partitions = [
        [(index, items[index]) for index in round_robin(len(items), n_workers, rank)]
        for rank in range(n_workers)
    ]
    if n_workers == 1:
        return [worker(0, len(items), partitions[0], *args)]

    results = [None] * n_workers
    with ProcessPoolExecutor(max_workers=min(n_workers, MAX_WORKERS_PREPROCESSING)) as executor:
        future_to_rank = {
            executor.submit(worker, rank, len(items), partition, *args): rank
            for rank, partition in enumerate(partitions)
        }
        for future in as_completed(future_to_rank):
            results[future_to_rank[future]] = future.result()
    return results


def synchronize(outputs: list[WorkerOutput]) -> list[WorkerState]:
    """Reduce the local vectors of all workers and broadcast the sum."""
    global_vector = reduce_sum([output.local for output in outputs])
    copies = broadcast(global_vector, len(outputs))
    return [
        WorkerState(rank=output.rank, payload=output.payload, global_vector=copy)
        for output, copy in zip(outputs, copies)
    ]
