"""
Robust least squares with Huber weighting.

Used by the initial clock estimation and the track outlier detection.
"""

from typing import NamedTuple

import numpy as np
import scipy.linalg

from gnss_qc.config import (
    MAD_SCALE,
    MAX_ROBUST_ITERATIONS,
    ROBUST_WEIGHT_TOLERANCE,
    SIGMA0_FLOOR,
)


class RobustSolution(NamedTuple):
    """Result of an iteratively reweighted least squares adjustment."""

    x: np.ndarray
    """Estimated parameters"""
    residuals: np.ndarray
    """Observations minus adjusted model"""
    weights: np.ndarray
    """Final Huber weights"""
    sigma0: float
    """A-posteriori standard deviation of unit weight"""
    iterations: int
    converged: bool


def huber_weights(
    normalized_residuals: np.ndarray, huber: float, huber_power: float
) -> np.ndarray:
    """
    Huber weights of residuals given in units of sigma0.

    Parameters
    ----------
    normalized_residuals : np.ndarray
        Residuals divided by sigma0
    huber : float
        Residuals above huber (in sigma0) are downweighted
    huber_power : float
        Exponent of the downweighting

    Returns
    -------
    np.ndarray
        1 for ``|e| <= huber``, ``(huber/|e|)**huber_power`` otherwise

    Notes
    -----
    The weight is continuous at ``|e| = huber`` and monotone
    non-increasing in ``|e|``.

    Examples
    --------
    >>> huber_weights(np.array([0.0, 2.5, 5.0]), huber=2.5, huber_power=1.0)
    array([1. , 1. , 0.5])
    """
    e = np.abs(np.asarray(normalized_residuals, dtype=float))
    weights = np.ones_like(e)
    outside = e > huber
    weights[outside] = (huber / e[outside]) ** huber_power
    return weights


def aposteriori_sigma(residuals: np.ndarray, weights: np.ndarray) -> float:
    """Robust a-posteriori standard deviation of the weighted residuals."""
    weighted = np.sqrt(weights) * np.abs(residuals)
    if weighted.size == 0:
        return SIGMA0_FLOOR
    return max(MAD_SCALE * float(np.median(weighted)), SIGMA0_FLOOR)


def robust_least_squares(
    A: np.ndarray,
    l: np.ndarray,
    huber: float,
    huber_power: float,
    max_iterations: int = MAX_ROBUST_ITERATIONS,
    tolerance: float = ROBUST_WEIGHT_TOLERANCE,
) -> RobustSolution:
    """
    Iteratively reweighted least squares.

    Parameters
    ----------
    A : np.ndarray
        Design matrix [n_obs, n_parameters]
    l : np.ndarray
        Observation vector [n_obs]
    huber : float
        Huber threshold in units of sigma0
    huber_power : float
        Exponent of the downweighting
    max_iterations : int, optional
        Iteration cap
    tolerance : float, optional
        Stop when no weight changes by more than this

    Returns
    -------
    RobustSolution
        Parameters, residuals, weights and sigma0

    Raises
    ------
    ValueError
        If there are fewer observations than parameters
    """
    A = np.atleast_2d(np.asarray(A, dtype=float))
    l = np.asarray(l, dtype=float)
    n_obs, n_par = A.shape
    if n_obs < n_par:
        raise ValueError(f"Underdetermined system: {n_obs} observations, {n_par} parameters")

    weights = np.ones(n_obs)
    converged = False
    iteration = 0
    for iteration in range(1, max_iterations + 1):
        sqrt_w = np.sqrt(weights)
        x, *_ = scipy.linalg.lstsq(A * sqrt_w[:, np.newaxis], l * sqrt_w)
        residuals = l - A @ x
        sigma0 = aposteriori_sigma(residuals, weights)
        new_weights = huber_weights(residuals / sigma0, huber, huber_power)
        change = np.max(np.abs(new_weights - weights))
        weights = new_weights
        if change < tolerance:
            converged = True
            break

    return RobustSolution(
        x=x,
        residuals=residuals,
        weights=weights,
        sigma0=sigma0,
        iterations=iteration,
        converged=converged,
    )
