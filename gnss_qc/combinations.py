"""
Dual-frequency linear combinations and denoising used for cycle slip
detection.

The TEC-like combination is the geometry-free phase in cycles of the first
frequency, the MW-like combination is the Melbourne-Wuebbena combination in
wide-lane cycles. Both are free of geometry, clocks and (MW-like)
ionosphere, so they can be computed from the raw observations.
"""

import numpy as np
from scipy.ndimage import median_filter

from gnss_qc.config import MAD_SCALE, SIGMA0_FLOOR, SPEED_OF_LIGHT
from gnss_qc.observations import C1, C2, L1, L2, get_frequencies
from gnss_qc.receiver import Receiver, Track


def tec_like(prn: str, l1: np.ndarray, l2: np.ndarray) -> np.ndarray:
    """
    Geometry-free phase combination.

    Parameters
    ----------
    prn : str
        Transmitter identifier (constellation letter first)
    l1 : np.ndarray
        Carrier phase for frequency f1 (in cycles)
    l2 : np.ndarray
        Carrier phase for frequency f2 (in cycles)

    Returns
    -------
    np.ndarray
        ``(l1*wl1 - l2*wl2) / wl1`` in cycles of f1, proportional to the
        slant TEC with an arbitrary bias

    Examples
    --------
    >>> tec_like("G01", np.array([1.0]), np.array([0.0]))
    array([1.])
    """
    f1, f2 = get_frequencies(prn)
    return l1 - l2 * f1 / f2


def mw_like(
    prn: str, c1: np.ndarray, c2: np.ndarray, l1: np.ndarray, l2: np.ndarray
) -> np.ndarray:
    """
    Melbourne-Wuebbena combination.

    Parameters
    ----------
    prn : str
        Transmitter identifier
    c1, c2 : np.ndarray
        Pseudoranges in meters
    l1, l2 : np.ndarray
        Carrier phases in cycles

    Returns
    -------
    np.ndarray
        Wide-lane phase minus narrow-lane code in wide-lane cycles
    """
    f1, f2 = get_frequencies(prn)
    wide_lane = SPEED_OF_LIGHT / (f1 - f2)
    narrow_lane_code = (f1 * c1 + f2 * c2) / (f1 + f2)
    return (l1 - l2) - narrow_lane_code / wide_lane


def jump_coefficients(prn: str) -> np.ndarray:
    """
    Effect of integer phase jumps on the combinations.

    Returns
    -------
    np.ndarray
        [2, 2] matrix mapping (n1, n2) to (MW-like, TEC-like) jumps
    """
    f1, f2 = get_frequencies(prn)
    return np.array([[1.0, -1.0], [1.0, -f1 / f2]])


def update_combinations(receiver: Receiver, track: Track) -> Track:
    """Recompute the combinations of a track from the current observations."""
    values = receiver.observations[track.prn].values[track.epochs]
    track.tec = tec_like(track.prn, values[:, L1], values[:, L2])
    track.mw = mw_like(track.prn, values[:, C1], values[:, C2], values[:, L1], values[:, L2])
    return track


def total_variation_denoise(y: np.ndarray, lam: float) -> np.ndarray:
    """
    Total variation denoising of a 1-D signal.

    Solves ``min_x 0.5*||y - x||^2 + lam * sum|x[k+1] - x[k]|`` exactly with
    the direct taut-string algorithm of Condat (2013).

    Parameters
    ----------
    y : np.ndarray
        Noisy signal
    lam : float
        Regularization parameter (0 returns the input)

    Returns
    -------
    np.ndarray
        Piecewise constant denoised signal

    Examples
    --------
    >>> total_variation_denoise(np.array([0.0, 0.0, 10.0, 10.0]), 1.0)
    array([0.5, 0.5, 9.5, 9.5])
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    x = y.copy()
    if n < 2 or lam <= 0:
        return x

    k = k0 = kplus = kminus = 0
    umin, umax = lam, -lam
    vmin, vmax = y[0] - lam, y[0] + lam
    while True:
        # right boundary
        while k == n - 1:
            if umin < 0.0:
                while True:
                    x[k0] = vmin
                    k0 += 1
                    if k0 > kminus:
                        break
                k = kminus = k0
                vmin = y[k]
                umin = lam
                umax = vmin + umin - vmax
            elif umax > 0.0:
                while True:
                    x[k0] = vmax
                    k0 += 1
                    if k0 > kplus:
                        break
                k = kplus = k0
                vmax = y[k]
                umax = -lam
                umin = vmax + umax - vmin
            else:
                vmin += umin / (k - k0 + 1)
                x[k0 : k + 1] = vmin
                return x

        umin += y[k + 1] - vmin
        if umin < -lam:
            # negative jump
            while True:
                x[k0] = vmin
                k0 += 1
                if k0 > kminus:
                    break
            k = kplus = kminus = k0
            vmin = y[k]
            vmax = vmin + 2 * lam
            umin, umax = lam, -lam
            continue

        umax += y[k + 1] - vmax
        if umax > lam:
            # positive jump
            while True:
                x[k0] = vmax
                k0 += 1
                if k0 > kplus:
                    break
            k = kplus = kminus = k0
            vmax = y[k]
            vmin = vmax - 2 * lam
            umin, umax = lam, -lam
            continue

        k += 1
        if umin >= lam:
            kminus = k
            vmin += (umin - lam) / (kminus - k0 + 1)
            umin = lam
        if umax <= -lam:
            kplus = k
            vmax += (umax + lam) / (kplus - k0 + 1)
            umax = -lam


def moving_median(values: np.ndarray, window: int) -> np.ndarray:
    """Centered moving median."""
    return median_filter(np.asarray(values, dtype=float), size=window, mode="nearest")


def moving_sigma(values: np.ndarray, window: int) -> np.ndarray:
    """
    Centered moving robust standard deviation.

    Scaled median absolute deviation from the moving median, so single
    jumps and outliers inside the window do not raise the estimate.

    Parameters
    ----------
    values : np.ndarray
        Input series
    window : int
        Window size in samples

    Returns
    -------
    np.ndarray
        Standard deviation within the window around each sample,
        floored at SIGMA0_FLOOR
    """
    deviation = np.abs(np.asarray(values, dtype=float) - moving_median(values, window))
    return np.maximum(MAD_SCALE * moving_median(deviation, window), SIGMA0_FLOOR)
