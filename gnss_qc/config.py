"""
Configuration and constants for gnss_qc.

This module centralizes all magic numbers, default thresholds and constants
used throughout the package, plus the ``PreprocessingConfig`` holding the
thresholds of one processing run.
"""

from typing import Any, Mapping, NamedTuple

from astropy.constants import c as speed_light

from gnss_qc.exceptions import ConfigurationError

SPEED_OF_LIGHT = speed_light.value

# ============================================================================
# GNSS Observation Code Priorities
# ============================================================================

# Mapping of preferred observation codes for each constellation,
# listed in priority order (most preferred first)
GNSS_OBS_PRIORITY = {
    "G": {  # GPS
        "C1": ["C1W", "C1P", "C1C", "C1Y"],  # W/P(Y) > C/A
        "C2": ["C2W", "C2P", "C2Y", "C2L", "C2X"],
        "L1": ["L1W", "L1P", "L1Y", "L1C"],
        "L2": ["L2W", "L2P", "L2Y", "L2L", "L2X"],
    },
    "E": {  # Galileo
        "C1": ["C1C", "C1X"],
        "C2": ["C5Q", "C5X", "C7Q", "C7X"],
        "L1": ["L1C", "L1X"],
        "L2": ["L5Q", "L5X", "L7Q", "L7X"],
    },
    "R": {  # GLONASS
        "C1": ["C1P", "C1C"],
        "C2": ["C2P", "C2C"],
        "L1": ["L1P", "L1C"],
        "L2": ["L2P", "L2C"],
    },
    "C": {  # BeiDou
        "C1": ["C2I", "C2Q", "C2X"],
        "C2": ["C7I", "C7Q", "C7X", "C6I"],
        "L1": ["L2I", "L2Q", "L2X"],
        "L2": ["L7I", "L7Q", "L7X", "L6I"],
    },
    "J": {  # QZSS (same as GPS)
        "C1": ["C1C", "C1X"],
        "C2": ["C2L", "C2X"],
        "L1": ["L1C", "L1X"],
        "L2": ["L2L", "L2X"],
    },
}

# ============================================================================
# GNSS Frequency Definitions (in Hz)
# ============================================================================

FREQ = {
    "G": {  # GPS
        "f1": 1575.42e6,  # L1 frequency
        "f2": 1227.60e6,  # L2 frequency
    },
    "R": {  # GLONASS (nominal frequencies; actual frequencies vary by slot)
        "f1": 1602.00e6 + 9 * 0.5625e6,
        "f2": 1246.00e6 + 9 * 0.4375e6,
    },
    "E": {  # Galileo
        "f1": 1575.42e6,  # E1 frequency
        "f2": 1191.795e6,  # E5 frequency
    },
    "C": {  # BeiDou
        "f1": 1561.098e6,  # B1 frequency
        "f2": 1207.14e6,  # B2 frequency
    },
    "J": {  # QZSS (same as GPS)
        "f1": 1575.42e6,
        "f2": 1227.60e6,
    },
}

# ============================================================================
# Robust Estimation
# ============================================================================

# Iteration cap of the iteratively reweighted least squares
MAX_ROBUST_ITERATIONS = 30

# Convergence criterion on the largest change of a Huber weight
ROBUST_WEIGHT_TOLERANCE = 1e-3

# Lower bound for the a-posteriori standard deviation (in units of the data)
SIGMA0_FLOOR = 1e-3

# Scale of the median absolute deviation for normally distributed data
MAD_SCALE = 1.4826

# ============================================================================
# Gross Outliers
# ============================================================================

# Epoch is disabled if more than this fraction of its code observations
# exceed codeMaxPositionDiff
GROSS_OUTLIER_RATIO = 0.5

# ============================================================================
# Cycle Slips
# ============================================================================

# Sub-tracks shorter than this cannot carry a repaired ambiguity
MIN_SLIP_SEGMENT = 2

# Number of epochs on each side of a slip used to estimate the jump
REPAIR_FIT_WINDOW = 10

# Closure tolerances of the integer jump search
MW_CLOSURE_TOLERANCE = 0.5  # wide-lane cycles
TEC_CLOSURE_TOLERANCE = 0.1  # L1 cycles

# Polynomial degree of the TEC-like model in track outlier detection
TEC_OUTLIER_DEGREE = 2

# ============================================================================
# Default Thresholds
# ============================================================================

DEFAULT_HUBER = 2.5
DEFAULT_HUBER_POWER = 1.5
DEFAULT_CODE_MAX_POSITION_DIFF = 100.0  # m
DEFAULT_DENOISING_LAMBDA = 5.0
DEFAULT_TEC_WINDOW_SIZE = 15  # epochs, 0 = disabled
DEFAULT_TEC_SIGMA_FACTOR = 3.5
DEFAULT_MIN_OBS_COUNT_PER_TRACK = 60
DEFAULT_ELEVATION_CUTOFF = 5.0  # deg
DEFAULT_ELEVATION_TRACK_MINIMUM = 15.0  # deg
DEFAULT_MIN_ESTIMABLE_EPOCHS_RATIO = 0.75

# ============================================================================
# Parallel Processing Configuration
# ============================================================================

# Maximum number of worker processes for station preprocessing
MAX_WORKERS_PREPROCESSING = 20

# ============================================================================
# File Naming Conventions
# ============================================================================

# Variables available in track dump templates
TRACK_FILE_VARIABLES = ("station", "prn", "timeStart", "timeEnd", "types")


class PreprocessingConfig(NamedTuple):
    """Thresholds and switches of one preprocessing run."""

    huber: float = DEFAULT_HUBER
    """Residuals > huber*sigma0 are downweighted"""
    huber_power: float = DEFAULT_HUBER_POWER
    """Residuals > huber: weight = (huber*sigma0/e)^huber_power"""
    code_max_position_diff: float = DEFAULT_CODE_MAX_POSITION_DIFF
    """[m] max. allowed position error of the code only clock estimation"""
    denoising_lambda: float = DEFAULT_DENOISING_LAMBDA
    """Regularization of the total variation denoising"""
    tec_window_size: int = DEFAULT_TEC_WINDOW_SIZE
    """Window for TEC smoothness evaluation (0 = disabled)"""
    tec_sigma_factor: float = DEFAULT_TEC_SIGMA_FACTOR
    """Factor applied to the moving standard deviation"""
    min_obs_count_per_track: int = DEFAULT_MIN_OBS_COUNT_PER_TRACK
    """Tracks with fewer epochs are dropped"""
    elevation_cutoff: float = DEFAULT_ELEVATION_CUTOFF
    """[deg] observations below are ignored"""
    elevation_track_minimum: float = DEFAULT_ELEVATION_TRACK_MINIMUM
    """[deg] tracks never exceeding this elevation are dropped"""
    min_estimable_epochs_ratio: float = DEFAULT_MIN_ESTIMABLE_EPOCHS_RATIO
    """[0,1] stations with a lower ratio of usable epochs are disabled"""
    estimate_position: bool = False
    """Estimate a kinematic position together with the initial clock"""
    track_file_before: str = ""
    """Template of the track dump before cycle slip processing"""
    track_file_after: str = ""
    """Template of the track dump after cycle slip processing"""
    use_types: tuple[str, ...] = ()
    """Only use observation codes matching any of these patterns"""
    ignore_types: tuple[str, ...] = ()
    """Ignore observation codes matching any of these patterns"""

    def validate(self) -> "PreprocessingConfig":
        """
        Check all thresholds.

        Returns
        -------
        PreprocessingConfig
            The unchanged configuration

        Raises
        ------
        ConfigurationError
            If any threshold is outside its valid range
        """
        if self.huber <= 0:
            raise ConfigurationError(f"huber must be positive, got {self.huber}")
        if self.huber_power < 0:
            raise ConfigurationError(
                f"huberPower must not be negative, got {self.huber_power}"
            )
        if self.code_max_position_diff <= 0:
            raise ConfigurationError(
                f"codeMaxPositionDiff must be positive, got {self.code_max_position_diff}"
            )
        if self.denoising_lambda < 0:
            raise ConfigurationError(
                f"denoisingLambda must not be negative, got {self.denoising_lambda}"
            )
        if self.tec_window_size < 0 or int(self.tec_window_size) != self.tec_window_size:
            raise ConfigurationError(
                f"tecWindowSize must be a non-negative integer, got {self.tec_window_size}"
            )
        if self.tec_sigma_factor <= 0:
            raise ConfigurationError(
                f"tecSigmaFactor must be positive, got {self.tec_sigma_factor}"
            )
        if self.min_obs_count_per_track < 1:
            raise ConfigurationError(
                f"minObsCountPerTrack must be at least 1, got {self.min_obs_count_per_track}"
            )
        if not -90.0 <= self.elevation_cutoff <= 90.0:
            raise ConfigurationError(
                f"elevationCutOff must be within [-90, 90], got {self.elevation_cutoff}"
            )
        if not -90.0 <= self.elevation_track_minimum <= 90.0:
            raise ConfigurationError(
                f"elevationTrackMinimum must be within [-90, 90], got {self.elevation_track_minimum}"
            )
        if not 0.0 <= self.min_estimable_epochs_ratio <= 1.0:
            raise ConfigurationError(
                f"minEstimableEpochsRatio must be within [0, 1], got {self.min_estimable_epochs_ratio}"
            )
        for template in (self.track_file_before, self.track_file_after):
            _check_template(template)
        return self

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "PreprocessingConfig":
        """
        Build a validated configuration from a mapping.

        Keys may be given in snake_case or in the camelCase spelling of the
        original station network settings (e.g. ``codeMaxPositionDiff``).

        Raises
        ------
        ConfigurationError
            On unknown keys, values of the wrong type or invalid thresholds
        """
        values = {}
        for key, value in settings.items():
            field = _CAMEL_CASE_KEYS.get(key, key)
            if field not in cls._fields:
                raise ConfigurationError(f"Unknown configuration key: {key}")
            default = cls._field_defaults[field]
            try:
                if isinstance(default, bool):
                    if not isinstance(value, bool):
                        raise TypeError(f"expected bool, got {type(value).__name__}")
                    values[field] = value
                elif isinstance(default, tuple):
                    values[field] = (value,) if isinstance(value, str) else tuple(value)
                elif isinstance(default, str):
                    values[field] = str(value)
                else:
                    values[field] = type(default)(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {key}: {e}") from e
        return cls(**values).validate()


_CAMEL_CASE_KEYS = {
    "huberPower": "huber_power",
    "codeMaxPositionDiff": "code_max_position_diff",
    "denoisingLambda": "denoising_lambda",
    "tecWindowSize": "tec_window_size",
    "tecSigmaFactor": "tec_sigma_factor",
    "minObsCountPerTrack": "min_obs_count_per_track",
    "elevationCutOff": "elevation_cutoff",
    "elevationTrackMinimum": "elevation_track_minimum",
    "minEstimableEpochsRatio": "min_estimable_epochs_ratio",
    "estimateKinematicPosition": "estimate_position",
    "outputfileTrackBefore": "track_file_before",
    "outputfileTrackAfter": "track_file_after",
    "useType": "use_types",
    "ignoreType": "ignore_types",
}


def _check_template(template: str) -> None:
    """Reject track dump templates with unknown variables."""
    if not template:
        return
    dummy = {name: "x" for name in TRACK_FILE_VARIABLES}
    try:
        template.format(**dummy)
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid track file template {template!r}: {e}"
        ) from e

