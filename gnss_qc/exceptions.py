"""
Exception hierarchy for gnss_qc.

Local data defects (``ObservationFileError``) disable a single station and
never leave the per-station processing call. ``ConfigurationError`` and
``AggregationError`` are fatal and terminate the run.
"""


class GnssQcError(Exception):
    """Base class for all gnss_qc errors."""


class ConfigurationError(GnssQcError):
    """Malformed thresholds or unusable mandatory settings."""


class ObservationFileError(GnssQcError):
    """Observation file missing, unreadable or without usable data."""


class AggregationError(GnssQcError):
    """Partial results of the workers cannot be combined."""
