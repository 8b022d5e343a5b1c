"""
gnss_qc - Preprocessing and quality control of GNSS station observations

Cleans raw dual-frequency code and phase observations per ground station
before parameter estimation: initial receiver clocks, gross code outliers,
tracks, cycle slip detection and repair, track outliers and the final
station usability decision. Stations with defective data are disabled
instead of aborting the run.

Main Functions
--------------
preprocess_network : Preprocess all stations in parallel workers
preprocess_station : Preprocess one station
select_station_alternatives : Choose stations from lists of alternatives
read_receiver_observations : Parse RINEX 3 observation files
"""

__version__ = "1.0.0"

# Main interface
from gnss_qc.pipeline import (
    preprocess_network,
    preprocess_station,
    NetworkResult,
    StationResult,
)

from gnss_qc.network import (
    select_station_alternatives,
    StationSelection,
)

# Data model
from gnss_qc.receiver import (
    Receiver,
    ReceiverState,
    Track,
    SlipEvent,
    UsabilityDecision,
    DiagnosticEvent,
    StageStatus,
)

from gnss_qc.observations import (
    SatelliteObservations,
    SignalType,
    ObservationKind,
    make_satellite_observations,
)

# RINEX file handling
from gnss_qc.rinex import (
    read_receiver_observations,
    load_station,
    get_rinex_data,
)

# Configuration
from gnss_qc.config import (
    PreprocessingConfig,
    FREQ,
    GNSS_OBS_PRIORITY,
)

from gnss_qc.exceptions import (
    GnssQcError,
    ConfigurationError,
    ObservationFileError,
    AggregationError,
)

from gnss_qc.logger import setup_logger

__all__ = [
    "preprocess_network",
    "preprocess_station",
    "NetworkResult",
    "StationResult",
    "select_station_alternatives",
    "StationSelection",
    "Receiver",
    "ReceiverState",
    "Track",
    "SlipEvent",
    "UsabilityDecision",
    "DiagnosticEvent",
    "StageStatus",
    "SatelliteObservations",
    "SignalType",
    "ObservationKind",
    "make_satellite_observations",
    "read_receiver_observations",
    "load_station",
    "get_rinex_data",
    "PreprocessingConfig",
    "FREQ",
    "GNSS_OBS_PRIORITY",
    "GnssQcError",
    "ConfigurationError",
    "ObservationFileError",
    "AggregationError",
    "setup_logger",
]
