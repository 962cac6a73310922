"""
Coda Spectral Ratio Package
===========================

Coda envelope stacking and event-pair spectral ratio measurement.

Core Functionality:
-------------------
- Generate linear or log-spaced, overlapping frequency band tables.
- Compute epicentral or hypocentral event/station distances.
- Stack envelopes per event, station and band in a thread pool.
- Align numerator/denominator envelopes and measure their log-amplitude difference.
- Collect ratios in a report and compact it for transport.

"""

# 1. Expose Data Models
from .model import (
    Event,
    Station,
    FrequencyBand,
    EventPair,
    Waveform,
    SpectraRatioPairDetails,
    SpectraRatioPairInversionResult,
    SpectraRatioPairInversionResultJoint,
    CalibrationSettings,
    DistanceCalcMethod,
    CodaModel,
)

# 2. Expose Engine Components
from .bands import (
    LinearBandGenerator,
    LogBandGenerator,
)
from .distance import DistanceCalculator
from .ratio import (
    SpectraRatioPairOperator,
    RatioChangeEvent,
)
from .report import (
    SpectraRatiosReport,
    SpectraRatiosReportByEventPair,
    SpectraRatiosReportDTO,
    InterningTable,
)

# 3. Expose Core Workflows
from .core import (
    group_envelopes,
    stack_envelopes,
    stack_envelope_groups,
    StackingSummary,
    TqdmProgress,
    get_waveform_pairs,
    match_sample_rates,
    resample_waveform,
    measure_ratio,
    build_ratio_report,
)

# 4. Expose Utilities
from .utils import (
    GeodeticCoordinate,
    geodetic2ecef,
    get_sub_array,
)

# 5. Define Export List
__all__ = [
    # Models
    "Event",
    "Station",
    "FrequencyBand",
    "EventPair",
    "Waveform",
    "SpectraRatioPairDetails",
    "SpectraRatioPairInversionResult",
    "SpectraRatioPairInversionResultJoint",
    "CalibrationSettings",
    "DistanceCalcMethod",
    "CodaModel",

    # Engine
    "LinearBandGenerator",
    "LogBandGenerator",
    "DistanceCalculator",
    "SpectraRatioPairOperator",
    "RatioChangeEvent",
    "SpectraRatiosReport",
    "SpectraRatiosReportByEventPair",
    "SpectraRatiosReportDTO",
    "InterningTable",

    # Core Functions
    "group_envelopes",
    "stack_envelopes",
    "stack_envelope_groups",
    "StackingSummary",
    "TqdmProgress",
    "get_waveform_pairs",
    "match_sample_rates",
    "resample_waveform",
    "measure_ratio",
    "build_ratio_report",

    # Utilities
    "GeodeticCoordinate",
    "geodetic2ecef",
    "get_sub_array",
]
