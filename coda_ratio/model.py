from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from geographiclib.geodesic import Geodesic


TimeLike = Union[pd.Timestamp, datetime, str, None]


def as_timestamp(value: TimeLike) -> Optional[pd.Timestamp]:
    """Coerce a time value to a UTC pandas Timestamp (naive values are taken as UTC)."""
    if value is None:
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


# ----- config -----
class DistanceCalcMethod(str, Enum):
    EPICENTRAL = "EPICENTRAL"
    HYPOCENTRAL = "HYPOCENTRAL"

    @classmethod
    def parse(cls, value: Any) -> "DistanceCalcMethod":
        """Anything that is not HYPOCENTRAL falls back to EPICENTRAL."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().upper() == cls.HYPOCENTRAL.value:
            return cls.HYPOCENTRAL
        return cls.EPICENTRAL


@dataclass(frozen=True)
class CalibrationSettings:
    """Calibration Settings"""
    distance_calc_method: DistanceCalcMethod = DistanceCalcMethod.EPICENTRAL
    min_precision: float = 1e-4
    progress_batch_size: int = 20
    max_workers: Optional[int] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CalibrationSettings":
        """Build settings from a plain (e.g. JSON) mapping, ignoring unknown keys."""
        defaults = cls()
        max_workers = mapping.get("max_workers", defaults.max_workers)
        return cls(
            distance_calc_method=DistanceCalcMethod.parse(
                mapping.get("distance_calc_method", defaults.distance_calc_method)
            ),
            min_precision=float(mapping.get("min_precision", defaults.min_precision)),
            progress_batch_size=int(mapping.get("progress_batch_size", defaults.progress_batch_size)),
            max_workers=None if max_workers is None else int(max_workers),
        )


class CodaModel:
    GEOD = Geodesic.WGS84
    GEODETIC_CRS = "EPSG:4979"  # WGS84 lat/lon/ellipsoidal height
    ECEF_CRS = "EPSG:4978"
    STACK_CHANNEL = "STACK"


# ----- entities -----
@dataclass(frozen=True)
class Event:
    """Seismic Event Info"""
    event_id: str
    origin_time: pd.Timestamp
    latitude: float = 0.0
    longitude: float = 0.0
    depth: float = 0.0  # m, positive down

    def __post_init__(self):
        object.__setattr__(self, "origin_time", as_timestamp(self.origin_time))


@dataclass(frozen=True)
class Station:
    """Station Info"""
    station_name: str
    latitude: float = 0.0
    longitude: float = 0.0
    elevation: float = 0.0  # m, positive up
    network: str = ""


@dataclass(frozen=True, order=True)
class FrequencyBand:
    low_frequency: float
    high_frequency: float


@dataclass(frozen=True)
class EventPair:
    """
    Ordered pair of events compared by a spectral ratio.
    ``x`` is the numerator (larger) event, ``y`` the denominator.
    """
    y: Event
    x: Event

    @property
    def id(self) -> str:
        return f"{self.x.event_id}/{self.y.event_id}"


@dataclass(eq=False)
class Waveform:
    """Envelope waveform for one event, station and frequency band."""
    segment: np.ndarray = field(default_factory=lambda: np.zeros(0))
    sample_rate: float = 1.0
    begin_time: Optional[pd.Timestamp] = None
    end_time: Optional[pd.Timestamp] = None
    event: Optional[Event] = None
    station: Optional[Station] = None
    channel_name: str = ""
    low_frequency: float = 0.0
    high_frequency: float = 0.0
    segment_type: str = ""
    segment_units: str = ""
    active: bool = True
    id: Optional[int] = None

    def __post_init__(self):
        self.segment = np.asarray(self.segment, dtype=float)
        self.begin_time = as_timestamp(self.begin_time)
        self.end_time = as_timestamp(self.end_time)

    def has_data(self) -> bool:
        return self.segment is not None and self.segment.size > 0

    @property
    def segment_length(self) -> int:
        return 0 if self.segment is None else int(self.segment.size)

    @property
    def frequency_band(self) -> FrequencyBand:
        return FrequencyBand(self.low_frequency, self.high_frequency)

    @property
    def is_stack(self) -> bool:
        return self.channel_name.upper() == CodaModel.STACK_CHANNEL

    def seconds_from_origin(self, time: Optional[pd.Timestamp]) -> Optional[float]:
        """Seconds between ``time`` and this waveform's event origin."""
        if time is None or self.event is None or self.event.origin_time is None:
            return None
        return (time - self.event.origin_time).total_seconds()

    def __eq__(self, other):
        if not isinstance(other, Waveform):
            return NotImplemented
        return (
            np.array_equal(self.segment, other.segment)
            and self.sample_rate == other.sample_rate
            and self.begin_time == other.begin_time
            and self.end_time == other.end_time
            and self.event == other.event
            and self.station == other.station
            and self.channel_name == other.channel_name
            and self.low_frequency == other.low_frequency
            and self.high_frequency == other.high_frequency
            and self.segment_type == other.segment_type
            and self.segment_units == other.segment_units
            and self.active == other.active
            and self.id == other.id
        )

    __hash__ = None


@dataclass(eq=False)
class SpectraRatioPairDetails:
    """
    One spectral-ratio measurement between a numerator and a denominator waveform.

    Times are seconds relative to each waveform's own event origin; the
    ``*_cut_idx`` fields are the matching sample indices into the raw segments.
    Mutate the cut fields through ``SpectraRatioPairOperator`` so times and
    indices stay consistent.
    """
    numer_waveform: Optional[Waveform] = None
    denom_waveform: Optional[Waveform] = None

    diff_avg: Optional[float] = None
    numer_avg: Optional[float] = None
    denom_avg: Optional[float] = None

    cut_segment_length: int = 0
    cut_time_length: float = 0.0
    diff_segment: Optional[np.ndarray] = None

    numer_wave_start_sec: Optional[float] = None
    denom_wave_start_sec: Optional[float] = None
    numer_wave_end_sec: Optional[float] = None
    denom_wave_end_sec: Optional[float] = None

    numer_peak_sec: Optional[float] = None
    denom_peak_sec: Optional[float] = None
    numer_fmarker_sec: Optional[float] = None
    denom_fmarker_sec: Optional[float] = None

    numer_start_cut_sec: Optional[float] = None
    denom_start_cut_sec: Optional[float] = None
    numer_end_cut_sec: Optional[float] = None
    denom_end_cut_sec: Optional[float] = None

    numer_start_cut_idx: int = 0
    denom_start_cut_idx: int = 0
    numer_end_cut_idx: int = 0
    denom_end_cut_idx: int = 0

    user_edited: bool = False
    loaded_from_json: bool = False
    id: Optional[int] = None

    def __post_init__(self):
        if self.diff_segment is not None:
            self.diff_segment = np.asarray(self.diff_segment, dtype=float)
        numer, denom = self.numer_waveform, self.denom_waveform
        if numer is not None and denom is not None:
            if self.numer_wave_start_sec is None:
                self.numer_wave_start_sec = numer.seconds_from_origin(numer.begin_time)
            if self.denom_wave_start_sec is None:
                self.denom_wave_start_sec = denom.seconds_from_origin(denom.begin_time)
            if self.numer_wave_end_sec is None:
                self.numer_wave_end_sec = numer.seconds_from_origin(numer.end_time)
            if self.denom_wave_end_sec is None:
                self.denom_wave_end_sec = denom.seconds_from_origin(denom.end_time)

    def __eq__(self, other):
        if not isinstance(other, SpectraRatioPairDetails):
            return NotImplemented
        for name in self.__dataclass_fields__:
            mine, theirs = getattr(self, name), getattr(other, name)
            if name == "diff_segment":
                if (mine is None) != (theirs is None):
                    return False
                if mine is not None and not np.array_equal(mine, theirs, equal_nan=True):
                    return False
            elif isinstance(mine, float) and isinstance(theirs, float):
                if not (mine == theirs or (np.isnan(mine) and np.isnan(theirs))):
                    return False
            elif mine != theirs:
                return False
        return True

    __hash__ = None


# ----- inversion estimates (carried, not computed here) -----
@dataclass
class SpectraRatioPairInversionResult:
    event_id_a: str
    event_id_b: str
    moment_estimate_a: float = 0.0
    corner_estimate_a: float = 0.0
    apparent_stress_estimate_a: float = 0.0
    moment_estimate_b: float = 0.0
    corner_estimate_b: float = 0.0
    apparent_stress_estimate_b: float = 0.0
    misfit: float = 0.0


@dataclass
class SpectraRatioPairInversionResultJoint(SpectraRatioPairInversionResult):
    corner_estimate_a_min: float = 0.0
    corner_estimate_a_max: float = 0.0
    corner_estimate_b_min: float = 0.0
    corner_estimate_b_max: float = 0.0
    k_constant: float = 0.0
