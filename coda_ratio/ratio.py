import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np
import pandas as pd

from .model import (
    EventPair,
    FrequencyBand,
    SpectraRatioPairDetails,
    Station,
    Waveform,
)
from .utils import get_sub_array

logger = logging.getLogger(__name__)

RATIO_CHANGE = "ratio_change"


@dataclass(frozen=True)
class RatioChangeEvent:
    property_name: str
    old_value: Optional[float]
    new_value: Optional[float]
    source: Any = field(default=None, compare=False, repr=False)


RatioChangeListener = Callable[[RatioChangeEvent], None]


def _value_changed(old: Optional[float], new: Optional[float]) -> bool:
    """Inequality that treats two NaNs as the same value."""
    if isinstance(old, float) and isinstance(new, float) and math.isnan(old) and math.isnan(new):
        return False
    return old != new


def get_index_for_time_from_origin(waveform: Waveform, origin_offset_sec: float,
                                   target_time_sec: float) -> int:
    """
    Sample index of ``target_time_sec`` (seconds from the event origin) in a
    waveform whose first sample sits ``origin_offset_sec`` from the origin.
    """
    sample_rate = waveform.sample_rate
    index_offset_for_origin = math.floor(origin_offset_sec * sample_rate)
    index_from_origin = math.floor(target_time_sec * sample_rate)
    return index_from_origin - index_offset_for_origin


class SpectraRatioPairOperator:
    """
    Alignment and differencing of one numerator/denominator waveform pair.

    The operator owns a single ``SpectraRatioPairDetails`` (``self.ratio``) and
    is the only thing that should move its cut window: the ``set_*_cut_sec``
    setters keep each stored time and its sample index in step. Not safe for
    concurrent mutation; use one operator per pair.
    """

    def __init__(self, ratio: SpectraRatioPairDetails):
        self.ratio = ratio
        self._ratio_value_change_listener: Optional[RatioChangeListener] = None

    # -- cut window setters --
    def _index_for(self, waveform: Optional[Waveform], origin_offset_sec: Optional[float],
                   time_sec: Optional[float], current: int) -> int:
        if waveform is None or time_sec is None:
            return current
        return get_index_for_time_from_origin(waveform, origin_offset_sec or 0.0, time_sec)

    def set_numer_start_cut_sec(self, value: Optional[float]):
        r = self.ratio
        r.numer_start_cut_sec = value
        r.numer_start_cut_idx = self._index_for(
            r.numer_waveform, r.numer_wave_start_sec, value, r.numer_start_cut_idx)

    def set_denom_start_cut_sec(self, value: Optional[float]):
        r = self.ratio
        r.denom_start_cut_sec = value
        r.denom_start_cut_idx = self._index_for(
            r.denom_waveform, r.denom_wave_start_sec, value, r.denom_start_cut_idx)

    def set_numer_end_cut_sec(self, value: Optional[float]):
        r = self.ratio
        r.numer_end_cut_sec = value
        r.numer_end_cut_idx = self._index_for(
            r.numer_waveform, r.numer_wave_start_sec, value, r.numer_end_cut_idx)

    def set_denom_end_cut_sec(self, value: Optional[float]):
        r = self.ratio
        r.denom_end_cut_sec = value
        r.denom_end_cut_idx = self._index_for(
            r.denom_waveform, r.denom_wave_start_sec, value, r.denom_end_cut_idx)

    # -- lifecycle --
    def set_peak_and_fmarker_cut_times(self, numer_peak_sec: float, denom_peak_sec: float,
                                       numer_fmarker_sec: float, denom_fmarker_sec: float):
        """Store peak and f-marker times and use them as the initial cut window."""
        self.ratio.numer_peak_sec = numer_peak_sec
        self.ratio.denom_peak_sec = denom_peak_sec
        self.ratio.numer_fmarker_sec = numer_fmarker_sec
        self.ratio.denom_fmarker_sec = denom_fmarker_sec
        self.reset_to_peak_and_fmarker_cut()

    def reset_to_peak_and_fmarker_cut(self):
        """Start cut = peak, end cut = f-marker on each side; no-op without both waveforms."""
        if self.ratio.numer_waveform is None or self.ratio.denom_waveform is None:
            return
        self.set_numer_start_cut_sec(self.ratio.numer_peak_sec)
        self.set_denom_start_cut_sec(self.ratio.denom_peak_sec)
        self.set_numer_end_cut_sec(self.ratio.numer_fmarker_sec)
        self.set_denom_end_cut_sec(self.ratio.denom_fmarker_sec)

    def update_cut_times_and_recalculate_diff(self, numer_start_cut_sec: float,
                                              denom_start_cut_sec: float,
                                              numer_end_cut_sec: float,
                                              denom_end_cut_sec: float):
        """
        Align both sides on the shared window and recompute the diff.

        The shared start is the later of the two starts, floored when positive
        and ceiled otherwise (so it moves toward zero); the shared end is the
        earlier of the two ends. An inverted window collapses to zero length.
        Both end indices are re-derived as ``start_idx + cut_segment_length``
        so the two sides always cut the same number of samples.
        """
        r = self.ratio
        if r.numer_waveform is None or r.denom_waveform is None:
            logger.debug("Cut update ignored, ratio is missing a waveform")
            return

        start_time_sec = max(numer_start_cut_sec, denom_start_cut_sec)
        if start_time_sec > 0:
            start_time_sec = float(math.floor(start_time_sec))
        else:
            start_time_sec = float(math.ceil(start_time_sec))

        end_time_sec = min(numer_end_cut_sec, denom_end_cut_sec)
        if start_time_sec > end_time_sec:
            start_time_sec = end_time_sec

        sample_rate = r.numer_waveform.sample_rate
        r.cut_segment_length = math.floor((end_time_sec - start_time_sec) * sample_rate)
        r.cut_time_length = end_time_sec - start_time_sec

        self.set_numer_start_cut_sec(start_time_sec)
        self.set_denom_start_cut_sec(start_time_sec)
        self.set_numer_end_cut_sec(end_time_sec)
        self.set_denom_end_cut_sec(end_time_sec)

        r.numer_end_cut_idx = r.numer_start_cut_idx + r.cut_segment_length
        r.denom_end_cut_idx = r.denom_start_cut_idx + r.cut_segment_length

        previous = r.diff_avg
        self.update_diff_segment()
        if _value_changed(previous, r.diff_avg):
            self.handle_ratio_changed(r.diff_avg, previous)

    def update_diff_segment(self):
        """
        Recompute ``diff_segment`` and the numerator/denominator/diff averages
        from the current cut indices.
        """
        r = self.ratio
        if r.numer_waveform is None or r.denom_waveform is None:
            return

        cut_length = r.cut_segment_length
        numer_cut = self.get_numerator_cut_segment()
        denom_cut = self.get_denominator_cut_segment()

        usable = max(0, min(cut_length, len(numer_cut), len(denom_cut)))
        if usable < cut_length:
            logger.debug(f"Cut segments hold {usable} of {cut_length} requested samples")
        diff = np.asarray(numer_cut[:usable], dtype=float) - np.asarray(denom_cut[:usable], dtype=float)
        r.diff_segment = diff

        if len(numer_cut) > 0 and len(denom_cut) > 0:
            if cut_length > 0:
                r.numer_avg = float(np.sum(numer_cut[:usable])) / cut_length
                r.denom_avg = float(np.sum(denom_cut[:usable])) / cut_length
            else:
                r.numer_avg = float("nan")
                r.denom_avg = float("nan")
            r.diff_avg = float(np.sum(diff)) / diff.size if diff.size else float("nan")

    # -- change notification --
    def set_ratio_value_change_listener(self, listener: Optional[RatioChangeListener]):
        """Register the single ratio-change listener, replacing any previous one."""
        self._ratio_value_change_listener = listener

    def handle_ratio_changed(self, change: Optional[float], previous: Optional[float] = None):
        if self._ratio_value_change_listener is not None:
            self._ratio_value_change_listener(
                RatioChangeEvent(RATIO_CHANGE, previous, change, source=self)
            )

    # -- derived accessors --
    def get_numerator_cut_segment(self) -> np.ndarray:
        r = self.ratio
        return get_sub_array(r.numer_waveform.segment, r.numer_start_cut_idx, r.numer_end_cut_idx)

    def get_denominator_cut_segment(self) -> np.ndarray:
        r = self.ratio
        return get_sub_array(r.denom_waveform.segment, r.denom_start_cut_idx, r.denom_end_cut_idx)

    def get_frequency(self) -> Optional[FrequencyBand]:
        if self.ratio.numer_waveform is None:
            return None
        return self.ratio.numer_waveform.frequency_band

    def get_event_pair(self) -> Optional[EventPair]:
        numer, denom = self.ratio.numer_waveform, self.ratio.denom_waveform
        if numer is None or denom is None:
            return None
        return EventPair(y=denom.event, x=numer.event)

    def get_station(self) -> Optional[Station]:
        if self.ratio.numer_waveform is None:
            return None
        return self.ratio.numer_waveform.station

    def get_numerator_event_origin_time(self) -> Optional[pd.Timestamp]:
        numer = self.ratio.numer_waveform
        if numer is None or numer.event is None:
            return None
        return numer.event.origin_time

    def get_denominator_event_origin_time(self) -> Optional[pd.Timestamp]:
        denom = self.ratio.denom_waveform
        if denom is None or denom.event is None:
            return None
        return denom.event.origin_time

    def __repr__(self):
        return f"SpectraRatioPairOperator({self.ratio!r})"
