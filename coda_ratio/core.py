import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .model import (
    CalibrationSettings,
    CodaModel,
    EventPair,
    FrequencyBand,
    SpectraRatioPairDetails,
    Station,
    Waveform,
)
from .ratio import SpectraRatioPairOperator
from .report import SpectraRatiosReport

logger = logging.getLogger(__name__)

STACK_BATCH_SIZE = 20

_CANCELLED = object()

StackKey = Tuple[str, Station, FrequencyBand]
ProgressSink = Callable[[int, int], None]
CutTimes = Callable[[Waveform], Tuple[float, float]]


# ----- progress -----
class TqdmProgress:
    """Progress sink drawing ``(current, total)`` updates on a tqdm bar."""

    def __init__(self, desc: str = "Stacking", **tqdm_kwargs):
        self.desc = desc
        self.tqdm_kwargs = tqdm_kwargs
        self._bar = None

    def __call__(self, current: int, total: int):
        if self._bar is None:
            self._bar = tqdm(total=total, desc=self.desc, **self.tqdm_kwargs)
        self._bar.n = current
        self._bar.refresh()
        if current >= total:
            self._bar.close()


class _ProgressCounter:
    """Shared completion counter; reports every ``batch_size`` completions."""

    def __init__(self, total: int, sink: Optional[ProgressSink], batch_size: int):
        self.total = total
        self.sink = sink
        self.batch_size = max(1, int(batch_size))
        self._count = 0
        self._lock = threading.Lock()

    def report(self, current: int):
        if self.sink is not None:
            self.sink(current, self.total)

    def increment(self):
        # report under the lock so sink calls stay in count order
        with self._lock:
            self._count += 1
            if self._count % self.batch_size == 0 and self._count < self.total:
                self.report(self._count)


# ----- envelope stacking -----
@dataclass
class StackingSummary:
    stacked: List[Waveform] = field(default_factory=list)
    empty: int = 0
    failed: int = 0
    cancelled: int = 0


def stack_key(waveform: Waveform) -> StackKey:
    """Grouping key: event id, station, frequency band."""
    return waveform.event.event_id, waveform.station, waveform.frequency_band


def group_envelopes(waveforms: Iterable[Waveform]) -> Dict[StackKey, List[Waveform]]:
    """
    Group raw envelopes by event, station and band. Existing stacks,
    empty waveforms and waveforms without event or station are skipped.
    """
    groups: Dict[StackKey, List[Waveform]] = {}
    for wf in waveforms:
        if wf.is_stack:
            continue
        if not wf.has_data() or wf.event is None or wf.station is None:
            logger.warning(f"No data or bad station specification for waveform {wf.id}, skipping")
            continue
        groups.setdefault(stack_key(wf), []).append(wf)
    return groups


def stack_envelopes(waves: List[Waveform]) -> Optional[Waveform]:
    """
    Average a group of envelopes into one stack.

    The first waveform is the accumulator: its segment is replaced by the
    mean of all segments and its channel is renamed to ``STACK``.

    Returns
    -------
    Waveform or None
        The stacked waveform, or None if the group is empty.

    Raises
    ------
    ValueError
        If the envelopes differ in length or sample rate.
    """
    if not waves:
        logger.info("Empty list provided for creating envelopes, skipping")
        return None

    base = waves[0]
    data = np.array(base.segment, dtype=float)
    for other in waves[1:]:
        if other.segment.shape != data.shape or other.sample_rate != base.sample_rate:
            raise ValueError(
                f"Cannot stack {other.segment_length} samples at {other.sample_rate} Hz "
                f"onto {data.size} samples at {base.sample_rate} Hz"
            )
        data = data + other.segment
    data = data / len(waves)

    if data.size == 0:
        logger.info(f"Stack for {base.station} produced no samples, skipping")
        return None

    base.segment = data
    if base.begin_time is not None and base.sample_rate > 0:
        base.end_time = base.begin_time + pd.Timedelta(seconds=(data.size - 1) / base.sample_rate)
    base.channel_name = CodaModel.STACK_CHANNEL
    return base


def stack_envelope_groups(
        groups: Dict[Hashable, List[Waveform]],
        progress: Optional[ProgressSink] = None,
        max_workers: Optional[int] = None,
        batch_size: int = STACK_BATCH_SIZE,
        should_cancel: Optional[Callable[[], bool]] = None,
        settings: Optional[CalibrationSettings] = None
) -> StackingSummary:
    """
    Stack every group concurrently.

    Each task only reads its own group and writes its own stack. The progress
    sink is called with ``(current, total)`` once at the start, every
    ``batch_size`` completed groups (possibly from worker threads) and once at
    the end. When ``settings`` is given its ``max_workers`` and
    ``progress_batch_size`` replace the keyword values. Groups that fail are
    logged and counted rather than aborting the batch; groups not yet started
    when ``should_cancel`` returns True are skipped.

    Returns
    -------
    StackingSummary
        Stacks in group order plus empty/failed/cancelled counts.
    """
    if settings is not None:
        max_workers = settings.max_workers
        batch_size = settings.progress_batch_size

    summary = StackingSummary()
    counter = _ProgressCounter(len(groups), progress, batch_size)
    counter.report(0)

    def _task(waves):
        if should_cancel is not None and should_cancel():
            return _CANCELLED
        try:
            return stack_envelopes(waves)
        finally:
            counter.increment()

    results: Dict[Hashable, Waveform] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futures = {ex.submit(_task, waves): key for key, waves in groups.items()}
        for fut in as_completed(futures):
            key = futures[fut]
            try:
                stacked = fut.result()
            except (ValueError, TypeError) as e:
                logger.warning(f"Unable to stack envelopes for {key}: {e}")
                summary.failed += 1
                continue
            if stacked is _CANCELLED:
                summary.cancelled += 1
            elif stacked is None:
                summary.empty += 1
            else:
                results[key] = stacked

    summary.stacked = [results[key] for key in groups if key in results]
    counter.report(counter.total)
    logger.info(
        f"Stacked {len(summary.stacked)} of {len(groups)} groups "
        f"({summary.empty} empty, {summary.failed} failed, {summary.cancelled} cancelled)"
    )
    return summary


# ----- spectral ratios -----
def peak_and_fmarker_times(waveform: Waveform) -> Tuple[float, float]:
    """
    Default cut window for a waveform: the time of its largest sample and the
    time of its second-to-last sample, both in seconds from the event origin.

    The f-marker stops one sample short of the end so a cut reaching it still
    slices the segment instead of falling back to the whole array.
    """
    wave_start = waveform.seconds_from_origin(waveform.begin_time) or 0.0
    if not waveform.has_data():
        return wave_start, wave_start
    peak = wave_start + int(np.argmax(waveform.segment)) / waveform.sample_rate
    end = wave_start + max(waveform.segment_length - 2, 0) / waveform.sample_rate
    return peak, end


def get_waveform_pairs(
        numer_waveforms: Iterable[Waveform],
        denom_waveforms: Iterable[Waveform]
) -> List[Tuple[Waveform, Waveform]]:
    """
    Match numerator and denominator waveforms recorded at the same station
    in the same frequency band. The first denominator found for a
    station/band wins.
    """
    denom_by_key: Dict[Tuple[Station, FrequencyBand], Waveform] = {}
    for wf in denom_waveforms:
        if wf.station is None:
            continue
        denom_by_key.setdefault((wf.station, wf.frequency_band), wf)

    pairs = []
    for wf in numer_waveforms:
        denom = denom_by_key.get((wf.station, wf.frequency_band))
        if denom is None:
            continue
        pairs.append((wf, denom))
    return pairs


def resample_waveform(waveform: Waveform, sample_rate: float) -> Waveform:
    """
    Linearly interpolate a waveform onto ``sample_rate`` over its original
    time span. Returns a new Waveform; the input is left untouched.
    """
    n = waveform.segment_length
    if n == 0 or sample_rate == waveform.sample_rate:
        return waveform
    old_t = np.arange(n) / waveform.sample_rate
    new_n = int(np.floor((n - 1) * sample_rate / waveform.sample_rate)) + 1
    new_t = np.arange(new_n) / sample_rate
    return replace(
        waveform,
        segment=np.interp(new_t, old_t, waveform.segment),
        sample_rate=sample_rate,
    )


def match_sample_rates(numer: Waveform, denom: Waveform) -> Tuple[Waveform, Waveform]:
    """Bring the lower-rate waveform of a pair up to the higher rate."""
    max_rate = max(numer.sample_rate, denom.sample_rate)
    if denom.sample_rate != max_rate:
        logger.debug(f"Interpolating denominator {denom.id} from {denom.sample_rate} to {max_rate} Hz")
        denom = resample_waveform(denom, max_rate)
    elif numer.sample_rate != max_rate:
        logger.debug(f"Interpolating numerator {numer.id} from {numer.sample_rate} to {max_rate} Hz")
        numer = resample_waveform(numer, max_rate)
    return numer, denom


def measure_ratio(
        numer: Waveform,
        denom: Waveform,
        cut_times: CutTimes = peak_and_fmarker_times
) -> Optional[SpectraRatioPairOperator]:
    """
    Build a ratio for one pair, cut it on its peak/f-marker window and compute
    the diff. The pair is first brought to a common sample rate.

    Returns
    -------
    SpectraRatioPairOperator or None
        None when either side's f-marker comes before its peak.
    """
    numer, denom = match_sample_rates(numer, denom)
    op = SpectraRatioPairOperator(SpectraRatioPairDetails(numer, denom))
    numer_peak, numer_fmarker = cut_times(numer)
    denom_peak, denom_fmarker = cut_times(denom)
    op.set_peak_and_fmarker_cut_times(numer_peak, denom_peak, numer_fmarker, denom_fmarker)

    r = op.ratio
    if r.numer_end_cut_sec < r.numer_start_cut_sec or r.denom_end_cut_sec < r.denom_start_cut_sec:
        logger.info(
            f"F-marker before peak for {numer.station} {numer.frequency_band}, "
            f"skipping ratio {numer.event.event_id}/{denom.event.event_id}"
        )
        return None

    op.update_cut_times_and_recalculate_diff(
        r.numer_start_cut_sec, r.denom_start_cut_sec,
        r.numer_end_cut_sec, r.denom_end_cut_sec
    )
    return op


def build_ratio_report(
        numer_waveforms: Iterable[Waveform],
        denom_waveforms: Iterable[Waveform],
        cut_times: CutTimes = peak_and_fmarker_times,
        report: Optional[SpectraRatiosReport] = None
) -> SpectraRatiosReport:
    """
    Measure every station/band pair between two events' stacks and file the
    results in a report (a new one unless ``report`` is given).

    Entries already in the report with ``user_edited`` set are kept as they
    are. Pairs whose f-marker precedes the peak are left out.
    """
    report = report if report is not None else SpectraRatiosReport()
    pairs = get_waveform_pairs(numer_waveforms, denom_waveforms)
    measured = kept = 0
    for numer, denom in pairs:
        pair = EventPair(y=denom.event, x=numer.event)
        existing = report.data.get(pair, {}).get(numer.station, {}).get(numer.frequency_band)
        if existing is not None and existing.user_edited:
            kept += 1
            continue

        op = measure_ratio(numer, denom, cut_times)
        if op is None:
            continue
        report.add(op.ratio)
        measured += 1
    logger.info(f"Measured {measured} of {len(pairs)} spectral ratios ({kept} user edited kept)")
    return report
