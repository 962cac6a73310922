import numpy as np
import pytest

from coda_ratio.core import (
    build_ratio_report,
    get_waveform_pairs,
    measure_ratio,
    peak_and_fmarker_times,
    resample_waveform,
)
from coda_ratio.model import EventPair, FrequencyBand
from coda_ratio.report import SpectraRatiosReport


def _decay(n, peak_at, level):
    t = np.arange(n, dtype=float)
    return level - 0.01 * np.abs(t - peak_at)


def test_peak_and_fmarker_times(make_waveform, event_a, station):
    wf = make_waveform(event_a, station, _decay(40, 5, 3.0), offset_sec=1.0)
    peak, fmarker = peak_and_fmarker_times(wf)
    assert peak == pytest.approx(1.5)
    assert fmarker == pytest.approx(4.8)


def test_get_waveform_pairs_matches_station_and_band(make_waveform, event_a, event_b,
                                                     station, other_station):
    numer = [
        make_waveform(event_a, station, [1.0]),
        make_waveform(event_a, station, [1.0], band=(2.0, 4.0)),
        make_waveform(event_a, other_station, [1.0]),
    ]
    denom = [
        make_waveform(event_b, station, [1.0]),
        make_waveform(event_b, station, [1.0], band=(4.0, 8.0)),
        make_waveform(event_b, other_station, [1.0]),
    ]
    pairs = get_waveform_pairs(numer, denom)
    assert [(n.station, n.frequency_band) for n, _ in pairs] == [
        (station, FrequencyBand(1.0, 2.0)),
        (other_station, FrequencyBand(1.0, 2.0)),
    ]
    for n, d in pairs:
        assert n.station == d.station
        assert d.event == event_b


def test_measure_ratio(make_waveform, event_a, event_b, station):
    numer = make_waveform(event_a, station, _decay(100, 20, 4.0))
    denom = make_waveform(event_b, station, _decay(100, 30, 3.0))

    op = measure_ratio(numer, denom)
    r = op.ratio
    # shared window: later peak (3.0 s) to earlier f-marker (9.8 s)
    assert r.numer_start_cut_sec == 3.0
    assert r.numer_end_cut_sec == pytest.approx(9.8)
    assert r.cut_segment_length == 68
    assert r.diff_segment.size == 68
    assert r.diff_avg == pytest.approx(0.9)
    assert op.get_event_pair() == EventPair(y=event_b, x=event_a)


def test_build_ratio_report(make_waveform, event_a, event_b, station, other_station):
    numer = [
        make_waveform(event_a, station, _decay(100, 10, 4.0)),
        make_waveform(event_a, other_station, _decay(100, 10, 5.0)),
    ]
    denom = [
        make_waveform(event_b, station, _decay(100, 10, 3.0)),
        make_waveform(event_b, other_station, _decay(100, 10, 3.0), band=(2.0, 4.0)),
    ]
    report = build_ratio_report(numer, denom)
    assert isinstance(report, SpectraRatiosReport)
    assert len(report) == 1

    pair = EventPair(y=event_b, x=event_a)
    details = report.data[pair][station][FrequencyBand(1.0, 2.0)]
    assert details.diff_avg == pytest.approx(1.0)

    again = build_ratio_report(numer, denom, report=report)
    assert again is report
    assert len(report) == 1


def test_measure_ratio_skips_fmarker_before_peak(make_waveform, event_a, event_b, station):
    # rising numerator peaks on its last sample, after the f-marker
    numer = make_waveform(event_a, station, np.arange(100.0))
    denom = make_waveform(event_b, station, _decay(100, 10, 3.0))
    peak, fmarker = peak_and_fmarker_times(numer)
    assert peak == pytest.approx(9.9)
    assert fmarker == pytest.approx(9.8)

    assert measure_ratio(numer, denom) is None
    assert measure_ratio(denom, numer) is None
    assert len(build_ratio_report([numer], [denom])) == 0


def test_measure_ratio_interpolates_lower_sample_rate(make_waveform, event_a, event_b, station):
    numer_t = np.arange(100) / 10.0
    denom_t = np.arange(200) / 20.0
    numer = make_waveform(event_a, station, 4.0 - 0.1 * np.abs(numer_t - 2.0), sample_rate=10.0)
    denom = make_waveform(event_b, station, 3.0 - 0.1 * np.abs(denom_t - 2.0), sample_rate=20.0)

    r = measure_ratio(numer, denom).ratio
    assert r.numer_waveform.sample_rate == 20.0
    assert r.numer_waveform.segment_length == 199
    assert r.numer_start_cut_sec == 2.0
    np.testing.assert_allclose(r.diff_segment, 1.0)
    assert r.diff_avg == pytest.approx(1.0)
    # caller's waveform is untouched
    assert numer.sample_rate == 10.0
    assert numer.segment_length == 100

    flipped = measure_ratio(denom, numer).ratio
    assert flipped.denom_waveform.sample_rate == 20.0
    assert flipped.diff_avg == pytest.approx(-1.0)


def test_resample_waveform_keeps_time_span(make_waveform, event_a, station):
    wf = make_waveform(event_a, station, [0.0, 1.0, 2.0, 3.0], sample_rate=1.0)
    up = resample_waveform(wf, 4.0)
    np.testing.assert_allclose(up.segment, np.arange(13) / 4.0)
    assert up.sample_rate == 4.0
    assert up.begin_time == wf.begin_time
    assert resample_waveform(wf, 1.0) is wf


def test_build_ratio_report_keeps_user_edited(make_waveform, event_a, event_b, station):
    numer = [make_waveform(event_a, station, _decay(100, 10, 4.0))]
    denom = [make_waveform(event_b, station, _decay(100, 10, 3.0))]
    report = build_ratio_report(numer, denom)

    pair = EventPair(y=event_b, x=event_a)
    edited = report.data[pair][station][FrequencyBand(1.0, 2.0)]
    edited.user_edited = True
    edited.diff_avg = 42.0

    build_ratio_report(numer, denom, report=report)
    kept = report.data[pair][station][FrequencyBand(1.0, 2.0)]
    assert kept is edited
    assert kept.diff_avg == 42.0
    assert len(report) == 1
