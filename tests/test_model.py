from datetime import datetime

import numpy as np
import pandas as pd

from coda_ratio.model import Event, EventPair, SpectraRatioPairDetails, Waveform, as_timestamp


def test_as_timestamp_is_utc():
    assert as_timestamp(None) is None
    naive = as_timestamp(datetime(2020, 1, 1, 6, 0, 0))
    assert str(naive.tz) == "UTC"
    shifted = as_timestamp("2020-01-01T08:00:00+02:00")
    assert shifted == naive


def test_event_pair_is_a_value_key(event_a, event_b):
    pair = EventPair(y=event_b, x=event_a)
    assert pair.id == "evA/evB"
    assert {pair: 1}[EventPair(y=event_b, x=event_a)] == 1
    assert pair != EventPair(y=event_a, x=event_b)


def test_event_accepts_iso_origin():
    event = Event("e1", "2020-01-01T00:00:00")
    assert event.origin_time == pd.Timestamp("2020-01-01", tz="UTC")


def test_waveform_equality_compares_samples(make_waveform, event_a, station):
    a = make_waveform(event_a, station, [1.0, 2.0])
    b = make_waveform(event_a, station, [1.0, 2.0])
    c = make_waveform(event_a, station, [1.0, 3.0])
    assert a == b
    assert a != c
    assert not Waveform().has_data()
    assert a.frequency_band.high_frequency == 2.0


def test_details_equality_treats_nan_as_equal(make_waveform, event_a, event_b, station):
    numer = make_waveform(event_a, station, [1.0, 2.0])
    denom = make_waveform(event_b, station, [1.0, 2.0])
    a = SpectraRatioPairDetails(numer, denom, diff_avg=float("nan"), diff_segment=np.array([np.nan]))
    b = SpectraRatioPairDetails(numer, denom, diff_avg=float("nan"), diff_segment=np.array([np.nan]))
    assert a == b
    b.user_edited = True
    assert a != b
