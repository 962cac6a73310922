import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from coda_ratio.model import Event, Station, Waveform

ORIGIN = pd.Timestamp("2021-06-01T12:00:00", tz="UTC")


@pytest.fixture
def event_a():
    return Event("evA", ORIGIN, latitude=37.0, longitude=-117.0, depth=5000.0)


@pytest.fixture
def event_b():
    return Event("evB", ORIGIN + pd.Timedelta(days=3), latitude=37.1, longitude=-117.2, depth=8000.0)


@pytest.fixture
def station():
    return Station("ANMO", latitude=34.95, longitude=-106.46, elevation=1850.0, network="IU")


@pytest.fixture
def other_station():
    return Station("TUC", latitude=32.31, longitude=-110.78, elevation=910.0, network="IU")


@pytest.fixture
def make_waveform():
    """Factory for envelopes positioned ``offset_sec`` after their event's origin."""

    def _make(event, station, segment, sample_rate=10.0, offset_sec=0.0,
              band=(1.0, 2.0), channel="BHZ"):
        segment = np.asarray(segment, dtype=float)
        begin = event.origin_time + pd.Timedelta(seconds=offset_sec)
        end = begin + pd.Timedelta(seconds=(segment.size - 1) / sample_rate)
        return Waveform(
            segment=segment,
            sample_rate=sample_rate,
            begin_time=begin,
            end_time=end,
            event=event,
            station=station,
            channel_name=channel,
            low_frequency=band[0],
            high_frequency=band[1],
            segment_type="ENV",
            segment_units="log10",
        )

    return _make
