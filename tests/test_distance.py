import math

import pytest

from coda_ratio.distance import DistanceCalculator
from coda_ratio.model import CalibrationSettings, DistanceCalcMethod, Event, Station
from coda_ratio.utils import GeodeticCoordinate


def test_epicentral_one_degree_on_equator():
    d = DistanceCalculator.get_epicentral_distance(
        GeodeticCoordinate(0.0, 0.0, 50.0), GeodeticCoordinate(0.0, 1.0, 2.0)
    )
    assert d == pytest.approx(111.3195, abs=1e-3)


def test_hypocentral_same_epicenter_is_vertical_separation():
    station = GeodeticCoordinate(40.0, -105.0, 1.0)
    below = GeodeticCoordinate(40.0, -105.0, 10.0)
    assert DistanceCalculator.get_hypocentral_distance(below, station) == pytest.approx(11.0, rel=1e-6)


def test_hypocentral_depth_sign_is_ignored():
    station = GeodeticCoordinate(40.0, -105.0, 0.0)
    down = DistanceCalculator.get_hypocentral_distance(GeodeticCoordinate(40.0, -105.0, 10.0), station)
    up = DistanceCalculator.get_hypocentral_distance(GeodeticCoordinate(40.0, -105.0, -10.0), station)
    assert down == pytest.approx(up)
    assert down == pytest.approx(10.0, rel=1e-6)


def test_hypocentral_exceeds_epicentral():
    a = GeodeticCoordinate(35.0, -117.0, 15.0)
    b = GeodeticCoordinate(36.0, -116.0, 0.5)
    assert DistanceCalculator.get_hypocentral_distance(a, b) > DistanceCalculator.get_epicentral_distance(a, b)


def test_coords_convert_meters_to_km():
    event = Event("e1", "2020-01-01T00:00:00", latitude=1.0, longitude=2.0, depth=12000.0)
    station = Station("S1", latitude=3.0, longitude=4.0, elevation=1500.0)
    assert DistanceCalculator.get_event_coord(event) == GeodeticCoordinate(1.0, 2.0, 12.0)
    assert DistanceCalculator.get_station_coord(station) == GeodeticCoordinate(3.0, 4.0, 1.5)


def test_default_method_is_epicentral():
    calc = DistanceCalculator()
    assert calc.preferred_method == DistanceCalcMethod.EPICENTRAL
    assert calc.get_distance_func() is DistanceCalculator.get_epicentral_distance


def test_method_follows_settings_provider():
    current = {"settings": CalibrationSettings(distance_calc_method=DistanceCalcMethod.HYPOCENTRAL)}
    calc = DistanceCalculator(lambda: current["settings"])
    assert calc.get_distance_func() is DistanceCalculator.get_hypocentral_distance

    current["settings"] = CalibrationSettings()
    # not re-read until asked
    assert calc.preferred_method == DistanceCalcMethod.HYPOCENTRAL
    assert calc.update_calc_method() == DistanceCalcMethod.EPICENTRAL
    assert calc.get_distance_func() is DistanceCalculator.get_epicentral_distance


@pytest.mark.parametrize("value, expected", [
    ("hypocentral", DistanceCalcMethod.HYPOCENTRAL),
    (" HYPOCENTRAL ", DistanceCalcMethod.HYPOCENTRAL),
    ("epicentral", DistanceCalcMethod.EPICENTRAL),
    ("bogus", DistanceCalcMethod.EPICENTRAL),
    (None, DistanceCalcMethod.EPICENTRAL),
])
def test_method_parse(value, expected):
    assert DistanceCalcMethod.parse(value) == expected


def test_provider_may_return_plain_method_name():
    calc = DistanceCalculator(lambda: "HYPOCENTRAL")
    assert calc.preferred_method == DistanceCalcMethod.HYPOCENTRAL


def test_distance_uses_preferred_method(event_a):
    # close enough that the chord and the arc agree
    near = Station("NEAR", latitude=37.2, longitude=-117.0, elevation=0.0)
    epi = DistanceCalculator().distance(event_a, near)
    hypo = DistanceCalculator(lambda: "hypocentral").distance(event_a, near)
    assert epi == pytest.approx(22.2, abs=0.1)
    assert hypo > epi
    assert hypo == pytest.approx(math.hypot(epi, 5.0), rel=2e-3)


def test_distance_to_the_same_point_is_zero():
    here = GeodeticCoordinate(40.0, -105.0, 0.0)
    assert DistanceCalculator.get_epicentral_distance(here, here) == 0.0
    assert DistanceCalculator.get_hypocentral_distance(
        GeodeticCoordinate(40.0, -105.0, 0.0), GeodeticCoordinate(40.0, -105.0, 0.0)
    ) == pytest.approx(0.0, abs=1e-9)


def test_surface_event_under_station_is_zero_distance():
    event = Event("e0", "2020-01-01T00:00:00", latitude=40.0, longitude=-105.0, depth=0.0)
    station = Station("S0", latitude=40.0, longitude=-105.0, elevation=0.0)
    assert DistanceCalculator().distance(event, station) == 0.0
    assert DistanceCalculator(lambda: "hypocentral").distance(event, station) == pytest.approx(0.0, abs=1e-9)


def test_settings_from_mapping():
    settings = CalibrationSettings.from_mapping({
        "distance_calc_method": "hypocentral",
        "max_workers": "4",
        "unused": True,
    })
    assert settings.distance_calc_method == DistanceCalcMethod.HYPOCENTRAL
    assert settings.max_workers == 4
    assert settings.min_precision == 1e-4
    assert settings.progress_batch_size == 20
    assert CalibrationSettings.from_mapping({}) == CalibrationSettings()
