import logging
import math
from typing import Callable, Optional, Union

import numpy as np

from .model import (
    CalibrationSettings,
    CodaModel,
    DistanceCalcMethod,
    Event,
    Station,
)
from .utils import GeodeticCoordinate, geodetic2ecef

logger = logging.getLogger(__name__)

DistanceFunc = Callable[[GeodeticCoordinate, GeodeticCoordinate], float]
SettingsProvider = Callable[[], Union[CalibrationSettings, DistanceCalcMethod, str]]


class DistanceCalculator:
    """
    Event/station distance in km, using the method named by the calibration
    settings (EPICENTRAL unless the settings say HYPOCENTRAL).

    Parameters
    ----------
    settings_provider : callable, optional
        Zero-argument callable returning the current ``CalibrationSettings``
        (or just a method name). Re-read by ``update_calc_method``.
    """

    def __init__(self, settings_provider: Optional[SettingsProvider] = None):
        self.settings_provider = settings_provider
        self.preferred_method = DistanceCalcMethod.EPICENTRAL
        self.update_calc_method()

    def update_calc_method(self) -> DistanceCalcMethod:
        if self.settings_provider is None:
            return self.preferred_method

        settings = self.settings_provider()
        method = getattr(settings, "distance_calc_method", settings)
        self.preferred_method = DistanceCalcMethod.parse(method)
        logger.debug(f"Distance calculation method set to {self.preferred_method.value}")
        return self.preferred_method

    def get_distance_func(self) -> DistanceFunc:
        if self.preferred_method == DistanceCalcMethod.HYPOCENTRAL:
            return self.get_hypocentral_distance
        return self.get_epicentral_distance

    def distance(self, event: Event, station: Station) -> float:
        """Distance (km) between an event and a station with the preferred method."""
        return self.get_distance_func()(self.get_event_coord(event), self.get_station_coord(station))

    @staticmethod
    def get_epicentral_distance(coord_a: GeodeticCoordinate, coord_b: GeodeticCoordinate) -> float:
        """WGS84 geodesic surface distance in km; vertical values are ignored."""
        inv = CodaModel.GEOD.Inverse(coord_a.lat, coord_a.lon, coord_b.lat, coord_b.lon)
        return inv["s12"] / 1000.0

    @staticmethod
    def get_hypocentral_distance(coord_a: GeodeticCoordinate, coord_b: GeodeticCoordinate) -> float:
        """
        Straight-line 3-D separation in km between an event (``coord_a``, depth
        positive down) and a station (``coord_b``, elevation positive up).
        """
        # depth is flipped so both heights are positive up
        height_a_m = math.copysign(coord_a.depth_km, -1.0) * 1000.0
        height_b_m = coord_b.elevation_km * 1000.0

        xyz_a = geodetic2ecef(coord_a.lat, coord_a.lon, height_a_m)
        xyz_b = geodetic2ecef(coord_b.lat, coord_b.lon, height_b_m)
        return float(np.linalg.norm(np.subtract(xyz_a, xyz_b))) / 1000.0

    @staticmethod
    def get_event_coord(event: Event) -> GeodeticCoordinate:
        # event depth is stored in meters
        return GeodeticCoordinate(event.latitude, event.longitude, event.depth / 1000.0)

    @staticmethod
    def get_station_coord(station: Station) -> GeodeticCoordinate:
        # station elevation is stored in meters
        return GeodeticCoordinate(station.latitude, station.longitude, station.elevation / 1000.0)
