import threading
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_DOWN
from typing import Tuple

import numpy as np
from pyproj import Transformer

from .model import CodaModel


@dataclass(frozen=True)
class GeodeticCoordinate:
    """Geodetic point; the vertical value is a depth for events and an elevation for stations (km)."""
    lat: float
    lon: float
    depth_or_elevation_km: float = 0.0

    @property
    def depth_km(self) -> float:
        return self.depth_or_elevation_km

    @property
    def elevation_km(self) -> float:
        return self.depth_or_elevation_km


# pyproj transformers must not be shared between threads
_local = threading.local()


def _ecef_transformer() -> Transformer:
    transformer = getattr(_local, "ecef", None)
    if transformer is None:
        transformer = Transformer.from_crs(
            CodaModel.GEODETIC_CRS, CodaModel.ECEF_CRS, always_xy=True
        )
        _local.ecef = transformer
    return transformer


def geodetic2ecef(lat: float, lon: float, height_m: float) -> Tuple[float, float, float]:
    """Convert a WGS84 geodetic position (height in meters, up positive) to ECEF meters."""
    x_m, y_m, z_m = _ecef_transformer().transform(lon, lat, height_m)
    return float(x_m), float(y_m), float(z_m)


def _round(value: float, places: int, mode: str) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=mode))


def round_half_down(value: float, places: int = 4) -> float:
    """Decimal rounding to ``places``; ties go toward zero."""
    return _round(value, places, ROUND_HALF_DOWN)


def round_ceiling(value: float, places: int = 4) -> float:
    """Decimal rounding to ``places`` toward positive infinity."""
    return _round(value, places, ROUND_CEILING)


def get_sub_array(original: np.ndarray, start_idx: int, end_idx: int) -> np.ndarray:
    """
    Return ``original[start_idx:end_idx]`` as a copy.

    When the bounds are not usable (end index not strictly below the last
    index, start index past the end, negative start, or end before start)
    the ORIGINAL, unsliced array is returned instead of raising. Downstream
    averages depend on this fallback, including the case where the end index
    equals the last index.
    """
    length = len(original)
    if end_idx < length - 1 and start_idx < length and 0 <= start_idx <= end_idx:
        return np.array(original[start_idx:end_idx], dtype=float)
    return original
