"""
Frequency band tables for envelope filtering.

Both generators clamp bad parameters to the nearest legal value rather than
raising; callers who want user-facing validation errors must check inputs
before calling.
"""
import logging
import math
from typing import List, Optional

from .model import FrequencyBand
from .utils import round_ceiling, round_half_down

logger = logging.getLogger(__name__)

DEFAULT_MIN_PRECISION = 1e-4


class LinearBandGenerator:
    """Evenly spaced, overlapping bands between a minimum and maximum frequency."""

    def __init__(self, min_precision: float = DEFAULT_MIN_PRECISION):
        self.min_precision = min_precision

    def clamp_min_freq(self, min_freq: float, max_freq: float) -> float:
        if min_freq > max_freq:
            return max_freq
        return min_freq

    def clamp_spacing(self, spacing: float) -> float:
        if spacing <= self.min_precision:
            return self.min_precision
        return spacing

    def clamp_overlap(self, overlap: float) -> float:
        """
        Normalize an overlap given either as a fraction or as a percentage.
        Branch order matters: anything >= 100 becomes 0.99, not 1.0.
        """
        if overlap <= 0.0:
            return 0.0
        if overlap <= self.min_precision:
            return self.min_precision
        if overlap >= 100.0:
            return 0.99
        if overlap >= 1.0:
            return overlap / 100.0
        return overlap

    def generate_table(self, min_freq: float, max_freq: float,
                       overlap: float, spacing: float) -> List[FrequencyBand]:
        """
        Build ``round((max_freq - min_freq) / spacing)`` bands in ascending order.

        The computation runs shifted up by ``delta`` so the lower edge can be
        clamped at ``min_freq``; each band edge is shifted back and rounded to
        four decimals (low edge half-down, high edge ceiling).
        """
        delta = max_freq - min_freq
        if spacing <= 0 or not math.isfinite(delta / spacing):
            logger.debug(f"No bands for range [{min_freq}, {max_freq}] with spacing {spacing}")
            return []

        req_bands = int((delta / spacing) + 0.5)
        bands = []
        for i in range(req_bands):
            step = (i / req_bands) * delta
            low = min_freq + delta - (spacing * overlap / 2) + step
            high = min(low + (spacing * overlap) + spacing, max_freq + delta)
            low = max(low, min_freq + delta)
            bands.append(FrequencyBand(
                round_half_down(low - delta, 4),
                round_ceiling(high - delta, 4),
            ))
        return bands


class LogBandGenerator:
    """
    Bands evenly spaced in log10 frequency, so widths grow geometrically in Hz.
    ``spacing`` and ``overlap`` are interpreted in log10 units.
    """

    def __init__(self, min_precision: float = DEFAULT_MIN_PRECISION,
                 linear: Optional[LinearBandGenerator] = None):
        self.linear = linear if linear is not None else LinearBandGenerator(min_precision)

    @property
    def min_precision(self) -> float:
        return self.linear.min_precision

    def clamp_min_freq(self, min_freq: float, max_freq: float) -> float:
        return self.linear.clamp_min_freq(min_freq, max_freq)

    def clamp_spacing(self, spacing: float) -> float:
        return self.linear.clamp_spacing(spacing)

    def clamp_overlap(self, overlap: float) -> float:
        return self.linear.clamp_overlap(overlap)

    def generate_table(self, min_freq: float, max_freq: float,
                       overlap: float, spacing: float) -> List[FrequencyBand]:
        if min_freq <= 0 or max_freq <= 0:
            logger.debug(f"No log bands for non-positive range [{min_freq}, {max_freq}]")
            return []

        log_bands = self.linear.generate_table(
            math.log10(min_freq), math.log10(max_freq), overlap, spacing
        )
        return [
            FrequencyBand(
                round_half_down(10 ** band.low_frequency, 4),
                round_ceiling(10 ** band.high_frequency, 4),
            )
            for band in log_bands
        ]
