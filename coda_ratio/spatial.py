import logging
from typing import Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .distance import DistanceCalculator
from .ratio import SpectraRatioPairOperator
from .report import SpectraRatiosReport

logger = logging.getLogger(__name__)

RATIO_COLUMNS = [
    'numer_event_id', 'denom_event_id', 'station', 'network',
    'low_frequency', 'high_frequency', 'diff_avg', 'numer_avg', 'denom_avg',
    'cut_segment_length', 'cut_time_length', 'user_edited',
]


def ratio_frame(
    report: SpectraRatiosReport,
    distance_calculator: Optional[DistanceCalculator] = None
) -> pd.DataFrame:
    """
    Flatten a report into one row per ratio measurement.

    Parameters:
    -----------
    report : SpectraRatiosReport
        Report to tabulate.

    distance_calculator : DistanceCalculator, optional
        When given, adds ``numer_distance`` and ``denom_distance`` columns (km)
        between each event and the recording station.

    Returns:
    --------
    pd.DataFrame
        Rows sorted by event pair, station and band.
    """
    columns = list(RATIO_COLUMNS)
    if distance_calculator is not None:
        columns += ['numer_distance', 'denom_distance']

    rows = []
    for pair, station, band, details in report.iter_ratios():
        row = {
            'numer_event_id': pair.x.event_id,
            'denom_event_id': pair.y.event_id,
            'station': station.station_name,
            'network': station.network,
            'low_frequency': band.low_frequency,
            'high_frequency': band.high_frequency,
            'diff_avg': details.diff_avg,
            'numer_avg': details.numer_avg,
            'denom_avg': details.denom_avg,
            'cut_segment_length': details.cut_segment_length,
            'cut_time_length': details.cut_time_length,
            'user_edited': details.user_edited,
        }
        if distance_calculator is not None:
            row['numer_distance'] = distance_calculator.distance(pair.x, station)
            row['denom_distance'] = distance_calculator.distance(pair.y, station)
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=columns)

    frame = pd.DataFrame(rows, columns=columns)
    return frame.sort_values(
        ['numer_event_id', 'denom_event_id', 'station', 'low_frequency']
    ).reset_index(drop=True)


def plot_ratio_1d(
    frame: pd.DataFrame,
    x: str,
    y: str = 'diff_avg',
    threshold: float = 1.5,
    show_labels: bool = False,
    xlabel: Optional[str] = None,
    ylabel: Optional[str] = None,
    title: str = "1D Spectral Ratio Fluctuation Analysis",
    show: bool = False
):
    """
    Demeaned scatter of one ratio column against another, with a ±threshold·σ
    band and a sideways histogram of the values.

    Parameters:
    -----------
    frame : pd.DataFrame
        Usually the output of ``ratio_frame``.

    x, y : str
        Column names for the axes (e.g. ``'numer_distance'``, ``'diff_avg'``).

    threshold : float, optional
        Multiplier of standard deviation for outlier marking. Default is 1.5.

    show_labels : bool, optional
        Annotate outliers with their station name.

    show : bool, optional
        Call ``plt.show()`` before returning.

    Returns:
    --------
    matplotlib.figure.Figure or None
        None when nothing is plottable.
    """
    if frame.empty or x not in frame or y not in frame:
        logger.warning(f"No ratio data to plot for {y} against {x}")
        return None

    # -- 1. parse plot data --
    data = frame[[x, y] + (['station'] if 'station' in frame else [])].dropna(subset=[x, y])
    if data.empty:
        logger.warning(f"All {y} values against {x} are missing")
        return None

    # -- 2. sort and trans to array --
    data = data.sort_values(x)
    x_vals = data[x].to_numpy(dtype=float)
    y_vals = data[y].to_numpy(dtype=float)

    # -- 3. calc scatter information --
    mean_y = np.mean(y_vals)
    y_vals = y_vals - mean_y    # demean
    std_y = np.std(y_vals)
    abs_threshold = threshold * std_y
    outliers = np.abs(y_vals) > abs_threshold

    # -- 4. plotting logic --
    fig, ax = plt.subplots(figsize=(12, 6), dpi=100)
    pad = (x_vals.max() - x_vals.min()) * 0.05 or 1.0

    # -- background --
    ax.fill_between(
        [x_vals.min() - pad, x_vals.max() + pad],
        -abs_threshold, abs_threshold,
        color='gray', alpha=0.3,
        label=f'±{threshold}σ', zorder=1
    )
    ax.axhline(0, color='black', linestyle='--', linewidth=1, alpha=0.5, zorder=3)

    # -- hist --
    ax_hist = ax.twiny()
    ax_hist.hist(
        y_vals, bins='auto',
        orientation='horizontal',
        color='skyblue', alpha=0.5,
        edgecolor='gray', linewidth=0.3,
        zorder=2
    )
    ax_hist.set_xticks([])
    ax_hist.spines['top'].set_visible(False)

    # -- scatter --
    ax.scatter(x_vals[~outliers], y_vals[~outliers], color='green',
               edgecolors='k', s=45, alpha=0.75, label='Within', zorder=6)
    if outliers.any():
        ax.scatter(x_vals[outliers], y_vals[outliers], color='red',
                   edgecolors='k', s=45, alpha=0.75, label='Outlier', zorder=6)
        if show_labels and 'station' in data:
            for xv, yv, name in zip(x_vals[outliers], y_vals[outliers], data['station'][outliers]):
                ax.text(xv, float(yv) + 0.01, name, fontsize=8, ha='center', va='bottom')

    # -- decorate plotting --
    ax.set_xlabel(xlabel or x, fontsize=12)
    ax.set_ylabel(ylabel or y, fontsize=12)
    ax.set_title(title, fontsize=14)

    stats_text = f"Mean: {mean_y:.3f}\nStd($\\sigma$): {std_y:.3f}"
    ax.text(0.05, 0.92, stats_text, transform=ax.transAxes, fontsize=11,
            bbox=dict(facecolor='white', alpha=0.75, edgecolor='none'))

    ax.legend(loc='upper right', frameon=True)
    ax.set_xlim(x_vals.min() - pad, x_vals.max() + pad)

    if show:
        plt.show()
    return fig


def plot_ratio_pair(operator: SpectraRatioPairOperator, show: bool = False):
    """Cut numerator and denominator envelopes (top) and their difference (bottom)."""
    ratio = operator.ratio
    if ratio.numer_waveform is None or ratio.denom_waveform is None:
        logger.warning("Ratio is missing a waveform, nothing to plot")
        return None

    numer = operator.get_numerator_cut_segment()
    denom = operator.get_denominator_cut_segment()
    diff = ratio.diff_segment if ratio.diff_segment is not None else np.zeros(0)

    sample_rate = ratio.numer_waveform.sample_rate
    start = ratio.numer_start_cut_sec or 0.0

    fig, (ax_env, ax_diff) = plt.subplots(2, 1, figsize=(10, 7), dpi=100, sharex=True)
    ax_env.plot(start + np.arange(len(numer)) / sample_rate, numer,
                color='red', linewidth=1, label='Numerator')
    ax_env.plot(start + np.arange(len(denom)) / sample_rate, denom,
                color='purple', linewidth=1, label='Denominator')
    ax_env.legend(loc='upper right', frameon=True)
    ax_env.set_ylabel("Amplitude (log)", fontsize=12)

    pair = operator.get_event_pair()
    band = operator.get_frequency()
    station = operator.get_station()
    ax_env.set_title(
        f"{pair.id if pair else ''} {station.station_name if station else ''} "
        f"{band.low_frequency}-{band.high_frequency} Hz",
        fontsize=14
    )

    ax_diff.plot(start + np.arange(len(diff)) / sample_rate, diff, color='green', linewidth=1)
    if ratio.diff_avg is not None and not np.isnan(ratio.diff_avg):
        ax_diff.axhline(ratio.diff_avg, color='black', linestyle='--', linewidth=1, alpha=0.5)
    ax_diff.set_xlabel("Time from origin (s)", fontsize=12)
    ax_diff.set_ylabel("Difference", fontsize=12)

    if show:
        plt.show()
    return fig
