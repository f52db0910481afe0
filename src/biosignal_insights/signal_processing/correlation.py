"""
Sliding-window intersubject correlation (ISC).

For every band, every unordered pair of respondents is correlated on sliding
windows of their channel-averaged series; the absolute Pearson coefficients
are then averaged across pairs per window index.
"""

import logging
import math
import warnings
from itertools import combinations
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from biosignal_insights.data_extraction.reshape import (BandMatrix,
                                                        build_band_matrix)
from biosignal_insights.errors import (InsufficientRespondentsWarning,
                                       MissingDataWarning)

logger = logging.getLogger(__name__)


def compute_sample_overlap(window_size: int, overlap_percent: float) -> int:
    """
    Number of samples between the starts of consecutive windows.

    The overlapping part of two windows is ``floor(overlap% of window_size)``
    samples; the step is what is left of the window, never less than 1.
    A fractional overlap therefore rounds the step up: 10 samples at 33%
    overlap step by 7, and 5 samples at 50% step by 3.
    """
    overlapping = math.floor(overlap_percent * window_size / 100)
    return max(1, int(window_size - overlapping))


def window_count(n_samples: int, window_size: int, step: int) -> int:
    """Number of complete windows (0 if insufficient data)."""
    if n_samples < window_size:
        return 0
    return (n_samples - window_size) // step + 1


def pearson_abs(x: np.ndarray, y: np.ndarray) -> float:
    """
    |Pearson r| of two equally long vectors with case-wise deletion.

    Returns NaN when fewer than two complete pairs remain or either side has
    zero variance.
    """
    complete = ~(np.isnan(x) | np.isnan(y))
    if np.count_nonzero(complete) < 2:
        return np.nan
    xc = x[complete] - x[complete].mean()
    yc = y[complete] - y[complete].mean()
    denom = np.sqrt(np.dot(xc, xc) * np.dot(yc, yc))
    if not np.isfinite(denom) or denom == 0:
        return np.nan
    return float(min(1.0, abs(np.dot(xc, yc) / denom)))


def windowed_abs_correlation(
    x: np.ndarray, y: np.ndarray, window_size: int, step: int
) -> np.ndarray:
    """
    Absolute correlation of ``x`` and ``y`` on each sliding window.

    Both series are truncated to the shorter one first, so only the common
    duration of exposure is compared. Trailing incomplete windows are dropped.

    Args:
        x, y: 1D arrays, NaN for missing samples.
        window_size: samples per window
        step: samples between window starts

    Returns:
        Array with one value per window (empty if the common length is shorter
        than ``window_size``).
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = min(len(x), len(y))
    n_windows = window_count(n, window_size, step)
    out = np.full(n_windows, np.nan)
    for k in range(n_windows):
        start = k * step
        out[k] = pearson_abs(x[start:start + window_size], y[start:start + window_size])
    return out


def nanmean_rows(stack: np.ndarray) -> np.ndarray:
    """Column-wise mean over rows that are not NaN; NaN where no row has data."""
    if stack.size == 0:
        return np.full(stack.shape[1] if stack.ndim == 2 else 0, np.nan)
    present = ~np.isnan(stack)
    counts = present.sum(axis=0)
    sums = np.where(present, stack, 0.0).sum(axis=0)
    out = np.full(stack.shape[1], np.nan)
    np.divide(sums, counts, out=out, where=counts > 0)
    return out


def aggregate_band(matrix: BandMatrix, window_size: int, step: int) -> np.ndarray:
    """
    Mean absolute pairwise correlation per window index for one band.

    Pairs whose common length is too short for one window contribute nothing;
    pairs with fewer windows than others contribute nothing past their end.
    """
    series = [matrix.series(row) for row in range(len(matrix.respondent_ids))]
    per_pair: List[np.ndarray] = [
        windowed_abs_correlation(series[i], series[j], window_size, step)
        for i, j in combinations(range(len(series)), 2)
    ]
    n_windows = max((len(p) for p in per_pair), default=0)
    stack = np.full((len(per_pair), n_windows), np.nan)
    for row, values in enumerate(per_pair):
        stack[row, : len(values)] = values
    return nanmean_rows(stack)


def median_sample_interval(dataset: pd.DataFrame) -> float:
    """
    Median of consecutive timestamp differences, taken per respondent.

    Returns 0.0 when no respondent has two distinct timestamps.
    """
    diffs = []
    for _, ts in dataset.groupby("respondent_id", sort=True)["timestamp"]:
        unique = np.unique(ts.dropna().to_numpy(dtype=float))
        if len(unique) > 1:
            diffs.append(np.diff(unique))
    if not diffs:
        return 0.0
    return float(np.median(np.concatenate(diffs)))


def window_timestamps(
    n_windows: int, interval: float, window_size: int, step: int
) -> np.ndarray:
    """Temporal midpoint of each window, assuming uniform sampling."""
    return interval * (window_size / 2) + np.arange(n_windows) * interval * step


def degenerate_isc_frame(bands: Sequence[str]) -> pd.DataFrame:
    """The single all-missing row returned when ISC cannot be computed."""
    row = {"timestamp": 0.0}
    row.update({band: np.nan for band in bands})
    return pd.DataFrame([row], columns=["timestamp", *bands])


def aggregate_isc(
    dataset: pd.DataFrame,
    respondent_ids: Sequence[str],
    window_size: int,
    step: int,
    bands: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Aggregated ISC time series, one column per band.

    Parameters
    ----------
    dataset : pd.DataFrame
        Long PSD data (``respondent_id, timestamp, band, channel, value``).
    respondent_ids : Sequence[str]
        Respondents that passed the quality filter, in output order.
    window_size : int
        Samples per window.
    step : int
        Samples between window starts.
    bands : Sequence[str], optional
        Bands to compute; defaults to every band in ``dataset`` (sorted).

    Returns
    -------
    pd.DataFrame
        ``timestamp`` followed by one column per band, one row per window.
        With fewer than two respondents: a single row at timestamp 0 with all
        bands missing.
    """
    if bands is None:
        bands = sorted(dataset["band"].dropna().unique())
    bands = list(bands)

    if len(respondent_ids) < 2:
        warnings.warn(
            "At least two respondents are required to compute intersubject "
            f"correlation, got {len(respondent_ids)}",
            InsufficientRespondentsWarning,
            stacklevel=2,
        )
        return degenerate_isc_frame(bands)

    subset = dataset.loc[dataset["respondent_id"].isin(respondent_ids)]
    per_band = {}
    for band in bands:
        matrix = build_band_matrix(subset, band, respondent_ids)
        per_band[band] = aggregate_band(matrix, window_size, step)
        logger.debug("band %s: %d windows", band, len(per_band[band]))

    n_windows = max((len(v) for v in per_band.values()), default=0)
    if n_windows == 0:
        warnings.warn(
            f"No respondent pair has at least {window_size} common samples; "
            "the ISC series is empty",
            MissingDataWarning,
            stacklevel=2,
        )

    columns = {"timestamp": window_timestamps(
        n_windows, median_sample_interval(subset), window_size, step
    )}
    for band, values in per_band.items():
        padded = np.full(n_windows, np.nan)
        padded[: len(values)] = values
        columns[band] = padded

    return pd.DataFrame(columns, columns=["timestamp", *bands])
