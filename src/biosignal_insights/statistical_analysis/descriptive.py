import logging
import warnings
import zipfile
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.stats import iqr, kurtosis, moment, skew

from biosignal_insights.errors import MissingDataWarning
from biosignal_insights.pipeline.config import StatisticsConfig
from biosignal_insights.statistical_analysis.kinds import StatisticKind

logger = logging.getLogger(__name__)

IDENTITY_COLUMNS = ["respondent_id", "respondent_name", "interval", "channel", "n_samples"]


def percentile_column(q: float) -> str:
    """Column name of a percentile, e.g. 25.0 -> 'p25', 2.5 -> 'p2.5'."""
    return f"p{q:g}"


def _is_constant(values: np.ndarray) -> bool:
    return values.size > 0 and np.ptp(values) == 0


def _mean(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {"mean": float(np.mean(values)) if values.size else np.nan}


def _std(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {"std": float(np.std(values, ddof=1)) if values.size > 1 else np.nan}


def _variance(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {"variance": float(np.var(values, ddof=1)) if values.size > 1 else np.nan}


def _max(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {"max": float(np.max(values)) if values.size else np.nan}


def _percentiles(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {
        percentile_column(q): float(np.percentile(values, q)) if values.size else np.nan
        for q in config.percentiles
    }


def _iqr(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    return {"iqr": float(iqr(values)) if values.size else np.nan}


def _moments(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    # central moments
    return {
        f"moment_{k}": float(moment(values, k)) if values.size else np.nan
        for k in config.moment_orders
    }


def _skewness(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    if values.size < 2 or _is_constant(values):
        return {"skewness": np.nan}
    return {"skewness": float(skew(values))}


def _kurtosis(values: np.ndarray, config: StatisticsConfig) -> Dict[str, float]:
    if values.size < 2 or _is_constant(values):
        return {"kurtosis": np.nan}
    return {"kurtosis": float(kurtosis(values, fisher=True))}


STATISTIC_FUNCTIONS: Dict[
    StatisticKind, Callable[[np.ndarray, StatisticsConfig], Dict[str, float]]
] = {
    StatisticKind.MEAN: _mean,
    StatisticKind.STD: _std,
    StatisticKind.VARIANCE: _variance,
    StatisticKind.MAX: _max,
    StatisticKind.PERCENTILES: _percentiles,
    StatisticKind.IQR: _iqr,
    StatisticKind.MOMENTS: _moments,
    StatisticKind.SKEWNESS: _skewness,
    StatisticKind.KURTOSIS: _kurtosis,
}


def statistic_columns(config: StatisticsConfig) -> List[str]:
    """Output columns produced by ``config``, in request order."""
    columns: List[str] = []
    for kind in config.statistics:
        if kind is StatisticKind.PERCENTILES:
            columns.extend(percentile_column(q) for q in config.percentiles)
        elif kind is StatisticKind.MOMENTS:
            columns.extend(f"moment_{k}" for k in config.moment_orders)
        else:
            columns.append(kind.value)
    return columns


def describe_series(values: Iterable[float], config: StatisticsConfig) -> Dict[str, float]:
    """
    Compute the requested statistics of one series, ignoring NaN.

    Statistics that need more values than are available are NaN.
    """
    values = np.asarray(list(values), dtype=float)
    values = values[~np.isnan(values)]
    out: Dict[str, float] = {}
    for kind in config.statistics:
        out.update(STATISTIC_FUNCTIONS[kind](values, config))
    return out


def describe_intervals(
    samples: pd.DataFrame,
    intervals: pd.DataFrame,
    config: StatisticsConfig,
    channels: Optional[Sequence[str]] = None,
    respondent_names: Optional[Dict[str, str]] = None,
) -> pd.DataFrame:
    """
    Descriptive statistics per respondent, interval and channel.

    Parameters
    ----------
    samples : pd.DataFrame
        Long channel data: ``respondent_id, timestamp, channel, value``.
    intervals : pd.DataFrame
        ``respondent_id, interval, start, end``; both bounds inclusive.
    config : StatisticsConfig
        Validated statistics selection.
    channels : Sequence[str], optional
        Channels to describe; defaults to every channel in ``samples``.
    respondent_names : Dict[str, str], optional
        Display names by respondent id.

    Returns
    -------
    pd.DataFrame
        Identity columns followed by one column per requested statistic.
        Respondents without samples or intervals are skipped with a
        ``MissingDataWarning``.
    """
    respondent_names = respondent_names or {}
    if channels is None:
        channels = sorted(samples["channel"].dropna().unique())
    columns = IDENTITY_COLUMNS + statistic_columns(config)

    respondent_ids = sorted(
        set(samples["respondent_id"].dropna()) | set(intervals["respondent_id"].dropna())
    )
    rows = []
    for rid in respondent_ids:
        r_intervals = intervals.loc[intervals["respondent_id"] == rid]
        r_samples = samples.loc[samples["respondent_id"] == rid]
        if r_intervals.empty or r_samples.empty:
            what = "interval" if r_intervals.empty else "sensor"
            warnings.warn(
                f"Respondent {rid} has no {what} data and was skipped",
                MissingDataWarning,
                stacklevel=2,
            )
            continue

        for interval in r_intervals.itertuples(index=False):
            in_interval = r_samples.loc[
                (r_samples["timestamp"] >= interval.start)
                & (r_samples["timestamp"] <= interval.end)
            ]
            for channel in channels:
                values = in_interval.loc[in_interval["channel"] == channel, "value"].to_numpy(
                    dtype=float
                )
                row = {
                    "respondent_id": rid,
                    "respondent_name": respondent_names.get(rid, rid),
                    "interval": interval.interval,
                    "channel": channel,
                    "n_samples": int(np.count_nonzero(~np.isnan(values))),
                }
                row.update(describe_series(values, config))
                rows.append(row)

    if not rows:
        warnings.warn(
            "No sensor data matched any interval; the statistics table is empty",
            MissingDataWarning,
            stacklevel=2,
        )
    logger.info("described %d respondent/interval/channel combinations", len(rows))
    return pd.DataFrame(rows, columns=columns)


def export_statistics(
    table: pd.DataFrame, path: Union[str, Path], zip_output: bool = False
) -> Path:
    """
    Write the statistics table as CSV, optionally inside a zip archive.

    Returns the path actually written (``.zip`` when ``zip_output``).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    csv_path = path if path.suffix == ".csv" else path.with_suffix(".csv")
    if not zip_output:
        table.to_csv(csv_path, index=False)
        return csv_path

    zip_path = path.with_suffix(".zip")
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(csv_path.name, table.to_csv(index=False))
    return zip_path
