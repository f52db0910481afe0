import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from biosignal_insights.data_extraction.constants import (INTERVAL_COLUMNS,
                                                          PSD_COLUMNS,
                                                          SAMPLE_COLUMNS)
from biosignal_insights.data_extraction.utils import to_seconds


class SampleState(IntEnum):
    """State of one (respondent, sample index) cell of a merged band matrix."""

    PRESENT = 0
    MISSING = 1
    # the respondent's series is shorter than the matrix width
    PADDING = 2


@dataclass(frozen=True)
class BandMatrix:
    """
    Channel-averaged samples of one band for several respondents.

    Rows follow ``respondent_ids``; columns are sample indices in timestamp
    order. ``states`` holds a ``SampleState`` code for every cell so that
    positions that only exist because of the merge are never read as data.
    """

    band: str
    respondent_ids: Tuple[str, ...]
    values: np.ndarray
    states: np.ndarray

    def series_length(self, row: int) -> int:
        """Number of non-padding samples of the respondent at ``row``."""
        return int(np.count_nonzero(self.states[row] != SampleState.PADDING))

    def series(self, row: int) -> np.ndarray:
        """The respondent's own samples; missing cells are NaN."""
        length = self.series_length(row)
        out = self.values[row, :length].copy()
        out[self.states[row, :length] == SampleState.MISSING] = np.nan
        return out


def empty_psd_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "respondent_id": pd.Series(dtype=object),
            "device_id": pd.Series(dtype=object),
            "timestamp": pd.Series(dtype=float),
            "band": pd.Series(dtype=object),
            "channel": pd.Series(dtype=object),
            "value": pd.Series(dtype=float),
        },
        columns=PSD_COLUMNS,
    )


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return np.nan


def construct_psd_frame(
    records: Iterable[Dict[str, Any]],
    respondent_id: str,
    band_pattern: Optional[str] = None,
    device_id: Optional[str] = None,
) -> pd.DataFrame:
    """
    Flatten sensor documents into the long PSD layout.

    Each record is expected to look like
    ``{"timestamp": ..., "device": ..., "bands": {band: {channel: value}}}``.
    Bands whose name does not match ``band_pattern`` (regex, case-insensitive)
    are dropped. Null or non-numeric channel values become NaN.

    Returns
    -------
    pd.DataFrame
        Columns ``respondent_id, device_id, timestamp, band, channel, value``,
        empty (with the same columns) when nothing matches.
    """
    matcher = re.compile(band_pattern, re.IGNORECASE) if band_pattern else None
    rows: List[Dict[str, Any]] = []
    for rec in records:
        bands = rec.get("bands")
        if not isinstance(bands, dict):
            continue
        ts = to_seconds(rec.get("timestamp"))
        if np.isnan(ts):
            continue
        device = rec.get("device", device_id)
        for band, channels in bands.items():
            if matcher is not None and not matcher.search(band):
                continue
            if not isinstance(channels, dict):
                channels = {"value": channels}
            for channel, value in channels.items():
                rows.append(
                    {
                        "respondent_id": respondent_id,
                        "device_id": device,
                        "timestamp": ts,
                        "band": band,
                        "channel": channel,
                        "value": _as_float(value),
                    }
                )

    if not rows:
        return empty_psd_frame()
    return pd.DataFrame(rows, columns=PSD_COLUMNS)


def construct_sample_frame(
    records: Iterable[Dict[str, Any]],
    respondent_id: str,
    channels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Flatten facial-expression sensor documents (``{"timestamp", "channels": {...}}``)
    into ``respondent_id, timestamp, channel, value`` rows.
    """
    wanted = set(channels) if channels else None
    rows = []
    for rec in records:
        values = rec.get("channels")
        if not isinstance(values, dict):
            continue
        ts = to_seconds(rec.get("timestamp"))
        for channel, value in values.items():
            if wanted is not None and channel not in wanted:
                continue
            rows.append(
                {
                    "respondent_id": respondent_id,
                    "timestamp": ts,
                    "channel": channel,
                    "value": _as_float(value),
                }
            )
    return pd.DataFrame(rows, columns=SAMPLE_COLUMNS)


def construct_interval_frame(
    records: Iterable[Dict[str, Any]], respondent_id: str
) -> pd.DataFrame:
    """Stimulus/annotation intervals as ``respondent_id, interval, start, end``."""
    rows = [
        {
            "respondent_id": respondent_id,
            "interval": rec.get("name", "interval"),
            "start": to_seconds(rec.get("start")),
            "end": to_seconds(rec.get("end")),
        }
        for rec in records
    ]
    return pd.DataFrame(rows, columns=INTERVAL_COLUMNS)


def build_band_matrix(
    dataset: pd.DataFrame, band: str, respondent_ids: Sequence[str]
) -> BandMatrix:
    """
    Merge the channel-averaged series of ``band`` for the given respondents.

    Channels are averaged per timestamp ignoring NaN; a timestamp where every
    channel is NaN stays missing. Respondents without rows for the band get an
    all-padding row.
    """
    sub = dataset.loc[dataset["band"] == band]
    averaged = sub.groupby(["respondent_id", "timestamp"], sort=True)["value"].mean()

    per_respondent = []
    for rid in respondent_ids:
        if rid in averaged.index.get_level_values(0):
            per_respondent.append(averaged.xs(rid, level=0).to_numpy(dtype=float))
        else:
            per_respondent.append(np.empty(0, dtype=float))

    width = max((len(v) for v in per_respondent), default=0)
    values = np.full((len(respondent_ids), width), np.nan, dtype=float)
    states = np.full(
        (len(respondent_ids), width), SampleState.PADDING, dtype=np.int8
    )
    for row, series in enumerate(per_respondent):
        n = len(series)
        values[row, :n] = series
        states[row, :n] = np.where(
            np.isnan(series), SampleState.MISSING, SampleState.PRESENT
        )

    return BandMatrix(
        band=band,
        respondent_ids=tuple(respondent_ids),
        values=values,
        states=states,
    )
