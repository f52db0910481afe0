"""Shared fixtures: synthetic PSD data and an in-memory study client."""

from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from biosignal_insights.data_extraction.constants import (INTERVAL_COLUMNS,
                                                          SAMPLE_COLUMNS)
from biosignal_insights.data_extraction.models import Respondent
from biosignal_insights.data_extraction.reshape import empty_psd_frame


def make_psd_frame(
    values: Dict[str, Dict[str, Sequence[float]]],
    cadence: float = 1.0,
    channels: Iterable[str] = ("Fz",),
    start: float = 0.0,
) -> pd.DataFrame:
    """Long PSD frame; every channel of a band carries the same series."""
    channels = list(channels)
    rows = []
    for rid, bands in values.items():
        for band, series in bands.items():
            for i, v in enumerate(series):
                for ch in channels:
                    rows.append(
                        {
                            "respondent_id": rid,
                            "device_id": f"dev-{rid}",
                            "timestamp": start + i * cadence,
                            "band": band,
                            "channel": ch,
                            "value": float(v),
                        }
                    )
    return pd.DataFrame(rows)


class FakeStudyClient:
    """Implements the study client interface over in-memory frames."""

    def __init__(
        self,
        respondents: List[Respondent],
        series: Optional[Dict[str, pd.DataFrame]] = None,
        samples: Optional[Dict[str, pd.DataFrame]] = None,
        intervals: Optional[Dict[str, pd.DataFrame]] = None,
        failing: Iterable[str] = (),
    ):
        self.respondents = respondents
        self.series = series or {}
        self.samples = samples or {}
        self.intervals = intervals or {}
        self.failing = set(failing)
        self.uploads = []

    def list_respondents(self, study, stimulus, segment=None):
        return [r for r in self.respondents if segment is None or segment in r.segments]

    def fetch_respondent_series(self, study, respondent, stimulus, band_pattern=None):
        if respondent.id in self.failing:
            raise ConnectionError("transport closed")
        frame = self.series.get(respondent.id)
        if frame is None:
            return empty_psd_frame()
        if band_pattern:
            frame = frame.loc[frame["band"].str.contains(band_pattern, regex=True)]
        return frame

    def fetch_respondent_samples(self, study, respondent, stimulus, channels=None):
        if respondent.id in self.failing:
            raise ConnectionError("transport closed")
        frame = self.samples.get(respondent.id, pd.DataFrame(columns=SAMPLE_COLUMNS))
        if channels:
            frame = frame.loc[frame["channel"].isin(channels)]
        return frame

    def fetch_intervals(self, study, respondent, stimulus):
        return self.intervals.get(respondent.id, pd.DataFrame(columns=INTERVAL_COLUMNS))

    def upload_result(self, params, study, table, segment, name, metadata=None):
        self.uploads.append(
            {
                "params": dict(params),
                "study": study,
                "table": table.copy(),
                "segment": segment,
                "name": name,
                "metadata": dict(metadata or {}),
            }
        )
        return f"studies/{study}/metrics/{name}"


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def three_respondent_dataset(rng):
    """3 respondents, one band, 20 samples at 1 s cadence, correlated signals."""
    base = rng.normal(size=20)
    values = {
        "r1": {"alpha": base + 0.3 * rng.normal(size=20)},
        "r2": {"alpha": base + 0.5 * rng.normal(size=20)},
        "r3": {"alpha": -base + 0.4 * rng.normal(size=20)},
    }
    return make_psd_frame(values)
