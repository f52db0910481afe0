import logging
import warnings
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd

from biosignal_insights.data_extraction.models import Respondent
from biosignal_insights.errors import MissingDataWarning
from biosignal_insights.pipeline.config import ISCConfig
from biosignal_insights.pipeline.fetch import fetch_study_series
from biosignal_insights.signal_processing.correlation import aggregate_isc
from biosignal_insights.signal_processing.quality import (
    choose_reference_band, compute_quality_scores, filter_respondents)

logger = logging.getLogger(__name__)


@dataclass
class ISCReport:
    series: pd.DataFrame
    quality: pd.DataFrame
    respondents: List[Respondent] = field(default_factory=list)
    uploaded_to: Optional[str] = None

    @property
    def has_values(self) -> bool:
        bands = [c for c in self.series.columns if c != "timestamp"]
        return bool(bands) and bool(self.series[bands].notna().to_numpy().any())


def compute_isc(
    dataset: pd.DataFrame,
    window_size: int,
    overlap_percent: float = 50.0,
    quality_threshold: float = 30.0,
    reference_band: Optional[str] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Quality-filter the respondents and compute the windowed ISC of every band.

    Parameters
    ----------
    dataset : pd.DataFrame
        Long PSD data (``respondent_id, device_id, timestamp, band, channel, value``).
    window_size : int
        Samples per window.
    overlap_percent : float
        Overlap of consecutive windows in percent; clamped into [0, 100].
    quality_threshold : float
        Maximum percentage of missing samples a respondent may have; clamped
        into [0, 100].
    reference_band : str, optional
        Band used for quality scoring.

    Returns
    -------
    (isc_series, quality_scores)
    """
    config = ISCConfig(
        window_size=window_size,
        overlap_percent=overlap_percent,
        quality_threshold=quality_threshold,
        reference_band=reference_band,
    ).validated()
    return _compute(dataset, config)


def _compute(
    dataset: pd.DataFrame,
    config: ISCConfig,
    respondent_ids: Optional[List[str]] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    bands = sorted(dataset["band"].dropna().unique())
    reference_band = config.reference_band or choose_reference_band(dataset)
    if config.reference_band and config.reference_band not in bands:
        warnings.warn(
            f"Reference band {config.reference_band!r} has no data; every respondent scores 100",
            MissingDataWarning,
            stacklevel=3,
        )

    quality = compute_quality_scores(
        dataset, reference_band=reference_band, respondent_ids=respondent_ids
    )
    kept = filter_respondents(quality, config.quality_threshold)
    quality["included"] = quality["respondent_id"].isin(kept)

    series = aggregate_isc(
        dataset,
        respondent_ids=sorted(kept),
        window_size=config.window_size,
        step=config.sample_overlap,
        bands=bands,
    )
    return series, quality


def run_isc_report(
    client: Any,
    study: str,
    stimulus: str,
    config: ISCConfig,
    segment: Optional[str] = None,
    upload: bool = True,
) -> ISCReport:
    """
    Fetch, filter, correlate and (optionally) upload the ISC of one stimulus.

    ``client`` provides ``list_respondents``, ``fetch_respondent_series`` and
    ``upload_result``. Nothing is uploaded when the series has no value.
    """
    config = config.validated()
    respondents = client.list_respondents(study, stimulus, segment)
    if not respondents:
        warnings.warn(
            f"No respondents were exposed to stimulus {stimulus!r} in study {study!r}",
            MissingDataWarning,
            stacklevel=2,
        )

    dataset = fetch_study_series(
        client,
        study,
        respondents,
        stimulus,
        band_pattern=config.band_pattern,
        max_workers=config.max_workers,
    )
    if dataset.empty and respondents:
        warnings.warn(
            f"No PSD data matched stimulus {stimulus!r} for any respondent",
            MissingDataWarning,
            stacklevel=2,
        )

    series, quality = _compute(dataset, config, respondent_ids=[r.id for r in respondents])
    report = ISCReport(series=series, quality=quality, respondents=list(respondents))

    if upload and report.has_values:
        params = asdict(config)
        params["sample_overlap"] = config.sample_overlap
        report.uploaded_to = client.upload_result(
            params,
            study,
            series,
            segment,
            config.result_name,
            {
                "stimulus": stimulus,
                "n_respondents": int(quality["included"].sum()),
                "bands": [c for c in series.columns if c != "timestamp"],
                "mean_isc": float(np.nanmean(series.drop(columns="timestamp").to_numpy())),
            },
        )
    elif upload:
        logger.info("ISC series for %s has no values; skipping upload", stimulus)
    return report
