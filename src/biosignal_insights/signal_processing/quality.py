"""Respondent quality scoring and filtering for PSD data."""

import logging
import warnings
from typing import List, Optional, Sequence

import pandas as pd

from biosignal_insights.errors import QualityWarning
from biosignal_insights.pipeline.config import check_percentage_parameter

logger = logging.getLogger(__name__)


def choose_reference_band(dataset: pd.DataFrame) -> Optional[str]:
    """First band in sorted order, or None for an empty dataset."""
    bands = sorted(dataset["band"].dropna().unique())
    return bands[0] if bands else None


def compute_quality_scores(
    dataset: pd.DataFrame,
    reference_band: Optional[str] = None,
    respondent_ids: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Percentage of missing samples per respondent.

    Missingness is assumed uniform across bands, so only ``reference_band``
    is inspected: every (timestamp, channel) cell without a numeric value
    counts as missing. A respondent with no rows for the band scores 100.

    Parameters
    ----------
    dataset : pd.DataFrame
        Long PSD data.
    reference_band : str, optional
        Band used for scoring; defaults to the first band in sorted order.
    respondent_ids : Sequence[str], optional
        Respondents to score; defaults to every respondent in ``dataset``.

    Returns
    -------
    pd.DataFrame
        Columns ``respondent_id, n_samples, n_missing, quality_score``.
    """
    if respondent_ids is None:
        respondent_ids = sorted(dataset["respondent_id"].dropna().unique())
    if reference_band is None:
        reference_band = choose_reference_band(dataset)

    band_rows = dataset.loc[dataset["band"] == reference_band]
    counts = band_rows.groupby("respondent_id")["value"].agg(
        n_samples="size", n_present="count"
    )

    records = []
    for rid in respondent_ids:
        if rid in counts.index and counts.at[rid, "n_samples"] > 0:
            n_samples = int(counts.at[rid, "n_samples"])
            n_missing = n_samples - int(counts.at[rid, "n_present"])
            score = 100.0 * n_missing / n_samples
        else:
            n_samples, n_missing, score = 0, 0, 100.0
        records.append(
            {
                "respondent_id": rid,
                "n_samples": n_samples,
                "n_missing": n_missing,
                "quality_score": score,
            }
        )

    scores = pd.DataFrame(
        records, columns=["respondent_id", "n_samples", "n_missing", "quality_score"]
    )
    scores["quality_score"] = scores["quality_score"].astype(float)
    return scores


def filter_respondents(scores: pd.DataFrame, quality_threshold: float) -> List[str]:
    """
    Respondents whose missing percentage does not exceed ``quality_threshold``.

    The threshold is clamped into [0, 100] first. Exclusions are reported as
    a ``QualityWarning``; excluding everyone is not an error.
    """
    threshold = check_percentage_parameter(quality_threshold, "quality_threshold")
    keep = scores["quality_score"].to_numpy(dtype=float) <= threshold
    kept = scores.loc[keep, "respondent_id"].tolist()
    excluded = scores.loc[~keep, "respondent_id"].tolist()

    if excluded and not kept:
        warnings.warn(
            f"All {len(excluded)} respondents have more than {threshold:g}% missing "
            "data and were excluded",
            QualityWarning,
            stacklevel=2,
        )
    elif excluded:
        warnings.warn(
            f"Excluded {len(excluded)} respondent(s) with more than {threshold:g}% "
            f"missing data: {', '.join(map(str, excluded))}",
            QualityWarning,
            stacklevel=2,
        )
    logger.info("quality filter kept %d of %d respondents", len(kept), len(scores))
    return kept
