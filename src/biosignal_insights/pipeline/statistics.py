import logging
import warnings
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import pandas as pd

from biosignal_insights.data_extraction.constants import (INTERVAL_COLUMNS,
                                                          SAMPLE_COLUMNS)
from biosignal_insights.errors import MissingDataWarning
from biosignal_insights.pipeline.config import StatisticsConfig
from biosignal_insights.pipeline.fetch import FetchTask, fan_out
from biosignal_insights.statistical_analysis.descriptive import (
    describe_intervals, export_statistics)

logger = logging.getLogger(__name__)


def run_statistics_report(
    client: Any,
    study: str,
    stimulus: str,
    config: StatisticsConfig,
    out_path: Union[str, Path],
    channels: Optional[Sequence[str]] = None,
    segment: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> Optional[Path]:
    """
    Describe every respondent's channel data per stimulus interval and export it.

    ``client`` provides ``list_respondents``, ``fetch_respondent_samples`` and
    ``fetch_intervals``. Returns the written path, or None when the study has
    no respondents for ``stimulus`` (nothing is written then).
    """
    config = config.validated()
    respondents = client.list_respondents(study, stimulus, segment)
    if not respondents:
        warnings.warn(
            f"No respondents were exposed to stimulus {stimulus!r} in study {study!r}",
            MissingDataWarning,
            stacklevel=2,
        )
        return None

    tasks = [FetchTask(study, r, stimulus) for r in respondents]
    samples = fan_out(
        lambda t: client.fetch_respondent_samples(t.study, t.respondent, t.stimulus, channels),
        tasks,
        max_workers=max_workers,
    )
    intervals = fan_out(
        lambda t: client.fetch_intervals(t.study, t.respondent, t.stimulus),
        tasks,
        max_workers=max_workers,
    )

    sample_frame = (
        pd.concat(samples.values(), ignore_index=True)
        if samples
        else pd.DataFrame(columns=SAMPLE_COLUMNS)
    )
    interval_frame = (
        pd.concat(intervals.values(), ignore_index=True)
        if intervals
        else pd.DataFrame(columns=INTERVAL_COLUMNS)
    )

    table = describe_intervals(
        sample_frame,
        interval_frame,
        config,
        channels=channels,
        respondent_names={r.id: r.label for r in respondents},
    )
    path = export_statistics(table, out_path, zip_output=config.zip_output)
    logger.info("statistics for %d rows written to %s", len(table), path)
    return path
