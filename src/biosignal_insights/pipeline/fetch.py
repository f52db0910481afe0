"""
Parallel retrieval of per-respondent data.

Every respondent is fetched by an independent task that only sees its own
immutable ``FetchTask``; results are merged by respondent id once all tasks
are done. A failing fetch is logged and counts as "no data" for that
respondent.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd

from biosignal_insights.data_extraction.models import Respondent
from biosignal_insights.data_extraction.reshape import empty_psd_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchTask:
    study: str
    respondent: Respondent
    stimulus: str
    band_pattern: Optional[str] = None


def worker_count(n_tasks: int, max_workers: Optional[int] = None) -> int:
    """Available parallelism minus one, bounded by the number of tasks."""
    if max_workers is None:
        max_workers = (os.cpu_count() or 1) - 1
    return max(1, min(max_workers, n_tasks))


def _run_task(fetch: Callable[[FetchTask], pd.DataFrame], task: FetchTask) -> Optional[pd.DataFrame]:
    try:
        return fetch(task)
    except Exception as e:
        logger.warning(
            "fetching %s for respondent %s failed: %s: %s",
            task.stimulus,
            task.respondent.id,
            type(e).__name__,
            e,
        )
        return None


def fan_out(
    fetch: Callable[[FetchTask], pd.DataFrame],
    tasks: Sequence[FetchTask],
    max_workers: Optional[int] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Run ``fetch`` for every task on a bounded thread pool.

    Returns
    -------
    Dict[str, pd.DataFrame]
        Non-empty results keyed by respondent id, in respondent id order.
    """
    if not tasks:
        return {}
    workers = worker_count(len(tasks), max_workers)
    logger.info("fetching %d respondents with %d workers", len(tasks), workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda t: _run_task(fetch, t), tasks))

    merged: Dict[str, pd.DataFrame] = {}
    for task, frame in sorted(zip(tasks, results), key=lambda pair: pair[0].respondent.id):
        if frame is None or frame.empty:
            continue
        merged[task.respondent.id] = frame
    return merged


def fetch_study_series(
    client: Any,
    study: str,
    respondents: Sequence[Respondent],
    stimulus: str,
    band_pattern: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> pd.DataFrame:
    """
    PSD data of all respondents as one long frame.

    ``client`` must provide ``fetch_respondent_series(study, respondent,
    stimulus, band_pattern)``. Output is sorted by respondent id, band,
    channel and timestamp; respondents without data are simply absent.
    """
    tasks = [FetchTask(study, r, stimulus, band_pattern) for r in respondents]
    per_respondent = fan_out(
        lambda t: client.fetch_respondent_series(
            t.study, t.respondent, t.stimulus, t.band_pattern
        ),
        tasks,
        max_workers=max_workers,
    )
    missing: List[str] = [r.id for r in respondents if r.id not in per_respondent]
    if missing:
        logger.info("no PSD data for %d respondent(s): %s", len(missing), ", ".join(missing))
    if not per_respondent:
        return empty_psd_frame()

    dataset = pd.concat(per_respondent.values(), ignore_index=True)
    return dataset.sort_values(
        ["respondent_id", "band", "channel", "timestamp"], kind="mergesort"
    ).reset_index(drop=True)
