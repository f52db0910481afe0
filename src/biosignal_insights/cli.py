"""
Command line entry point.

  biosignal-insights isc   --study S --stimulus X --window-size 10 --overlap 50
  biosignal-insights stats --study S --stimulus X --channels Joy,Anger --output stats.csv

Storage settings come from the environment / a ``.env`` file.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from biosignal_insights.data_extraction.firestore_loader import (
    FirestoreStudyClient, build_firestore_client)
from biosignal_insights.errors import BiosignalInsightsError
from biosignal_insights.pipeline.config import (ISCConfig, Settings,
                                                StatisticsConfig,
                                                parse_number_list)
from biosignal_insights.pipeline.isc import run_isc_report
from biosignal_insights.pipeline.statistics import run_statistics_report
from biosignal_insights.statistical_analysis.kinds import StatisticKind

logger = logging.getLogger(__name__)


def _make_client(settings: Settings) -> FirestoreStudyClient:
    return FirestoreStudyClient(build_firestore_client(settings), settings)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="biosignal-insights")
    ap.add_argument("--env-file", type=str, default=None, help="Path to a .env file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    isc = sub.add_parser("isc", help="Intersubject correlation over EEG PSD bands")
    isc.add_argument("--study",             type=str,   required=True)
    isc.add_argument("--stimulus",          type=str,   required=True)
    isc.add_argument("--segment",           type=str,   default=None,  help="Respondent segment")
    isc.add_argument("--window-size",       type=int,   required=True, help="Window length (samples)")
    isc.add_argument("--overlap",           type=float, default=50.0,  help="Window overlap (%%)")
    isc.add_argument("--quality-threshold", type=float, default=30.0,  help="Max missing samples (%%)")
    isc.add_argument("--band-pattern",      type=str,   default=None,  help="Regex selecting bands")
    isc.add_argument("--reference-band",    type=str,   default=None,  help="Band used for quality scores")
    isc.add_argument("--workers",           type=int,   default=None,  help="Fetch worker count")
    isc.add_argument("--name",              type=str,   default="ISC", help="Uploaded metric name")
    isc.add_argument("--no-upload",         action="store_true",       help="Do not upload the result")
    isc.add_argument("--output",            type=Path,  default=None,  help="Also write the series as CSV")

    stats = sub.add_parser("stats", help="Descriptive statistics per respondent and interval")
    stats.add_argument("--study",       type=str,  required=True)
    stats.add_argument("--stimulus",    type=str,  required=True)
    stats.add_argument("--segment",     type=str,  default=None)
    stats.add_argument("--channels",    type=str,  default=None, help="Comma separated channel names")
    stats.add_argument(
        "--statistics",
        type=str,
        default=",".join(k.value for k in StatisticKind),
        help="Comma separated subset of: " + ", ".join(k.value for k in StatisticKind),
    )
    stats.add_argument("--percentiles", type=str,  default="25,50,75")
    stats.add_argument("--moments",     type=str,  default="3,4", help="Central moment orders")
    stats.add_argument("--zip",         action="store_true",      help="Package the CSV into a zip archive")
    stats.add_argument("--workers",     type=int,  default=None)
    stats.add_argument("--output",      type=Path, required=True)
    return ap


def _split(text: Optional[str]) -> Optional[List[str]]:
    if not text:
        return None
    return [t.strip() for t in text.split(",") if t.strip()]


def statistics_config_from_args(args: argparse.Namespace) -> StatisticsConfig:
    try:
        kinds = tuple(StatisticKind(k.lower()) for k in _split(args.statistics) or ())
    except ValueError as e:
        raise BiosignalInsightsError(f"unknown statistic: {e}") from None
    return StatisticsConfig(
        statistics=kinds,
        percentiles=parse_number_list(args.percentiles, "percentiles"),
        moment_orders=parse_number_list(args.moments, "moment orders"),
        zip_output=args.zip,
    )


def run_isc(args: argparse.Namespace, client) -> int:
    config = ISCConfig(
        window_size=args.window_size,
        overlap_percent=args.overlap,
        quality_threshold=args.quality_threshold,
        band_pattern=args.band_pattern,
        reference_band=args.reference_band,
        max_workers=args.workers,
        result_name=args.name,
    )
    report = run_isc_report(
        client, args.study, args.stimulus, config, segment=args.segment, upload=not args.no_upload
    )
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        report.series.to_csv(args.output, index=False)
        logger.info("ISC series written to %s", args.output)
    if report.uploaded_to:
        logger.info("ISC series uploaded to %s", report.uploaded_to)
    return 0


def run_stats(args: argparse.Namespace, client, config: StatisticsConfig) -> int:
    path = run_statistics_report(
        client,
        args.study,
        args.stimulus,
        config,
        args.output,
        channels=_split(args.channels),
        segment=args.segment,
        max_workers=args.workers,
    )
    return 0 if path is not None else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # report warnings through the log like everything else
    logging.captureWarnings(True)

    settings = Settings.from_env(args.env_file)
    try:
        if args.command == "isc":
            return run_isc(args, _make_client(settings))
        # malformed lists stop the report before any data is fetched
        config = statistics_config_from_args(args)
        return run_stats(args, _make_client(settings), config)
    except BiosignalInsightsError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
