"""
Report configuration.

Parameters are collected once into frozen dataclasses. ``validated()`` never
mutates: it returns a corrected copy, warning about every value it had to
clamp.
"""

import math
import numbers
import os
import re
import warnings
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from dotenv import load_dotenv

from biosignal_insights.data_extraction import constants
from biosignal_insights.errors import (InvalidParameterError,
                                       MalformedParameterError,
                                       ParameterClampedWarning)
from biosignal_insights.signal_processing.correlation import \
    compute_sample_overlap
from biosignal_insights.statistical_analysis.kinds import (DEFAULT_STATISTICS,
                                                           StatisticKind)


def check_percentage_parameter(value: float, name: str) -> float:
    """
    Clamp a percentage into [0, 100].

    Out-of-range input is corrected, never rejected; a
    ``ParameterClampedWarning`` names the parameter and the value used instead.
    """
    value = float(value)
    if math.isnan(value):
        raise InvalidParameterError(f"{name} must be a number, got NaN")
    clamped = min(100.0, max(0.0, value))
    if clamped != value:
        warnings.warn(
            f"{name} must be between 0 and 100; {value:g} was corrected to {clamped:g}",
            ParameterClampedWarning,
            stacklevel=2,
        )
    return clamped


def parse_number_list(text: str, name: str = "value list") -> Tuple[float, ...]:
    """
    Parse ``"5, 25 75"`` into ``(5.0, 25.0, 75.0)``.

    Raises
    ------
    MalformedParameterError
        If any entry is not a number, or the list is empty.
    """
    tokens = [t for t in re.split(r"[,;\s]+", text.strip()) if t]
    if not tokens:
        raise MalformedParameterError(f"{name} is empty")
    numbers = []
    for token in tokens:
        try:
            number = float(token)
        except ValueError:
            raise MalformedParameterError(
                f"could not parse {name} {text!r}: {token!r} is not a number"
            ) from None
        if math.isnan(number) or math.isinf(number):
            raise MalformedParameterError(f"{name} entries must be finite, got {token!r}")
        numbers.append(number)
    return tuple(numbers)


@dataclass(frozen=True)
class ISCConfig:
    window_size: int
    overlap_percent: float = 50.0
    quality_threshold: float = 30.0
    band_pattern: Optional[str] = None
    reference_band: Optional[str] = None
    max_workers: Optional[int] = None
    result_name: str = "ISC"

    @property
    def sample_overlap(self) -> int:
        return compute_sample_overlap(self.window_size, self.overlap_percent)

    def validated(self) -> "ISCConfig":
        window_size = self.window_size
        if isinstance(window_size, float) and window_size.is_integer():
            window_size = int(window_size)
        if isinstance(window_size, bool) or not isinstance(window_size, numbers.Integral):
            raise InvalidParameterError(
                f"window_size must be a positive integer number of samples, got {self.window_size!r}"
            )
        window_size = int(window_size)
        if window_size < 1:
            raise InvalidParameterError(
                f"window_size must be a positive integer number of samples, got {window_size}"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidParameterError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.band_pattern:
            try:
                re.compile(self.band_pattern)
            except re.error as e:
                raise InvalidParameterError(f"invalid band_pattern {self.band_pattern!r}: {e}")

        return replace(
            self,
            window_size=window_size,
            overlap_percent=check_percentage_parameter(self.overlap_percent, "overlap_percent"),
            quality_threshold=check_percentage_parameter(
                self.quality_threshold, "quality_threshold"
            ),
        )


@dataclass(frozen=True)
class StatisticsConfig:
    statistics: Tuple[StatisticKind, ...] = DEFAULT_STATISTICS
    percentiles: Tuple[float, ...] = (25.0, 50.0, 75.0)
    moment_orders: Tuple[int, ...] = (3, 4)
    zip_output: bool = False

    def validated(self) -> "StatisticsConfig":
        kinds = tuple(StatisticKind(k) for k in self.statistics)
        percentiles = tuple(
            check_percentage_parameter(p, "percentile") for p in self.percentiles
        )
        orders = []
        for order in self.moment_orders:
            if float(order) != int(order) or int(order) < 1:
                raise InvalidParameterError(
                    f"moment orders must be positive integers, got {order!r}"
                )
            orders.append(int(order))
        return replace(
            self,
            statistics=kinds,
            percentiles=tuple(dict.fromkeys(percentiles)),
            moment_orders=tuple(dict.fromkeys(orders)),
        )


@dataclass(frozen=True)
class Settings:
    """Storage settings, read from the environment (and a ``.env`` file)."""

    credentials_path: Optional[str] = None
    studies_collection: str = constants.STUDIES_COLLECTION
    respondents_subcollection: str = constants.RESPONDENTS_SUBCOLLECTION
    sensor_subcollection: str = constants.SENSOR_SUBCOLLECTION
    metrics_subcollection: str = constants.METRICS_SUBCOLLECTION

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)
        return cls(
            credentials_path=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            studies_collection=os.getenv("STUDIES_COLLECTION", constants.STUDIES_COLLECTION),
            respondents_subcollection=os.getenv(
                "RESPONDENTS_SUBCOLLECTION", constants.RESPONDENTS_SUBCOLLECTION
            ),
            sensor_subcollection=os.getenv("SENSOR_SUBCOLLECTION", constants.SENSOR_SUBCOLLECTION),
            metrics_subcollection=os.getenv(
                "METRICS_SUBCOLLECTION", constants.METRICS_SUBCOLLECTION
            ),
        )
