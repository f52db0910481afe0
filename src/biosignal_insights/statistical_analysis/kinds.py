from enum import Enum


class StatisticKind(str, Enum):
    """Statistics the descriptive report can compute."""

    MEAN = "mean"
    STD = "std"
    VARIANCE = "variance"
    MAX = "max"
    PERCENTILES = "percentiles"
    IQR = "iqr"
    MOMENTS = "moments"
    SKEWNESS = "skewness"
    KURTOSIS = "kurtosis"


DEFAULT_STATISTICS = tuple(StatisticKind)
