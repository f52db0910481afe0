from datetime import datetime, timezone
from typing import Any, Union

import numpy as np
import pandas as pd
from dateutil.parser import parse

# Controlling Wildcard Imports
__all__ = ["format_firestore_timestamp", "convert_string_to_utc_timestamp", "to_seconds"]


def format_firestore_timestamp(dt: Union[datetime, pd.Timestamp]) -> str:
    """
    Format a datetime or pandas Timestamp into ISO8601 with microseconds and UTC zone,
    as stored in metric metadata.
    """
    if isinstance(dt, pd.Timestamp):
        dt = dt.to_pydatetime()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="microseconds")


def convert_string_to_utc_timestamp(ts_str: str) -> float:
    """Parse various ISO8601 timestamp strings and return UTC unix timestamp."""
    dt = parse(ts_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.timestamp()


def to_seconds(value: Any) -> float:
    """
    Normalise a stored timestamp to float seconds.

    Numbers pass through, datetimes (Firestore returns ``DatetimeWithNanoseconds``)
    and ISO strings become unix seconds. Anything else is NaN.
    """
    if value is None:
        return np.nan
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
        try:
            return convert_string_to_utc_timestamp(value)
        except (ValueError, OverflowError):
            return np.nan
    return np.nan
