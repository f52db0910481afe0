"""Exceptions and warning categories shared by the reports."""


class BiosignalInsightsError(Exception):
    """Base class for errors raised by biosignal_insights."""


class InvalidParameterError(BiosignalInsightsError, ValueError):
    """A parameter cannot be corrected into a usable value."""


class MalformedParameterError(BiosignalInsightsError, ValueError):
    """A textual parameter (e.g. a percentile list) could not be parsed."""


class ParameterClampedWarning(UserWarning):
    """A percentage parameter was outside [0, 100] and has been clamped."""


class QualityWarning(UserWarning):
    """Respondents were excluded by the quality filter."""


class InsufficientRespondentsWarning(UserWarning):
    """Fewer than two respondents are left for a pairwise computation."""


class MissingDataWarning(UserWarning):
    """A respondent, interval or study had no matching sensor data."""
