"""
Error taxonomy for the analysis and chat pipelines.

Interpretation never raises; when it can't classify content it falls back
to a default context instead.
"""


class EduvaneError(Exception):
    """Base class for pipeline failures surfaced to the user."""


class PerceptionError(EduvaneError):
    """Uploaded content could not be read."""


class ReasoningError(EduvaneError):
    """The reasoning stage produced no usable analysis."""


class StreamError(EduvaneError):
    """A learning-task stream failed part way through."""
