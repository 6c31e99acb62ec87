"""Exception types raised by the analysis pipeline."""

from __future__ import annotations


class MissingWatchError(Exception):
    """Base class for pipeline errors."""


class ConfigError(MissingWatchError):
    """Pipeline configuration is missing or invalid."""


class VideoDecodeError(MissingWatchError):
    """A video could not be opened or no frame could be decoded from it."""


class DetectorUnavailableError(MissingWatchError):
    """The face detector backend could not be initialised."""


class ComparisonError(MissingWatchError):
    """A remote comparison call failed."""


class ComparisonParseError(ComparisonError):
    """The comparison model replied without a usable JSON verdict."""
