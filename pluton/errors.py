"""Exceptions raised to callers of the analyzer."""


class PlutonError(Exception):
    """Base class for all analyzer errors."""


class InvalidInputSet(PlutonError):
    """Nothing to analyze: empty input, a missing target or an unreadable path."""


class SourceFetchError(PlutonError):
    """Remote source files could not be fetched."""
