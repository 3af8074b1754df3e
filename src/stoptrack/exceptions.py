"""Exceptions raised by StopTrack."""

from typing import Optional


class StopTrackError(Exception):
    """Base class for all StopTrack errors."""


class ConfigurationError(StopTrackError):
    """Required configuration is missing or invalid."""


class FetchError(StopTrackError):
    """An upstream URL could not be fetched or returned a non-2xx status."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class ArchiveError(StopTrackError):
    """The static GTFS bundle is not a readable zip archive."""


class MissingTableError(StopTrackError):
    """A mandatory GTFS table is absent from the bundle."""

    def __init__(self, table: str):
        super().__init__(f"{table} not found in GTFS bundle")
        self.table = table


class FeedUnavailableError(StopTrackError):
    """A realtime feed could not be fetched or decoded."""


class FeedFetchError(FetchError, FeedUnavailableError):
    """A realtime feed URL could not be fetched."""


class FeedDecodeError(FeedUnavailableError):
    """A realtime feed payload is not a valid FeedMessage."""
