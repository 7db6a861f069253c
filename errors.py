"""
errors.py - Exception types raised by the maintenance engine.
"""


class MaintenanceError(Exception):
    """Base class for engine failures."""


class MalformedURLError(MaintenanceError, ValueError):
    """Raised when a string cannot be parsed into scheme + host."""

    def __init__(self, url: str, reason: str = "missing scheme or host"):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class RepositoryError(MaintenanceError):
    """The bookmark store could not be read or written."""


class BookmarkNotFoundError(MaintenanceError, LookupError):
    def __init__(self, bookmark_id: int):
        self.bookmark_id = bookmark_id
        super().__init__(f"Bookmark {bookmark_id} not found")


class MergeError(MaintenanceError):
    """A merge request could not be carried out."""
