"""Exception hierarchy shared across Photostack."""


class PhotostackError(Exception):
    """Base exception for Photostack failures."""


class CriteriaError(PhotostackError):
    """Raised when a criteria specification cannot be parsed or validated."""
