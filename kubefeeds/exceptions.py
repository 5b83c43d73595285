class FeedFetchError(Exception):
    """Raised when a feed cannot be retrieved or parsed."""


class DuplicateSourceError(Exception):
    """Raised when registering a source whose URL is already known."""
