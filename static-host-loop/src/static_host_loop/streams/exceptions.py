class ClosedResourceError(Exception):
    """Thrown when the relevant stream has been closed."""


class BrokenResourceError(Exception):
    """Thrown when the other end of a stream went away mid-transfer."""


class EndOfStreamError(Exception):
    """Thrown when the stream has no more data to give."""


class DelimiterNotFoundError(Exception):
    """Raised if delimiter is not found within the max read."""
