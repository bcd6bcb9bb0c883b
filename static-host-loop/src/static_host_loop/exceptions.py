class Cancelled(BaseException):  # noqa: N818
    """Thrown into a task whose cancel scope has been cancelled."""
