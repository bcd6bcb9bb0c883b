import structlog


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Returns a structlog logger, optionally bound to a module name."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)
