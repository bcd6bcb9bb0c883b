import logging
import sys

import structlog
from structlog.typing import FilteringBoundLogger


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Gets a structlog logger, optionally bound to a name."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def configure_logging(*, trace: bool = False) -> None:
    """Configures structlog for the command line.

    Args:
        trace: log at debug level, including where each event was logged from
    """
    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if trace:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            )
        )
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if trace else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )
