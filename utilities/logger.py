"""
Structured logging built on structlog.
Provides JSON or console output and a search-scoped logger with bound context.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # merge_contextvars picks up the user_id bound by the auth guard
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class SearchLogger:
    """
    Logger for a single book search with context management.
    """

    def __init__(self, name: str = "book_search"):
        self.logger = structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'SearchLogger':
        """
        Bind context variables to the logger.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def log_search_start(self) -> None:
        """Log the start of a search; the query comes from the bound context."""
        self.logger.info("Book search started", **self.context)

    def log_catalog_call(self, strategy: str, success: bool, result_count: int, error: Optional[str] = None) -> None:
        """Log the outcome of one catalog search call."""
        level = "debug" if success else "warning"
        getattr(self.logger, level)(
            "Catalog search call",
            strategy=strategy,
            success=success,
            result_count=result_count,
            error=error,
            **self.context
        )

    def log_detail_failure(self, key: str, error: str) -> None:
        """Log a failed detail lookup. These never abort the search."""
        self.logger.warning(
            "Failed to get book details",
            key=key,
            error=error,
            **self.context
        )

    def log_search_complete(self, result_count: int, duration_seconds: float) -> None:
        self.logger.info(
            "Book search completed",
            result_count=result_count,
            duration_seconds=round(duration_seconds, 3),
            **self.context
        )

    def log_search_failed(self, error: str) -> None:
        self.logger.error("Book search failed", error=error, **self.context)
