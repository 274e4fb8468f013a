"""structlog configuration shared by the API process and scripts."""

import logging
import sys

import structlog


def configure_logging(json_output: bool = True, level: int = logging.INFO) -> None:
    """Configure structlog (and stdlib logging) once per process.

    JSON output for deployed environments, key=value console output for local runs.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # tenacity's before_sleep_log and uvicorn go through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
