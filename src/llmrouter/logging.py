import logging

import structlog

LOG_FORMATS = ("console", "json")


def setup_logging(level: "str", fmt: "str" = "console") -> "None":
    """
    configures structlog on top of the stdlib logging module.

    "console" renders colored key=value lines for a terminal, "json"
    one JSON object per line for log shippers. Values bound with
    structlog.contextvars (the request id while routing) are merged
    into every event.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=numeric_level)
    # httpx logs every request at INFO, keep it quiet unless debugging
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

    renderer: "structlog.types.Processor"
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
