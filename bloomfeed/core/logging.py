# bloomfeed/core/logging.py
import logging
import sys
import colorlog

# Driver/client loggers that flood DEBUG with per-request chatter
_NOISY_LOGGERS = ("pymongo", "motor", "httpx", "httpcore", "openai")

_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def configure_logging(level=logging.INFO, *, noisy_level=logging.WARNING):
    """
    One colored stdout handler on the root logger. Pipeline modules log through
    logging.getLogger(__name__) and inherit it; uvicorn follows the app level.
    """
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s.%(msecs)03d %(levelname)-8s [%(name)s]%(reset)s %(message)s",
            datefmt="%H:%M:%S",
            log_colors=_LOG_COLORS,
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
