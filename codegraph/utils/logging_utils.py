# codegraph/utils/logging_utils.py
import logging
import sys

NOISY_LOGGERS = ("httpx", "httpcore", "chromadb", "filelock")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configures root logging for the engine.
    Every module logger (logging.getLogger(__name__)) inherits this handler and level
    unless it is configured otherwise.
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        print(f"Warning: Invalid log level '{log_level}' in settings. Defaulting to INFO.", file=sys.stderr)
        numeric_level = logging.INFO

    root_logger = logging.getLogger()

    # Drop handlers from a previous setup so messages are not duplicated
    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)-35s | %(module)s.%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
