import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    verbose: bool = False, log_file: Union[str, Path, None] = None
) -> logging.Logger:
    """Configure the ``fsdeploy`` logger for command line use.

    Messages go to stderr; with ``log_file`` they are also written to a
    rotating log file.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logger = logging.getLogger("fsdeploy")
    logger.setLevel(logging.DEBUG if verbose or log_file else logging.WARNING)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    logger.addHandler(stream_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            filename=Path(log_file).expanduser(),
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger
