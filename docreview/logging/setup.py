from __future__ import annotations

import logging
from pathlib import Path

LOGGER_NAME = "docreview"
LOG_FILENAME = "docreview.log"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"


def configure_logging(log_dir: str | Path, *, verbose: bool = False) -> logging.Logger:
    """
    Send the ``docreview`` logger to ``<log_dir>/docreview.log`` (DEBUG) and the console.

    Calling it again with the same directory only adjusts the console level;
    a different directory replaces the handlers installed by the earlier call.
    """
    log_path = (Path(log_dir).expanduser() / LOG_FILENAME).resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    console_level = logging.DEBUG if verbose else logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
    if any(h.baseFilename == str(log_path) for h in file_handlers):
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(console_level)
        return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.debug("Logging to %s", log_path)
    return logger


__all__ = ["LOG_FILENAME", "configure_logging"]
