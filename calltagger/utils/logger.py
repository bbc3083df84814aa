import logging
import os
import sys
from logging.handlers import RotatingFileHandler


def _log_dir() -> str:
    return os.environ.get("CALLTAGGER_LOG_DIR") or os.path.join(
        os.path.expanduser("~"), ".calltagger", "logs"
    )


def setup_logger(name="calltagger", level=logging.INFO):
    """
    Configure a logger writing to a rotating file and stderr.
    stdout is left alone: the CLI prints results there.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Already configured (module re-imported or called twice)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    log_dir = _log_dir()
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "calltagger.log")

    # Max 5MB, keep 3 backups
    file_handler = RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def set_log_level(level) -> None:
    """Apply a level name ('DEBUG', 'INFO', ...) or number to the package logger."""
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")
    logger.setLevel(level)


logger = setup_logger()
