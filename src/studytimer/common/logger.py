import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(filename)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "studytimer"


# Attaches handlers to the package logger. Handlers are named so calling this twice never duplicates output;
# a second call only adjusts levels.
def configure_logging(
        level=logging.WARNING,
        log_dir: Path | None = None,
        console=True,
        max_bytes=5 * 1024 * 1024,
        backup_count=5,
) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    logger.propagate = False
    logger.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    console_handler_name = f"{ROOT_LOGGER}:console"
    if console and not any(h.get_name() == console_handler_name for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(fmt)
        console_handler.set_name(console_handler_name)
        logger.addHandler(console_handler)

    persistent_handler_name = f"{ROOT_LOGGER}:persistent"
    if log_dir is not None and not any(h.get_name() == persistent_handler_name for h in logger.handlers):
        log_dir.mkdir(parents=True, exist_ok=True)
        persistent_handler = RotatingFileHandler(
            filename=log_dir / f"{ROOT_LOGGER}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        persistent_handler.setFormatter(fmt)
        persistent_handler.set_name(persistent_handler_name)
        logger.addHandler(persistent_handler)

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger
