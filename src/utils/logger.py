import logging
import os

from rich.logging import RichHandler

_log_file: str | None = None


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # grows with the longest logger name seen

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, initial_width
        )

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        width = CenteredFormatter.longest_name_length
        record = logging.makeLogRecord(record.__dict__)
        record.name = record.name.center(width)
        return super().format(record)


def configure_log_file(path) -> None:
    """
    Route every logger created from now on to a plain text file as well.
    Textual owns the terminal while the app runs, so the file is the only
    readable trail of a live session.
    """
    global _log_file
    _log_file = str(path) if path else None
    if not _log_file:
        return
    for logger in logging.Logger.manager.loggerDict.values():
        if isinstance(logger, logging.Logger) and logger.handlers:
            _attach_file_handler(logger)


def _attach_file_handler(logger: logging.Logger) -> None:
    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return
    file_handler = logging.FileHandler(_log_file, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] %(message)s")
    )
    file_handler.setLevel(logger.level)
    logger.addHandler(file_handler)


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    """
    if name is None:
        name = "shopper"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if os.getenv("DEBUG") else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        formatter = CenteredFormatter("[%(name)s]  %(message)s")

        console_handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        logger.addHandler(console_handler)

        if _log_file:
            _attach_file_handler(logger)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
