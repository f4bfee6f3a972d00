import logging
import logging.handlers

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

FILE_FORMAT = (
    "%(asctime)s - %(levelname)s - "
    "%(filename)s:%(lineno)d in %(funcName)s() - "
    "%(message)s"
)


def setup_logging(settings: Settings) -> None:
    """
    Console (rich) plus a nightly rotated log file with identical content.
    Safe to call more than once; previous handlers are replaced.
    """
    log_dir = settings.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)

    rich_handler = RichHandler(
        console=Console(width=120, stderr=True),
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(settings.log_level)

    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=settings.log_file_path,
        when="midnight",
        interval=1,
        backupCount=settings.log_retention_days,
        encoding="utf-8",
    )
    file_handler.setLevel(settings.log_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(rich_handler)
    root_logger.addHandler(file_handler)

    # Access logs for the control API are noise next to mount activity
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        f"Logging initialized - File: {settings.log_file_path}, "
        f"Level: {settings.log_level}, Retention: {settings.log_retention_days} days"
    )
