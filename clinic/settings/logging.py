import sys
from pathlib import Path
from typing import Any

from loguru import logger

from clinic.settings.settings import settings

LOCATION = "{name}:{function}:{line}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | " + LOCATION + " - {message}"
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    f"<cyan>{LOCATION}</cyan> - <level>{{message}}</level>"
)


def _file_sink(path: Path, level: str, retention: str) -> dict[str, Any]:
    return {
        "sink": path,
        "format": FILE_FORMAT,
        "level": level,
        "rotation": "1 day",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
    }


def setup_logging() -> None:
    """
    Route loguru output to stdout and to daily files under ``LOG_DIR``.

    ``clinic_*.log`` keeps every record for a month, ``errors_*.log`` keeps
    errors for a quarter. The console honours ``LOG_LEVEL``.
    """
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=settings.LOG_LEVEL)
    for name, level, retention in (
        ("clinic", "DEBUG", "30 days"),
        ("errors", "ERROR", "90 days"),
    ):
        logger.add(
            **_file_sink(log_dir / f"{name}_{{time:YYYY-MM-DD}}.log", level, retention),
        )
