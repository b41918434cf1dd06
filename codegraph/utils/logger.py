from loguru import logger
from pathlib import Path
import sys

from ..config import settings


def setup_logging(log_level: str = "INFO", log_file: str = "logs/codegraph.log"):
    """Setup logging configuration."""
    logger.remove()

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Console logger goes to stderr so CLI output on stdout stays machine readable
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=log_level,
        colorize=True,
    )

    logger.add(
        log_file,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]} | {name}:{function}:{line} - {message}",
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )

    return logger.bind(component="codegraph")


def set_log_level(log_level: str):
    """Reconfigure sinks with a new level (used by the CLI --log-level flag)."""
    global app_logger
    app_logger = setup_logging(log_level, settings.log_file)
    return app_logger


app_logger = setup_logging(settings.log_level, settings.log_file)
