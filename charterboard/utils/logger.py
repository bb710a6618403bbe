import logging
import sys
from pathlib import Path

from charterboard.config.settings import settings

# Create logs directory if it doesn't exist
log_dir = Path(__file__).resolve().parents[2] / 'logs'
log_dir.mkdir(exist_ok=True)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def resolve_level(level_name: str) -> int:
    """Map a LOG_LEVEL value ("debug", "WARNING", ...) to a logging level, INFO if unknown."""
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level_name: str = None) -> logging.Logger:
    """
    Get or create a logger writing to stdout and logs/leaderboard.log

    Args:
        name: Logger name (usually __name__ from calling module)
        level_name: Overrides settings.log_level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(resolve_level(level_name or settings.log_level))

        formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)

        file_handler = logging.FileHandler(log_dir / 'leaderboard.log')
        file_handler.setFormatter(formatter)

        logger.addHandler(console_handler)
        logger.addHandler(file_handler)

    return logger


# Create a default logger instance for convenience
logger = get_logger('charterboard')
