"""
Logging setup for the engagement engine.

Handlers live on the top-level ``engagement`` logger only. Module loggers
obtained with ``logging.getLogger(__name__)`` propagate to it, so service
messages land in the same console stream and daily file.
"""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional, Union

from engagement.config import Config

PACKAGE_LOGGER = 'engagement'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def log_file_path(log_dir: Union[str, Path], day: Optional[date] = None) -> Path:
    """Daily log file, e.g. logs/engagement_20250602.log"""
    day = day or date.today()
    return Path(log_dir) / f'engagement_{day:%Y%m%d}.log'


def _configure_package_logger(log_dir: Union[str, Path]) -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    level = logging.DEBUG if Config.DEBUG else logging.INFO
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    path = log_file_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, encoding='utf-8')
    # The file keeps debug detail even when the console does not
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    return root


def setup_logger(name: str, log_dir: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Get a logger inside the engagement hierarchy, configuring handlers on first use.

    Args:
        name: Logger name, normally ``__name__`` of the calling module
        log_dir: Directory for the daily file, defaults to Config.LOG_DIR

    Returns:
        The named logger; names outside the package are nested under it
    """
    _configure_package_logger(log_dir or Config.LOG_DIR)
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + '.'):
        name = f'{PACKAGE_LOGGER}.{name}'
    return logging.getLogger(name)
