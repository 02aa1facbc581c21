# compliance/log_setup.py
# Logging setup for processes embedding the compliance core.
# Modules only call logging.getLogger(__name__); the host process configures handlers once.

import logging
from typing import Optional

from config import app_config


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Applies basicConfig from app_config (level overridable) and returns the package logger."""
    level_name = (level or app_config.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=app_config.LOG_FORMAT,
        datefmt=app_config.LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler()]
    )
    package_logger = logging.getLogger("compliance")
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))
    return package_logger
