"""
Logging Configuration Module.

Centralized logging configuration for the agentflow runtime.

Features:
- Configurable log levels per module
- Console and optional file logging
- Simple, detailed and JSON-like formats
"""

import logging
import os
from pathlib import Path
from typing import Optional


def _get_logging_config():
    """Get logging configuration from the settings model.

    The settings import is deferred so that importing this module never
    triggers configuration parsing during package initialization.
    """
    try:
        from agentflow.core.config import settings

        level = settings.log_level.upper()
    except Exception:
        level = os.getenv("AGENTFLOW_LOG_LEVEL", "INFO").upper()
    return {
        "log_level": level,
        "log_format": os.getenv("AGENTFLOW_LOG_FORMAT", "detailed"),
        "log_file_dir": os.getenv("AGENTFLOW_LOG_FILE_DIR", "logs"),
        "enable_file_logging": os.getenv("AGENTFLOW_ENABLE_FILE_LOGGING", "false").lower() in ("true", "1", "yes"),
    }


SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

_FORMATS = {"simple": SIMPLE_FORMAT, "detailed": DETAILED_FORMAT, "json": JSON_FORMAT}


# Module-specific log levels
MODULE_LOG_LEVELS = {
    "agentflow.agent_core": "INFO",
    "agentflow.agent_core.runtime": "DEBUG",
    "agentflow.agent_core.dispatch": "DEBUG",
    "agentflow.agent_core.approval": "DEBUG",
    "agentflow.agent_core.memory": "INFO",
    "agentflow.agent_core.repos": "INFO",
    "agentflow.agent_core.providers": "INFO",
    # Third-party libraries (reduce noise)
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "openai": "WARNING",
    "httpx": "WARNING",
    "asyncio": "WARNING",
}


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
) -> None:
    """
    Configure logging for the application.

    Nothing calls this on import; applications invoke it once at startup.

    Args:
        log_level: Override default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Override default format (simple, detailed, json)
        enable_file: Whether to enable file logging
    """
    config = _get_logging_config()
    level = (log_level or config["log_level"]).upper()
    fmt = log_format or config["log_format"]
    to_file = config["enable_file_logging"] if enable_file is None else enable_file

    formatter = logging.Formatter(_FORMATS.get(fmt, DETAILED_FORMAT), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if to_file:
        log_dir = Path(config["log_file_dir"])
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "agentflow.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Logging configured: level={level}, format={fmt}, file_logging={to_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)
