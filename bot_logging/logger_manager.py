"""
Centralized logging for the Chainlink mempool watcher.

Provides standardized logging with JSON and human-readable formatters,
per-module log files, and structured deep-dive logging of every
prediction that leaves a pipeline.

Usage:
    from bot_logging.logger_manager import setup_module_logger, create_module_log_directories

    create_module_log_directories()
    logger = setup_module_logger('my_logger', 'my_module.log', module_folder='Pipeline_Logs')
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from config.loader import get_config
from shared.serialization_utils import DecimalEncoder

# Resolve project root
_PROJECT_ROOT = Path(__file__).parent.parent

# Load logging config
_app_config = get_config().get_app_config()

_LOG_DIR = str(_PROJECT_ROOT / _app_config.get("logging", {}).get("log_dir", "logs"))
_MODULE_FOLDERS = _app_config.get("logging", {}).get(
    "module_folders",
    {
        "main": "Main_Logs",
        "mempool_stream": "Mempool_Stream_Logs",
        "pipeline": "Pipeline_Logs",
        "watcher": "Watcher_Logs",
        "oracle_registry": "Oracle_Registry_Logs",
        "deep_dive": "Deep_Dive_Logs",
    },
)


# ============================================================================
# FORMATTERS
# ============================================================================


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter with correlation ID support."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        # Correlation id passed by the deep-dive helpers
        if hasattr(record, "trace_id"):
            log_entry["trace_id"] = record.trace_id
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Pretty-printed log formatter for console and human-readable files."""

    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self.FORMAT, datefmt=self.DATE_FORMAT)


# ============================================================================
# LOGGER FACTORY
# ============================================================================

_logger_cache: dict[str, logging.Logger] = {}


def create_module_log_directories() -> dict[str, str]:
    """
    Create organized log directory structure.

    Returns dict mapping folder key to absolute path.
    """
    created = {}
    os.makedirs(_LOG_DIR, exist_ok=True)
    for key, folder_name in _MODULE_FOLDERS.items():
        folder_path = os.path.join(_LOG_DIR, folder_name)
        os.makedirs(folder_path, exist_ok=True)
        created[key] = folder_path
    return created


def setup_module_logger(
    name: str,
    log_file: str,
    level: int = logging.INFO,
    module_folder: str | None = None,
    use_json_formatter: bool = False,
    console: bool = False,
) -> logging.Logger:
    """
    Create a module-specific logger with file and optional console handlers.

    Args:
        name: Logger name (should be unique per module/component).
        log_file: Log filename (placed inside module_folder if specified).
        level: Logging level (default INFO).
        module_folder: Subfolder within logs/ directory (e.g., 'Pipeline_Logs').
        use_json_formatter: Use structured JSON format (default False = human-readable).
        console: Also emit to stderr (used by the entrypoint).

    Returns:
        Configured logging.Logger instance.
    """
    # Return cached logger if already created
    cache_key = f"{name}:{module_folder}:{log_file}"
    if cache_key in _logger_cache:
        return _logger_cache[cache_key]

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        _logger_cache[cache_key] = logger
        return logger

    # Determine log file path
    if module_folder:
        log_path = os.path.join(_LOG_DIR, module_folder, log_file)
    else:
        log_path = os.path.join(_LOG_DIR, log_file)
    os.makedirs(os.path.dirname(log_path), exist_ok=True)

    # Select formatter
    formatter: logging.Formatter
    if use_json_formatter:
        formatter = JSONFormatter()
    else:
        formatter = HumanReadableFormatter()

    # File handler
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(HumanReadableFormatter())
        logger.addHandler(console_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    _logger_cache[cache_key] = logger
    return logger


def setup_deep_dive_logger() -> logging.Logger:
    """Create the centralized deep-dive data tracing logger."""
    return setup_module_logger(
        "deep_dive",
        "deep_dive_trace.log",
        module_folder="Deep_Dive_Logs",
        use_json_formatter=True,
    )


_deep_dive_logger: logging.Logger | None = None


def get_deep_dive_logger() -> logging.Logger:
    """Get or create the deep-dive logger (lazy singleton)."""
    global _deep_dive_logger
    if _deep_dive_logger is None:
        _deep_dive_logger = setup_deep_dive_logger()
    return _deep_dive_logger


# ============================================================================
# STRUCTURED LOGGING HELPERS (Deep-dive tracing)
# ============================================================================


def log_data_entry(
    trace_id: str,
    source_module: str,
    what: str,
    why: str,
    data_type: str,
    data: Any,
    previous_stage: str | None = None,
) -> None:
    """Log a data entry event to the deep-dive trace log."""
    logger = get_deep_dive_logger()
    logger.info(
        json.dumps(
            {
                "event": "DATA_ENTRY",
                "trace_id": trace_id,
                "source_module": source_module,
                "what": what,
                "why": why,
                "data_type": data_type,
                "data": data,
                "previous_stage": previous_stage,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            cls=DecimalEncoder,
        ),
        extra={"trace_id": trace_id},
    )


def log_data_output(
    trace_id: str,
    source_module: str,
    what: str,
    why: str,
    data_type: str,
    data: Any,
    next_stage: str,
) -> None:
    """Log a data output event to the deep-dive trace log."""
    logger = get_deep_dive_logger()
    logger.info(
        json.dumps(
            {
                "event": "DATA_OUTPUT",
                "trace_id": trace_id,
                "source_module": source_module,
                "what": what,
                "why": why,
                "data_type": data_type,
                "data": data,
                "next_stage": next_stage,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            cls=DecimalEncoder,
        ),
        extra={"trace_id": trace_id},
    )
