"""
Shared helpers for the harmonization commands: run logging, output paths,
retries of remote calls and YAML loading.
"""

import functools
import logging
import re
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

# =============================================================================
# Logging and Timing Utilities
# =============================================================================

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def setup_logging(
    verbose: bool,
    pipeline: Optional[str] = None,
    command: Optional[str] = None,
    enable_file_logging: bool = False
) -> None:
    """
    Route run logs to stdout, and to logs/<pipeline>_<command>_<timestamp>.log on request.

    Called once per CLI command; reconfigures the root logger so the
    per-source summary of a run ends up in the same file as its stage logs.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if enable_file_logging and pipeline and command:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = ensure_directory(Path("logs")) / f"{pipeline}_{command}_{stamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
        print(f"Run log: {log_file}")

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True
    )


def format_duration(seconds: float) -> str:
    """Run duration for the summary block ('12.3s', '1m 15.0s')."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m {secs:.1f}s"


# =============================================================================
# Filesystem and Path Operations
# =============================================================================

def ensure_directory(path: Path) -> Path:
    """Create an output or log directory if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def clean_filename(filename: str) -> str:
    """
    Make a CRS name or layer label usable in an output file name.

    Characters Windows forbids in paths become underscores; runs of
    underscores collapse to one.
    """
    return re.sub(r'_+', '_', re.sub(r'[<>:"/\\|?*]', '_', filename)).strip('_')


# =============================================================================
# Retry and Backoff Mechanisms
# =============================================================================

def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Callable:
    """
    Retry a remote call (WFS request, gazetteer lookup) with exponential backoff.

    The wrapped call runs at most max_retries + 1 times, waiting
    base_delay * backoff_factor ** n seconds after the n-th failure. Only the
    listed exception types are retried; the last one is re-raised so the
    caller can mark the source unavailable.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        logging.error(f"Giving up on {func.__name__} after {attempts} attempts: {e}")
                        raise
                    delay = base_delay * backoff_factor ** (attempt - 1)
                    logging.warning(f"{func.__name__} failed ({attempt}/{attempts}): {e}; next attempt in {delay:.1f}s")
                    time.sleep(delay)

        return wrapper
    return decorator


# =============================================================================
# Configuration Helpers
# =============================================================================

def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """
    Read a pipeline YAML; an empty file yields an empty mapping.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is not valid YAML
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {file_path}: {e}") from e
