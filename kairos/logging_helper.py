"""
Logging helper module for terminal-first logging.
All output goes to stdout with formatted prefixes, and also to a log file.

The log file lives in KAIROS_LOG_DIR (default: ./logs) and is opened on the
first write. Set KAIROS_LOG_FILE=0 to log to stdout only.
"""

import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

_log_lock = threading.Lock()
_log_file: Optional[TextIO] = None
_log_file_path: Optional[Path] = None


def _file_logging_enabled() -> bool:
    return os.environ.get("KAIROS_LOG_FILE", "1").lower() not in ("0", "false", "no")


def _open_log_file() -> Optional[TextIO]:
    """Open the timestamped log file on first use."""
    global _log_file, _log_file_path
    if _log_file is None and _file_logging_enabled():
        log_dir = Path(os.environ.get("KAIROS_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        _log_file_path = log_dir / f"kairos_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        _log_file = open(_log_file_path, 'a', encoding='utf-8')
    return _log_file


def _log(message: str):
    """Write message to both stdout and log file."""
    with _log_lock:
        print(message)
        log_file = _open_log_file()
        if log_file is not None:
            log_file.write(message + '\n')
            log_file.flush()


class Log:
    """Simple logging class that outputs to stdout and log file with formatted prefixes."""

    @staticmethod
    def section(title: str):
        """Print a section header: blank line + '===== TITLE ====='"""
        _log("")
        _log(f"===== {title} =====")

    @staticmethod
    def info(message: str):
        """Print an info message: '[INFO] message'"""
        _log(f"[INFO] {message}")

    @staticmethod
    def warn(message: str):
        """Print a warning message: '[WARN] message'"""
        _log(f"[WARN] {message}")

    @staticmethod
    def error(message: str):
        """Print an error message: '[ERROR] message'"""
        _log(f"[ERROR] {message}")

    @staticmethod
    def kv(pairs: dict):
        """
        Print key-value pairs: '[KV] key=value | key2=value2'

        Args:
            pairs: Dictionary of key-value pairs to print
        """
        kv_string = " | ".join([f"{k}={v}" for k, v in pairs.items()])
        _log(f"[KV] {kv_string}")

    @staticmethod
    def get_log_path() -> Optional[str]:
        """Get the path to the current log file (None until something was logged)."""
        return str(_log_file_path) if _log_file_path is not None else None
