"""
System utilities for logging and process diagnostics

This module provides the logging setup shared by the host adapters and the
CLI, and psutil-based introspection of spawned language server processes.
"""

import logging
import sys
from datetime import datetime
from typing import Any

import psutil

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class MicrosecondFormatter(logging.Formatter):
    """Custom formatter that provides millisecond precision timestamps"""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created)
        return dt.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure the root logger for console output and an optional log file."""
    level = logging.DEBUG if verbose else logging.INFO
    formatter = MicrosecondFormatter(LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)


def get_process_info(pid: int | None) -> dict[str, Any]:
    """Get state information about a process as a dictionary"""
    if pid is None:
        return {"pid": None, "status": "not-started"}

    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            memory_info = proc.memory_info()
            return {
                "pid": pid,
                "status": proc.status(),
                "name": proc.name(),
                "rss_mb": memory_info.rss / 1024 / 1024,
                "create_time": datetime.fromtimestamp(proc.create_time()).isoformat(),
            }
    except psutil.NoSuchProcess:
        return {"pid": pid, "status": "exited"}
    except psutil.AccessDenied as e:
        return {"pid": pid, "status": "unknown", "error": str(e)}

