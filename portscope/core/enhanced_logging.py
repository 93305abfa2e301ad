#!/usr/bin/env python3
"""
Logging configuration for PortScope
Console output plus rotating app, error and audit logs
"""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .scan_config import get_scan_config

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
AUDIT_FORMAT = '%(asctime)s - AUDIT - %(message)s'

MB = 1024 * 1024

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ('werkzeug', 'asyncio')


def _rotating_handler(path: Path, max_mb: int, backups: int, level: int, fmt: str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * MB, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


class EnhancedLogger:
    """Installs the root handlers and the separate audit channel.

    Scan modules log through ``logging.getLogger(__name__)``; audit records
    go to ``<app_name>.audit`` only and never reach the console.
    """

    def __init__(self, app_name="portscope", logs_dir: Optional[Path] = None, level: Optional[str] = None):
        config = get_scan_config()
        self.app_name = app_name
        self.logs_dir = Path(logs_dir) if logs_dir else config.logs_dir
        self.level = getattr(logging, (level or config.log_level).upper(), logging.INFO)
        self.handlers = []
        self.setup_logging()

    @property
    def audit_name(self) -> str:
        return f"{self.app_name}.audit"

    def setup_logging(self):
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        root_logger.handlers.clear()

        console = logging.StreamHandler()
        console.setLevel(self.level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))

        self.handlers = [
            console,
            _rotating_handler(self.logs_dir / "app.log", 10, 5, self.level, FILE_FORMAT),
            _rotating_handler(self.logs_dir / "errors.log", 5, 10, logging.ERROR, FILE_FORMAT),
        ]
        for handler in self.handlers:
            root_logger.addHandler(handler)

        audit_handler = _rotating_handler(self.logs_dir / "audit.log", 10, 20, logging.INFO, AUDIT_FORMAT)
        audit_logger = logging.getLogger(self.audit_name)
        audit_logger.handlers.clear()
        audit_logger.addHandler(audit_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False
        self.handlers.append(audit_handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        logger = logging.getLogger(self.app_name)
        logger.info(f"Logging initialized at {logging.getLevelName(self.level)}, files in {self.logs_dir.absolute()}")

    def close(self):
        """Detach and close every handler installed by setup_logging"""
        audit_logger = logging.getLogger(self.audit_name)
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            audit_logger.removeHandler(handler)
            handler.close()
        self.handlers = []


# Global logger instance
enhanced_logger: Optional[EnhancedLogger] = None


def init_enhanced_logging(app_name="portscope", logs_dir: Optional[Path] = None,
                          level: Optional[str] = None) -> EnhancedLogger:
    """Initialize logging globally; replaces any previous setup"""
    global enhanced_logger
    if enhanced_logger is not None:
        enhanced_logger.close()
    enhanced_logger = EnhancedLogger(app_name, logs_dir=logs_dir, level=level)
    return enhanced_logger


def log_audit_event(event_type: str, details: Dict[str, Any], app_name: str = "portscope"):
    """Write one structured audit record"""
    record = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'details': details,
    }
    logging.getLogger(f"{app_name}.audit").info(json.dumps(record, default=str))
