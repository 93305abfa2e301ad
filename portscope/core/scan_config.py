#!/usr/bin/env python3
"""
Scan Configuration
Centralized, environment-driven settings for scan operations
"""

import os
from pathlib import Path
from typing import Any, Dict

PROBE_STRATEGIES = ("connect", "nmap")
SCHEDULES = ("window", "batch")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class ScanConfig:
    """Centralized configuration for scan operations"""

    # Hard band for the port-count ceiling
    MAX_PORTS_FLOOR = 50
    MAX_PORTS_CEILING = 100

    def __init__(self):
        self.load_config()

    def load_config(self):
        """Load configuration from environment and defaults"""
        self.logs_dir = Path(os.getenv('PORTSCOPE_LOGS_DIR', 'logs'))
        self.log_level = os.getenv('PORTSCOPE_LOG_LEVEL', 'INFO').upper()

        # Request limits
        self.max_ports = _clamp(
            _env_int('PORTSCOPE_MAX_PORTS', 100), self.MAX_PORTS_FLOOR, self.MAX_PORTS_CEILING
        )
        self.min_timeout_ms = max(1, _env_int('PORTSCOPE_MIN_TIMEOUT_MS', 100))
        self.max_timeout_ms = max(self.min_timeout_ms, _env_int('PORTSCOPE_MAX_TIMEOUT_MS', 10000))
        self.default_timeout_ms = _clamp(
            _env_int('PORTSCOPE_DEFAULT_TIMEOUT_MS', 1000), self.min_timeout_ms, self.max_timeout_ms
        )
        self.max_concurrency = max(1, _env_int('PORTSCOPE_MAX_CONCURRENCY', 10))
        self.default_concurrency = _clamp(
            _env_int('PORTSCOPE_DEFAULT_CONCURRENCY', 10), 1, self.max_concurrency
        )

        # Probe settings
        self.banner_timeout_ms = max(0, _env_int('PORTSCOPE_BANNER_TIMEOUT_MS', 500))
        self.probe_strategy = os.getenv('PORTSCOPE_PROBE_STRATEGY', 'connect').strip().lower()
        if self.probe_strategy not in PROBE_STRATEGIES:
            self.probe_strategy = 'connect'

        # Scheduler settings
        self.schedule = os.getenv('PORTSCOPE_SCHEDULE', 'window').strip().lower()
        if self.schedule not in SCHEDULES:
            self.schedule = 'window'
        self.batch_pause_ms = max(0, _env_int('PORTSCOPE_BATCH_PAUSE_MS', 100))
        self.scan_timeout = max(1, _env_int('PORTSCOPE_SCAN_TIMEOUT', 600))
        self.deadline_grace_ms = max(0, _env_int('PORTSCOPE_DEADLINE_GRACE_MS', 1000))

    def clamp_timeout(self, timeout_ms: int) -> int:
        return _clamp(timeout_ms, self.min_timeout_ms, self.max_timeout_ms)

    def clamp_concurrency(self, concurrency: int) -> int:
        return _clamp(concurrency, 1, self.max_concurrency)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            'logs_dir': str(self.logs_dir),
            'log_level': self.log_level,
            'max_ports': self.max_ports,
            'min_timeout_ms': self.min_timeout_ms,
            'max_timeout_ms': self.max_timeout_ms,
            'default_timeout_ms': self.default_timeout_ms,
            'max_concurrency': self.max_concurrency,
            'default_concurrency': self.default_concurrency,
            'banner_timeout_ms': self.banner_timeout_ms,
            'probe_strategy': self.probe_strategy,
            'schedule': self.schedule,
            'batch_pause_ms': self.batch_pause_ms,
            'scan_timeout': self.scan_timeout,
            'deadline_grace_ms': self.deadline_grace_ms,
        }


# Global instance
scan_config = ScanConfig()


def get_scan_config() -> ScanConfig:
    """Get global scan config instance"""
    return scan_config


def reload_scan_config() -> ScanConfig:
    """Re-read the environment into the global instance"""
    scan_config.load_config()
    return scan_config
