"""
PortScope: concurrent TCP port scanner with bounded time and concurrency.
"""

__version__ = "1.0.0"
