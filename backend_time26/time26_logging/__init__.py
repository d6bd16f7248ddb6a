"""
Structured logging for Backend TIME26.

JSON logs with timestamp, event_type and keyword context; wei amounts as strings, secrets redacted.
"""

from backend_time26.time26_logging.logger import bind_wallet, get_logger

__all__ = ["bind_wallet", "get_logger"]
