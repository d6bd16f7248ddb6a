"""
Logging setup: importable from anywhere, wei-safe and secret-free event dicts.
"""

from __future__ import annotations

from backend_time26.time26_logging import logger as logger_module


def test_logging_import():
    """Import get_logger from time26_logging and use the logger."""
    from backend_time26.time26_logging import get_logger

    logger = get_logger("test")
    assert hasattr(logger, "critical")
    logger.info("test_message", key="value")


def test_bind_wallet_logger():
    from backend_time26.time26_logging import bind_wallet

    log = bind_wallet("user-1", "0x" + "aa" * 20)
    log.info("test_bound_message", amount="1")


def test_large_amounts_are_rendered_as_strings():
    event = {"amount": 86301369863013698630136, "participants": 3, "ok": True}
    out = logger_module._stringify_wei(None, "info", event)
    assert out == {"amount": "86301369863013698630136", "participants": 3, "ok": True}


def test_secret_keys_are_redacted():
    event = {"operator_private_key": "0x11", "authorization": "Bearer s3cret", "tx_hash": "0xab"}
    out = logger_module._redact_secrets(None, "info", event)
    assert out["operator_private_key"] == "[redacted]"
    assert out["authorization"] == "[redacted]"
    assert out["tx_hash"] == "0xab"


def test_event_renamed_to_event_type():
    out = logger_module._event_type(None, "info", {"event": "settlement_completed"})
    assert out == {"event_type": "settlement_completed"}
