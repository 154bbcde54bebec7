"""
Unit tests for worker log prefixes.

Run: python3 -m pytest utils/__tests__/test_worker_logging.py -v
"""

import logging

from utils.worker_logging import EventLogContext, SessionLogContext


def test_session_prefix(caplog):
    with caplog.at_level(logging.INFO):
        SessionLogContext("abc=", "sendMessage").log_info("Message stored")

    assert "[WebSocketHandler:conn=abc=:action=sendMessage] Message stored" in caplog.text


def test_event_prefix_with_conversation(caplog):
    with caplog.at_level(logging.INFO):
        EventLogContext("shift-scheduled", "clinic#C1|prof#P1").log_warning("retrying")

    assert "[EventToMessage:event=shift-scheduled:convo=clinic#C1|prof#P1] retrying" in caplog.text


def test_event_prefix_without_conversation(caplog):
    with caplog.at_level(logging.INFO):
        EventLogContext("unknown").log_error("bad detail")

    assert "[EventToMessage:event=unknown] bad detail" in caplog.text
