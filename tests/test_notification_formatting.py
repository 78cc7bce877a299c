from __future__ import annotations

import pytest

from adapters.notification_formatting import DIVIDER, format_notification
from adapters.telegram_bot_notifier import TelegramBotNotifier
from core.models import Notification


def _notification(**overrides) -> Notification:
    values = {
        "title": "Keyword Match Found",
        "body": "From: ops*bot\nKeyword: server down\nMessage: is the server down? <b>\nTime: 14:07:09 05-03-2024",
    }
    values.update(overrides)
    return Notification(**values)


def test_markdown_escapes_and_bolds_labels() -> None:
    text = format_notification(_notification(), mode="markdown")
    lines = text.split("\n")
    assert lines[0] == "**Keyword Match Found**"
    assert lines[1] == DIVIDER
    assert lines[2] == "**From:** ops\\*bot"
    assert "**Time:** 14:07:09 05-03-2024" in lines
    assert lines[-1] == DIVIDER


def test_html_escapes_message_text() -> None:
    text = format_notification(_notification(), mode="html")
    assert "<b>Message:</b> is the server down? &lt;b&gt;" in text


def test_free_text_lines_keep_no_label() -> None:
    text = format_notification(_notification(body="just a line with: colon inside"), mode="html")
    assert "just a line with: colon inside" in text
    assert "<b>just a line with:</b>" not in text


def test_plain_mode() -> None:
    text = format_notification(_notification(body="Keyword: urgent"), mode="plain")
    assert text == "Keyword Match Found\nKeyword: urgent"


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_notification(_notification(), mode="rtf")


def test_bot_payload_rings_only_for_interactive_alerts() -> None:
    notifier = TelegramBotNotifier(bot_token="t", chat_id="42")

    loud = notifier._build_payload(_notification())
    quiet = notifier._build_payload(_notification(require_interaction=False))

    assert loud["chat_id"] == "42"
    assert loud["parse_mode"] == "HTML"
    assert loud["disable_notification"] is False
    assert quiet["disable_notification"] is True
