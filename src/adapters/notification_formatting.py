"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html

from core.models import Notification

DIVIDER = "──────────────"


def _split_body(notification: Notification) -> list[tuple[str, str]]:
    """Split "Label: value" body lines into pairs; free text keeps an empty label."""

    pairs: list[tuple[str, str]] = []
    for line in notification.body.splitlines():
        label, sep, value = line.partition(": ")
        if sep and label and " " not in label:
            pairs.append((label, value))
        else:
            pairs.append(("", line))
    return pairs


def _format_markdown(notification: Notification) -> str:
    """Create the Markdown notification body used by Saved Messages."""

    # Telegram Markdown is supported by passing parse_mode="Markdown".
    def escape_md(value: str) -> str:
        for ch in r"*[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = [f"**{escape_md(notification.title)}**", DIVIDER]
    for label, value in _split_body(notification):
        if label:
            lines.append(f"**{escape_md(label)}:** {escape_md(value)}")
        else:
            lines.append(escape_md(value))
    lines.append(DIVIDER)
    return "\n".join(lines)


def _format_html(notification: Notification) -> str:
    """Create the HTML notification body used by the Bot API adapter."""

    parts = [f"<b>{html.escape(notification.title)}</b>", DIVIDER]
    for label, value in _split_body(notification):
        if label:
            parts.append(f"<b>{html.escape(label)}:</b> {html.escape(value)}")
        else:
            parts.append(html.escape(value))
    parts.append(DIVIDER)
    return "\n".join(parts)


def format_notification(notification: Notification, mode: str) -> str:
    """Return the notification formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(notification)
    if mode == "html":
        return _format_html(notification)
    if mode == "plain":
        return f"{notification.title}\n{notification.body}"
    raise ValueError(f"Unsupported notification format: {mode}")
