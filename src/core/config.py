"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

# Ordered most specific first: broad selectors tend to match an unrelated
# ancestor of the transcript.
DEFAULT_CONTAINER_SELECTORS: Tuple[str, ...] = (
    ".chat-content",
    ".bubbles",
    ".messages-container",
    ".history",
    'div[role="main"]',
    ".message-list-wrapper",
    ".chat-container",
    ".messages-layout",
    'div[class^="messages"]',
    ".chat-history",
    ".messages-list",
    ".dialog-messages",
    ".messages",
    "#message-list",
    "#chat-content",
)

DEFAULT_MESSAGE_SELECTORS: Tuple[str, ...] = (
    ".Message",
    ".message",
    ".text-content",
    ".message-content",
    ".message-text",
    ".text-entity",
    ".message-text-content",
    'div[class*="message"]',
    'div[class*="text"]',
    ".bubble",
)

DEFAULT_SENDER_SELECTORS: Tuple[str, ...] = (
    ".sender-name",
    ".peer-title",
    ".name",
    ".from-name",
    ".message-author",
    ".author",
)

DEFAULT_TEXT_FALLBACK_SELECTORS: Tuple[str, ...] = (
    ".text-content",
    ".message-text",
    ".text-entity",
)


@dataclass(frozen=True)
class SelectorConfig:
    """Structural hints used to find the transcript and its messages."""

    container: Tuple[str, ...] = DEFAULT_CONTAINER_SELECTORS
    message: Tuple[str, ...] = DEFAULT_MESSAGE_SELECTORS
    sender: Tuple[str, ...] = DEFAULT_SENDER_SELECTORS
    text_fallback: Tuple[str, ...] = DEFAULT_TEXT_FALLBACK_SELECTORS


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for the core pipeline."""

    cap: int = 1000
    bucket_seconds: float = 60.0
    staleness_seconds: float = 300.0


@dataclass(frozen=True)
class MonitorConfig:
    """Timings and budgets for the monitor state machine (seconds)."""

    max_retries: int = 5
    retry_interval: float = 5.0
    locator_attempts: int = 3
    locator_delay: float = 1.0
    heartbeat_interval: float = 60.0
    heartbeat_timeout: float = 120.0
    full_scan_interval: float = 300.0
    health_check_interval: float = 30.0
    cache_reset_interval: float = 3600.0
    recovery_attempts: int = 3
    recovery_delay: float = 2.0
    keyword_cache_ttl: float = 5.0


@dataclass(frozen=True)
class NotificationConfig:
    """Notification formatting settings consumed by the pipeline and notifiers."""

    title: str = "Keyword Match Found"
    snippet_chars: int = 100
    require_interaction: bool = True
