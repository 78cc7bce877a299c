"""Static configuration for periscope.

All user-editable settings (page, selectors, timings, dedup, notifications,
logging) live in a single JSON file for quick edits without touching Python.
Keywords and the on/off switch live in the SQLite store instead, because the
settings surface writes them while the monitor is running.
"""

import json
import os

from core.config import DedupConfig, MonitorConfig, NotificationConfig, SelectorConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite keyword store.
DB_PATH = os.path.join(PROJECT_ROOT, "periscope.db")

# PERISCOPE_CONFIG lets tests and multiple profiles point at another file.
CONFIG_PATH = os.getenv("PERISCOPE_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _selector_tuple(raw: dict, key: str, default: tuple) -> tuple:
    values = [value for value in raw.get(key, []) if isinstance(value, str) and value.strip()]
    return tuple(values) if values else default


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Page to open and where the browser profile (chat login) is kept.
_page = _CONFIG.get("page", {})
PAGE_URL = _page.get("url", "https://web.telegram.org/k/")
_user_data_dir = _page.get("user_data_dir", "browser-profile")
USER_DATA_DIR = _user_data_dir if os.path.isabs(_user_data_dir) else os.path.join(PROJECT_ROOT, _user_data_dir)
HEADLESS = bool(_page.get("headless", False))

# Structural hints, most specific first. Empty lists fall back to defaults.
_defaults = SelectorConfig()
_selectors = _CONFIG.get("selectors", {})
SELECTORS = SelectorConfig(
    container=_selector_tuple(_selectors, "container", _defaults.container),
    message=_selector_tuple(_selectors, "message", _defaults.message),
    sender=_selector_tuple(_selectors, "sender", _defaults.sender),
    text_fallback=_selector_tuple(_selectors, "text_fallback", _defaults.text_fallback),
)

# Timings (seconds) and budgets for the monitor state machine.
_monitor = _CONFIG.get("monitor", {})
_monitor_defaults = MonitorConfig()
MONITOR = MonitorConfig(
    max_retries=int(_monitor.get("max_retries", _monitor_defaults.max_retries)),
    retry_interval=float(_monitor.get("retry_interval", _monitor_defaults.retry_interval)),
    locator_attempts=int(_monitor.get("locator_attempts", _monitor_defaults.locator_attempts)),
    locator_delay=float(_monitor.get("locator_delay", _monitor_defaults.locator_delay)),
    heartbeat_interval=float(_monitor.get("heartbeat_interval", _monitor_defaults.heartbeat_interval)),
    heartbeat_timeout=float(_monitor.get("heartbeat_timeout", _monitor_defaults.heartbeat_timeout)),
    full_scan_interval=float(_monitor.get("full_scan_interval", _monitor_defaults.full_scan_interval)),
    health_check_interval=float(_monitor.get("health_check_interval", _monitor_defaults.health_check_interval)),
    cache_reset_interval=float(_monitor.get("cache_reset_interval", _monitor_defaults.cache_reset_interval)),
    recovery_attempts=int(_monitor.get("recovery_attempts", _monitor_defaults.recovery_attempts)),
    recovery_delay=float(_monitor.get("recovery_delay", _monitor_defaults.recovery_delay)),
    keyword_cache_ttl=float(_monitor.get("keyword_cache_ttl", _monitor_defaults.keyword_cache_ttl)),
)

# Deduplication controls to reduce notification spam for repeated content.
# - cap: hard limit on remembered fingerprints (oldest half evicted past it)
# - bucket_seconds: width of the time window folded into each fingerprint
# - staleness_seconds: how far behind the last match a message may be
_dedup = _CONFIG.get("dedup", {})
DEDUP = DedupConfig(
    cap=int(_dedup.get("cap", 1000)),
    bucket_seconds=float(_dedup.get("bucket_seconds", 60)),
    staleness_seconds=float(_dedup.get("staleness_seconds", 300)),
)

# Notification method switches adapters without changing core logic.
_notifications = _CONFIG.get("notifications", {})
NOTIFICATIONS = NotificationConfig(
    title=_notifications.get("title", "Keyword Match Found"),
    snippet_chars=int(_notifications.get("snippet_chars", 100)),
    require_interaction=bool(_notifications.get("require_interaction", True)),
)
NOTIFICATION_METHOD = _notifications.get("notification_method", "log")
# Bot chat id is only required when notification_method=bot.
BOT_CHAT_ID = _notifications.get("bot_chat_id")

# Command channel used by `periscope ctl`.
_control = _CONFIG.get("control", {})
CONTROL_HOST = _control.get("host", "127.0.0.1")
CONTROL_PORT = int(_control.get("port", 8765))

# Keywords copied into an empty store on first run.
SEED_KEYWORDS = [k for k in _CONFIG.get("keywords", []) if isinstance(k, str)]

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
