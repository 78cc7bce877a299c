"""Core domain package for periscope.

Core contains container discovery, matching, deduplication and the monitor
state machine without any browser, Telegram or storage-specific code, keeping
the engine portable across host pages.
"""
