from __future__ import annotations

import pytest

from core.errors import PipelineError
from core.normalizer import clean_message_text, normalize_for_fingerprint


def test_collapses_whitespace() -> None:
    assert clean_message_text("  server \n\t down  ") == "server down"


def test_strips_repeated_clock_times() -> None:
    assert clean_message_text("deploy finished 10:31 AM10:31 AM") == "deploy finished"


def test_strips_repeated_day_labels() -> None:
    assert clean_message_text("TodayToday build is red") == "build is red"


def test_keeps_one_copy_of_repeated_dates_and_domains() -> None:
    assert clean_message_text("due 2024/01/02 2024/01/02") == "due 2024/01/02"
    assert clean_message_text("see example.com example.com") == "see example.com"


def test_strips_role_badges_on_word_boundaries() -> None:
    assert clean_message_text("admin Admin restart the robot") == "restart the robot"


def test_whitespace_only_text_becomes_empty() -> None:
    assert clean_message_text(" \n ") == ""


def test_rejects_non_text() -> None:
    with pytest.raises(PipelineError):
        clean_message_text(None)  # type: ignore[arg-type]


def test_fingerprint_normalization_is_case_insensitive() -> None:
    assert normalize_for_fingerprint(" Server  DOWN ") == "server down"


def test_single_role_words_are_kept_as_message_text() -> None:
    assert clean_message_text("ask the admin to restart the bot") == "ask the admin to restart the bot"
    assert clean_message_text("Alice adminadmin ping the bot") == "Alice ping the bot"
