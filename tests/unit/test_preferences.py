"""Unit tests for preference merging."""

from __future__ import annotations

from harambee.users.service import merge_preferences


def test_defaults_fill_missing_keys() -> None:
    merged = merge_preferences({}, {})
    assert merged == {
        "notifications": {"email": True, "sms": False},
        "theme": "light",
        "language": "en",
        "timezone": "Africa/Nairobi",
    }


def test_nested_notifications_merge_key_by_key() -> None:
    stored = {"notifications": {"email": False, "sms": False}, "theme": "dark"}
    merged = merge_preferences(stored, {"notifications": {"sms": True}})
    assert merged["notifications"] == {"email": False, "sms": True}
    assert merged["theme"] == "dark"


def test_scalars_replace() -> None:
    merged = merge_preferences({"language": "en"}, {"language": "sw"})
    assert merged["language"] == "sw"
