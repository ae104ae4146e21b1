from __future__ import annotations

import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from practice_research.tools.web_utils import (
    domain_allowed,
    epoch_to_iso,
    extract_domain,
    parse_iso_datetime,
    sanitize_ssl_keylogfile,
    strip_tags,
    tokenize,
    unique,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.Reddit.com/r/node", "reddit.com"),
        ("https://docs.python.org:443/3/", "docs.python.org"),
        ("not a url", "unknown"),
        ("", "unknown"),
        (None, "unknown"),
    ],
)
def test_extract_domain(url, expected):
    assert extract_domain(url) == expected


def test_tokenize_lowercases_and_drops_punctuation():
    assert tokenize("Node.js: Error-Handling, a/b & CI!") == ["node", "js", "error-handling", "ci"]
    assert tokenize("React 最佳实践") == ["react", "最佳实践"]
    assert tokenize(None) == []


def test_unique_preserves_order():
    assert unique(["b", "a", "", "b", "c"]) == ["b", "a", "c"]


def test_strip_tags_collapses_whitespace():
    assert strip_tags("<b>Hello</b>\n  <i>world</i>") == "Hello world"


def test_domain_allowed_matches_subdomains():
    assert domain_allowed("anything.dev", [])
    assert domain_allowed("nodejs.org", ["nodejs.org"])
    assert domain_allowed("docs.nodejs.org", ["nodejs.org"])
    assert not domain_allowed("evilnodejs.org", ["nodejs.org"])


def test_time_helpers():
    assert epoch_to_iso(0) is None
    assert epoch_to_iso("1700000000") == "2023-11-14T22:13:20Z"
    assert parse_iso_datetime("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_iso_datetime("garbage") is None


def test_sanitize_ssl_keylogfile_unsets_unwritable_path():
    with patch.dict(os.environ, {"SSLKEYLOGFILE": "/tmp/keylog/virtual_file.log"}, clear=False):
        with patch("pathlib.Path.exists", return_value=True):
            with patch("builtins.open", side_effect=PermissionError):
                sanitize_ssl_keylogfile()
        assert "SSLKEYLOGFILE" not in os.environ


def test_sanitize_ssl_keylogfile_unsets_missing_directory():
    with patch.dict(os.environ, {"SSLKEYLOGFILE": "/does-not-exist/keylog.log"}, clear=False):
        with patch("pathlib.Path.exists", return_value=False):
            sanitize_ssl_keylogfile()
        assert "SSLKEYLOGFILE" not in os.environ


def test_sanitize_ssl_keylogfile_keeps_usable_path():
    with patch.dict(os.environ, {"SSLKEYLOGFILE": "/tmp/keylog.log"}, clear=False):
        with patch("pathlib.Path.exists", return_value=True):
            with patch("builtins.open"):
                sanitize_ssl_keylogfile()
        assert os.environ.get("SSLKEYLOGFILE") == "/tmp/keylog.log"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-03-05T10:20:30.1234567Z", datetime(2024, 3, 5, 10, 20, 30, 123456, tzinfo=timezone.utc)),
        ("2024-03-05T10:20:30.5+00:00", datetime(2024, 3, 5, 10, 20, 30, 500000, tzinfo=timezone.utc)),
        ("2024-03-05", datetime(2024, 3, 5, tzinfo=timezone.utc)),
        ("Jan 1 2024", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ("March 5, 2024", datetime(2024, 3, 5, tzinfo=timezone.utc)),
        ("Tue, 05 Mar 2024 10:20:30 GMT", datetime(2024, 3, 5, 10, 20, 30, tzinfo=timezone.utc)),
    ],
)
def test_parse_iso_datetime_accepts_common_forms(value, expected):
    assert parse_iso_datetime(value) == expected
