"""
Unit tests for models.relay.

Tests:
- normalize_relay_url() canonical form
- filter_relay_url() under strict and neutral profiles
- filter_relay_urls() de-duplication and rejection report
"""

import pytest

from outbench.models.constants import FilterProfile, FilterReason
from outbench.models.relay import (
    dedupe_and_normalize,
    filter_relay_url,
    filter_relay_urls,
    normalize_relay_url,
)


class TestNormalizeRelayUrl:
    """Tests for normalize_relay_url()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("wss://relay.damus.io", "wss://relay.damus.io"),
            ("Relay.Damus.io/", "wss://relay.damus.io"),
            ("https://nos.lol:443", "wss://nos.lol"),
            ("ws://relay.example.com:7777/nostr/", "wss://relay.example.com:7777/nostr"),
            ("  wss://nos.lol  ", "wss://nos.lol"),
        ],
    )
    def test_normalized(self, raw: str, expected: str) -> None:
        """Test canonicalization of usable URLs."""
        assert normalize_relay_url(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "ftp://nos.lol"])
    def test_unusable(self, raw: str) -> None:
        """Test that unusable input yields None."""
        assert normalize_relay_url(raw) is None

    def test_dedupe(self) -> None:
        """Test that spellings of one relay collapse."""
        assert dedupe_and_normalize(["wss://nos.lol/", "nos.lol", "ftp://x"]) == ["wss://nos.lol"]


class TestFilterRelayUrl:
    """Tests for filter_relay_url()."""

    @pytest.mark.parametrize(
        ("url", "reason"),
        [
            ("wss://localhost:7777", FilterReason.LOCALHOST),
            ("wss://192.168.1.10", FilterReason.IP_ADDRESS),
            ("ws://relay.example.com", FilterReason.INSECURE_WS),
            ("wss://feeds.nostr.band", FilterReason.KNOWN_BAD),
        ],
    )
    def test_strict_rejects(self, url: str, reason: FilterReason) -> None:
        """Test each strict rejection reason."""
        result = filter_relay_url(url, FilterProfile.STRICT)
        assert not result.accepted
        assert result.reason == reason

    def test_strict_accepts_onion_over_ws(self) -> None:
        """Test that plaintext onion relays are allowed."""
        result = filter_relay_url("ws://abcdefghijklmnop.onion", FilterProfile.STRICT)
        assert result.accepted

    def test_neutral_keeps_localhost(self) -> None:
        """Test that the neutral profile only normalizes."""
        result = filter_relay_url("ws://localhost:7777", FilterProfile.NEUTRAL)
        assert result.accepted
        assert result.url == "wss://localhost:7777"

    def test_filter_many(self) -> None:
        """Test the accepted set and rejection report for many URLs."""
        accepted, report = filter_relay_urls(
            ["wss://nos.lol", "nos.lol/", "wss://127.0.0.1", "ws://plain.example.com"],
            FilterProfile.STRICT,
        )
        assert accepted == ["wss://nos.lol"]
        assert report.total_removed == 2
        assert report.to_dict()["insecureWs"] == ["ws://plain.example.com"]
