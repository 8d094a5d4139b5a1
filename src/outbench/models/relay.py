"""
Relay URL normalization and filtering.

Every relay URL entering a benchmark input is reduced to the canonical
``wss://host[:port][/path]`` form: lowercase host, no credentials, query,
or fragment, no default port, and no trailing slash. ``http``, ``https``,
and ``ws`` schemes are upgraded to ``wss``; a bare hostname is assumed to
be ``wss``.

Filtering then optionally drops URLs a client would never dial under the
``strict`` profile (localhost, IP literals, plaintext clearnet, known-bad
relays) and records each rejection in a
[FilteredUrlReport][outbench.models.relay.FilteredUrlReport].

Examples:
    ```python
    normalize_relay_url("Relay.Damus.io/")      # 'wss://relay.damus.io'
    normalize_relay_url("https://nos.lol:443")  # 'wss://nos.lol'
    normalize_relay_url("ftp://nos.lol")        # None
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import Final

from rfc3986 import uri_reference
from rfc3986.exceptions import RFC3986Exception
from rfc3986.validators import Validator

from .constants import FilterProfile, FilterReason


RelayUrl = str
Pubkey = str

_PORT_WSS: Final = "443"
_UPGRADED_SCHEMES: Final = frozenset({"http", "https", "ws"})
_LOCALHOST_HOSTS: Final = frozenset({"localhost", "127.0.0.1", "::1", "[::1]"})

KNOWN_BAD_RELAYS: Final = frozenset(
    {
        "wss://feeds.nostr.band",
        "wss://filter.nostr.wine",
        "wss://nwc.primal.net",
        "wss://relay.getalby.com",
        "wss://nostr.mutinywallet.com",
    }
)


def normalize_relay_url(raw: str) -> RelayUrl | None:
    """Normalize *raw* to ``wss://host[:port][/path]``, or None if unusable."""
    value = (raw or "").strip()
    if not value:
        return None
    if "://" not in value:
        value = f"wss://{value}"

    try:
        uri = uri_reference(value).normalize()
        Validator().require_presence_of("scheme", "host").check_validity_of(
            "host", "port"
        ).validate(uri)
    except (RFC3986Exception, ValueError):
        return None

    scheme = (uri.scheme or "").lower()
    if scheme not in _UPGRADED_SCHEMES and scheme != "wss":
        return None

    host = (uri.host or "").lower()
    if not host:
        return None

    port = f":{uri.port}" if uri.port and uri.port != _PORT_WSS else ""
    return f"wss://{host}{port}{_strip_trailing_slash(uri.path or '')}"


def _strip_trailing_slash(path: str) -> str:
    if not path or path == "/":
        return ""
    while len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def _host_of(url: RelayUrl) -> str:
    return (uri_reference(url).host or "").lower()


def _is_ip_literal(host: str) -> bool:
    try:
        ip_address(host.strip("[]"))
    except ValueError:
        return host.startswith("[") or ":" in host
    return True


@dataclass(slots=True)
class FilteredUrlReport:
    """Rejected declared-relay URLs grouped by reason (original spellings)."""

    localhost: list[str] = field(default_factory=list)
    ip_address: list[str] = field(default_factory=list)
    insecure_ws: list[str] = field(default_factory=list)
    known_bad: list[str] = field(default_factory=list)
    malformed: list[str] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return (
            len(self.localhost)
            + len(self.ip_address)
            + len(self.insecure_ws)
            + len(self.known_bad)
            + len(self.malformed)
        )

    def record(self, reason: FilterReason, original_url: str) -> None:
        bucket = {
            FilterReason.LOCALHOST: self.localhost,
            FilterReason.IP_ADDRESS: self.ip_address,
            FilterReason.INSECURE_WS: self.insecure_ws,
            FilterReason.KNOWN_BAD: self.known_bad,
            FilterReason.MALFORMED: self.malformed,
        }[reason]
        bucket.append(original_url)

    def to_dict(self) -> dict[str, object]:
        return {
            "localhost": list(self.localhost),
            "ipAddress": list(self.ip_address),
            "insecureWs": list(self.insecure_ws),
            "knownBad": list(self.known_bad),
            "malformed": list(self.malformed),
            "totalRemoved": self.total_removed,
        }


@dataclass(frozen=True, slots=True)
class FilterResult:
    url: str
    accepted: bool
    original_url: str
    reason: FilterReason | None = None


def filter_relay_url(original_url: str, profile: FilterProfile) -> FilterResult:
    """Normalize and, under the strict profile, vet a single declared URL."""
    normalized = normalize_relay_url(original_url)
    if normalized is None:
        return FilterResult(original_url, False, original_url, FilterReason.MALFORMED)

    if profile == FilterProfile.NEUTRAL:
        return FilterResult(normalized, True, original_url)

    host = _host_of(normalized)
    is_onion = host.endswith(".onion")

    reason: FilterReason | None = None
    if host in _LOCALHOST_HOSTS:
        reason = FilterReason.LOCALHOST
    elif _is_ip_literal(host) and not is_onion:
        reason = FilterReason.IP_ADDRESS
    elif original_url.strip().lower().startswith("ws://") and not is_onion:
        reason = FilterReason.INSECURE_WS
    elif normalized in KNOWN_BAD_RELAYS:
        reason = FilterReason.KNOWN_BAD

    return FilterResult(normalized, reason is None, original_url, reason)


def filter_relay_urls(
    urls: list[str], profile: FilterProfile
) -> tuple[list[RelayUrl], FilteredUrlReport]:
    """Filter many URLs; returns the sorted, de-duplicated accepted set and a report."""
    report = FilteredUrlReport()
    accepted: set[RelayUrl] = set()
    for url in urls:
        result = filter_relay_url(url, profile)
        if result.accepted:
            accepted.add(result.url)
        elif result.reason is not None:
            report.record(result.reason, result.original_url)
    return sorted(accepted), report


def dedupe_and_normalize(urls: list[str]) -> list[RelayUrl]:
    """Normalize *urls*, dropping unusable ones; sorted and de-duplicated."""
    return sorted({n for n in map(normalize_relay_url, urls) if n is not None})
