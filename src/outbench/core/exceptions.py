"""Outbench exception hierarchy.

Distinguishes errors that must reach the caller (bad configuration) from
failures the benchmark absorbs and records as data (relay timeouts,
malformed wire messages, stale caches).

Exception hierarchy:

```text
OutbenchError (base -- never raised directly)
├── ConfigurationError      -- unknown algorithm id, bad params, bad YAML/snapshot
├── ConnectivityError        -- relay unreachable, network failures
│   ├── RelayTimeoutError    -- connect or end-of-stream timed out
│   └── RelaySSLError        -- certificate issues
├── ProtocolError            -- malformed NIP-01 wire message
└── CacheError               -- unreadable or schema-mismatched persisted state
```

See Also:
    [get_algorithms()][outbench.algorithms.registry.get_algorithms]: Raises
        [ConfigurationError][outbench.core.exceptions.ConfigurationError]
        on unknown algorithm ids.
    [RelayPool][outbench.verification.relay_pool.RelayPool]: Converts
        [ConnectivityError][outbench.core.exceptions.ConnectivityError]
        into a degraded-success
        [RelayOutcome][outbench.models.phase2.RelayOutcome].
    [read_phase2_cache()][outbench.verification.cache.read_phase2_cache]:
        Treats [CacheError][outbench.core.exceptions.CacheError] as a miss.
"""

from __future__ import annotations


class OutbenchError(Exception):
    """Base exception for all outbench errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(OutbenchError):
    """Invalid or missing configuration (algorithm ids, params, YAML, snapshots).

    The only error category that surfaces to the caller; everything else is
    recovered locally and recorded in the results.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(OutbenchError):
    """Base for all relay/network connectivity errors.

    See Also:
        [RelayTimeoutError][outbench.core.exceptions.RelayTimeoutError]:
            Connection or end-of-stream timed out.
        [RelaySSLError][outbench.core.exceptions.RelaySSLError]: TLS/SSL
            certificate or handshake failure.
    """


class RelayTimeoutError(ConnectivityError):
    """Connection or end-of-stream timed out."""


class RelaySSLError(ConnectivityError):
    """TLS/SSL certificate or handshake failure."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(OutbenchError):
    """Malformed NIP-01 relay message or unparseable author key."""


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class CacheError(OutbenchError):
    """Persisted cache file is unreadable, expired, or has a foreign schema.

    Readers translate this into a cache miss and recompute.
    """
