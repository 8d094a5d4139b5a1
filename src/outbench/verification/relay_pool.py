"""
Bounded WebSocket connection pool for Phase 2 relay queries.

The pool hides the NIP-01 message stream behind one awaitable call,
[query_batched][outbench.verification.relay_pool.RelayPool.query_batched]:
authors are split into fixed-size batches, each batch is one ``REQ`` that
resolves on ``EOSE``, ``CLOSED`` or the EOSE timeout, and batches on the
same relay run strictly one after another.

Concurrency is bounded twice: an ``asyncio.Semaphore`` limits how many
relays are queried at once, and the socket table is capped at
``max_open_sockets`` by evicting the least recently used idle connection
(or, if none is idle, the least recently used one).

Transport failures never propagate. A failed handshake records an
outcome with ``connected=False``; a timeout records ``reached_eose=False``
and keeps whatever events arrived.

See Also:
    [QueryCache][outbench.verification.query_cache.QueryCache]: Receives
        the capped per-(relay, author) event ids.
    [collect_baseline][outbench.verification.baseline.collect_baseline]:
        Main consumer of the pool.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp
from nostr_sdk import Filter, Kind, NostrSdkError, PublicKey, Timestamp

from outbench.core.exceptions import (
    ConnectivityError,
    ProtocolError,
    RelaySSLError,
    RelayTimeoutError,
)
from outbench.core.metrics import POOL_EVICTIONS_TOTAL, POOL_OPEN_SOCKETS, RELAY_QUERIES_TOTAL
from outbench.models.phase2 import PoolDiagnostics, RelayOutcome

from .configs import Phase2Config


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence
    from types import TracebackType

    from .query_cache import QueryCache


logger = logging.getLogger(__name__)

CACHE_WARNING_THRESHOLD = 500_000
RATE_LIMIT_MARKERS = ("rate", "too many", "slow down")


class WebSocketLike(Protocol):
    """The subset of ``aiohttp.ClientWebSocketResponse`` the pool uses."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def receive(self, timeout: float | None = None) -> aiohttp.WSMessage: ...

    async def close(self) -> Any: ...


# ---------------------------------------------------------------------------
# Wire helpers
# ---------------------------------------------------------------------------


def parse_authors(authors: Iterable[str]) -> tuple[list[PublicKey], list[str]]:
    """Split hex author keys into parsed keys and rejected strings."""
    keys: list[PublicKey] = []
    rejected: list[str] = []
    for author in authors:
        try:
            keys.append(PublicKey.parse(author))
        except NostrSdkError:
            rejected.append(author)
    return keys, rejected


def build_filter(authors: Sequence[PublicKey], kinds: Iterable[int], since: int) -> dict[str, Any]:
    """NIP-01 filter object for *authors* and *kinds* newer than *since*."""
    f = (
        Filter()
        .authors(list(authors))
        .kinds([Kind(k) for k in kinds])
        .since(Timestamp.from_secs(since))
    )
    return json.loads(f.as_json())


def parse_relay_message(raw: str) -> list[Any]:
    """Decode one relay-to-client frame.

    Raises:
        ProtocolError: If the frame is not a JSON array led by a string.
    """
    try:
        frame = json.loads(raw)
    except ValueError as e:
        raise ProtocolError(f"invalid JSON frame: {e}") from e
    if not isinstance(frame, list) or not frame or not isinstance(frame[0], str):
        raise ProtocolError("frame is not a NIP-01 message array")
    return frame


def cap_events(events: Sequence[dict[str, Any]], limit: int) -> frozenset[str]:
    """Ids of at most *limit* events, newest first, ties by smallest id."""
    if len(events) <= limit:
        return frozenset(e["id"] for e in events)
    ranked = sorted(events, key=lambda e: (-int(e.get("created_at", 0)), e["id"]))
    return frozenset(e["id"] for e in ranked[:limit])


# ---------------------------------------------------------------------------
# Pool internals
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _PooledConnection:
    ws: WebSocketLike
    relay: str
    last_used: float
    idle: bool
    connect_time_ms: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(slots=True)
class _Subscription:
    events: list[dict[str, Any]]
    eose: bool
    timed_out: bool
    first_event_ms: float | None


@dataclass(frozen=True, slots=True)
class BatchedQuery:
    """Result of querying one relay for a set of authors."""

    per_pubkey: dict[str, frozenset[str]]
    reached_eose: bool


class RelayPool:
    """Reusable relay connections with bounded concurrency.

    Examples:
        ```python
        async with RelayPool(Phase2Config()) as pool:
            query = await pool.query_batched(relay, authors, cache, since=since)
            pool.outcome(relay)
        ```
    """

    def __init__(
        self,
        config: Phase2Config | None = None,
        *,
        connector: Callable[[str, float], Awaitable[WebSocketLike]] | None = None,
    ) -> None:
        self._config = config or Phase2Config()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_conns)
        self._connector = connector
        self._session: aiohttp.ClientSession | None = None
        self._connections: dict[str, _PooledConnection] = {}
        self._connect_locks: dict[str, asyncio.Lock] = {}
        self._outcomes: dict[str, RelayOutcome] = {}
        self._sub_counter = 0
        self._timeouts = 0
        self._closed_messages: list[str] = []
        self._notices: list[str] = []
        self._rate_limit_notices = 0

    async def __aenter__(self) -> RelayPool:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close_all()

    # -- Public API --------------------------------------------------------

    @property
    def config(self) -> Phase2Config:
        return self._config

    @property
    def open_sockets(self) -> int:
        return len(self._connections)

    def outcome(self, relay: str) -> RelayOutcome | None:
        return self._outcomes.get(relay)

    @property
    def outcomes(self) -> dict[str, RelayOutcome]:
        return dict(self._outcomes)

    @property
    def diagnostics(self) -> PoolDiagnostics:
        return PoolDiagnostics(
            timeouts=self._timeouts,
            closed_messages=tuple(self._closed_messages),
            notices=tuple(self._notices),
            rate_limit_notices=self._rate_limit_notices,
        )

    async def query_batched(
        self,
        relay: str,
        pubkeys: Sequence[str],
        cache: QueryCache,
        *,
        since: int,
        kinds: Iterable[int] | None = None,
    ) -> BatchedQuery:
        """Fetch events of *pubkeys* from *relay* and store them in *cache*.

        Every author gets a cache entry, empty when the relay failed or
        returned nothing, and the relay gets a recorded outcome.
        """
        kinds = tuple(kinds if kinds is not None else self._config.kinds)
        by_author: dict[str, list[dict[str, Any]]] = {pk: [] for pk in pubkeys}
        reached_eose = False
        timed_out = False
        first_event_ms: float | None = None

        async with self._semaphore:
            try:
                conn = await self._get_or_connect(relay)
            except ConnectivityError as e:
                self._outcomes[relay] = RelayOutcome(
                    connected=False, reached_eose=False, error=str(e)
                )
                RELAY_QUERIES_TOTAL.labels(outcome="connect_failed").inc()
                logger.debug("relay_connect_failed relay=%s error=%s", relay, e)
                conn = None

            if conn is not None:
                started = time.perf_counter()
                error: str | None = None
                try:
                    for i in range(0, len(pubkeys), self._config.batch_size):
                        batch = pubkeys[i : i + self._config.batch_size]
                        keys, rejected = parse_authors(batch)
                        if rejected:
                            logger.warning(
                                "invalid_author_keys relay=%s count=%s", relay, len(rejected)
                            )
                        if not keys:
                            continue
                        batch_offset_ms = (time.perf_counter() - started) * 1000
                        sub = await self._subscribe(conn, build_filter(keys, kinds, since))
                        reached_eose = reached_eose or sub.eose
                        timed_out = timed_out or sub.timed_out
                        if sub.first_event_ms is not None and first_event_ms is None:
                            first_event_ms = batch_offset_ms + sub.first_event_ms
                        for event in sub.events:
                            bucket = by_author.get(event.get("pubkey", ""))
                            if bucket is not None and isinstance(event.get("id"), str):
                                bucket.append(event)
                except ConnectivityError as e:
                    error = str(e)
                    logger.debug("relay_query_interrupted relay=%s error=%s", relay, e)
                finally:
                    conn.idle = True
                    conn.last_used = time.monotonic()

                self._outcomes[relay] = RelayOutcome(
                    connected=True,
                    reached_eose=reached_eose,
                    connect_time_ms=conn.connect_time_ms,
                    query_time_ms=(time.perf_counter() - started) * 1000,
                    first_event_ms=first_event_ms,
                    timed_out=timed_out,
                    error=error,
                )
                if error is not None:
                    label = "error"
                elif timed_out and not reached_eose:
                    label = "timeout"
                else:
                    label = "eose"
                RELAY_QUERIES_TOTAL.labels(outcome=label).inc()

        per_pubkey: dict[str, frozenset[str]] = {}
        for pubkey, events in by_author.items():
            ids = cap_events(events, self._config.max_events_per_pair)
            per_pubkey[pubkey] = ids
            cache.set(relay, pubkey, ids)

        if cache.total_event_ids > CACHE_WARNING_THRESHOLD:
            logger.warning("query_cache_large event_ids=%s", cache.total_event_ids)

        return BatchedQuery(per_pubkey=per_pubkey, reached_eose=reached_eose)

    async def close_all(self) -> None:
        for conn in list(self._connections.values()):
            await self._close_socket(conn)
        self._connections.clear()
        POOL_OPEN_SOCKETS.set(0)
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # -- Connections -------------------------------------------------------

    async def _open(self, relay: str) -> WebSocketLike:
        timeout_s = self._config.connect_timeout_ms / 1000
        try:
            if self._connector is not None:
                return await asyncio.wait_for(self._connector(relay, timeout_s), timeout_s)
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            return await asyncio.wait_for(self._session.ws_connect(relay), timeout_s)
        except TimeoutError as e:
            raise RelayTimeoutError(f"connect timeout after {timeout_s}s: {relay}") from e
        except aiohttp.ClientSSLError as e:
            raise RelaySSLError(f"SSL error: {e}") from e
        except (aiohttp.ClientError, OSError) as e:
            raise ConnectivityError(f"connection failed: {e}") from e

    async def _get_or_connect(self, relay: str) -> _PooledConnection:
        lock = self._connect_locks.setdefault(relay, asyncio.Lock())
        async with lock:
            existing = self._connections.get(relay)
            if existing is not None and not existing.ws.closed:
                existing.idle = False
                existing.last_used = time.monotonic()
                return existing
            if existing is not None:
                del self._connections[relay]

            await self._evict_if_needed()
            started = time.perf_counter()
            ws = await self._open(relay)
            conn = _PooledConnection(
                ws=ws,
                relay=relay,
                last_used=time.monotonic(),
                idle=False,
                connect_time_ms=(time.perf_counter() - started) * 1000,
            )
            self._connections[relay] = conn
            POOL_OPEN_SOCKETS.set(len(self._connections))
            return conn

    def _pick_victim(self) -> _PooledConnection | None:
        idle = [c for c in self._connections.values() if c.idle]
        pool = idle or list(self._connections.values())
        if not pool:
            return None
        return min(pool, key=lambda c: c.last_used)

    async def _evict_if_needed(self) -> None:
        while len(self._connections) >= self._config.max_open_sockets:
            victim = self._pick_victim()
            if victim is None:
                break
            POOL_EVICTIONS_TOTAL.labels(kind="idle" if victim.idle else "active").inc()
            del self._connections[victim.relay]
            await self._close_socket(victim)
        POOL_OPEN_SOCKETS.set(len(self._connections))

    @staticmethod
    async def _close_socket(conn: _PooledConnection) -> None:
        if conn.ws.closed:
            return
        try:
            await conn.ws.close()
        except (aiohttp.ClientError, OSError) as e:
            logger.debug("socket_close_failed relay=%s error=%s", conn.relay, e)

    # -- Subscriptions -----------------------------------------------------

    def _next_sub_id(self) -> str:
        sub_id = f"p2-{self._sub_counter}"
        self._sub_counter += 1
        return sub_id

    def _record_notice(self, relay: str, notice: str) -> None:
        self._notices.append(f"{relay}: {notice}")
        if any(marker in notice.lower() for marker in RATE_LIMIT_MARKERS):
            self._rate_limit_notices += 1
            logger.warning("relay_rate_limited relay=%s notice=%s", relay, notice)

    async def _send(self, conn: _PooledConnection, message: list[Any]) -> None:
        try:
            await conn.ws.send_str(json.dumps(message))
        except (aiohttp.ClientError, ConnectionError) as e:
            raise ConnectivityError(f"send failed: {e}") from e

    async def _subscribe(self, conn: _PooledConnection, flt: dict[str, Any]) -> _Subscription:
        """Send one REQ and collect events until EOSE, CLOSED or timeout.

        Raises:
            ConnectivityError: If the socket closes or errors mid-subscription.
        """
        sub_id = self._next_sub_id()
        events: list[dict[str, Any]] = []
        first_event_ms: float | None = None
        eose = timed_out = False

        async with conn.lock:
            if conn.ws.closed:
                raise ConnectivityError(f"socket already closed: {conn.relay}")
            await self._send(conn, ["REQ", sub_id, flt])
            started = time.perf_counter()
            deadline = started + self._config.eose_timeout_ms / 1000

            while True:
                remaining = deadline - time.perf_counter()
                if remaining <= 0:
                    timed_out = True
                    break
                try:
                    msg = await conn.ws.receive(timeout=remaining)
                except TimeoutError:
                    timed_out = True
                    break

                if msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                    aiohttp.WSMsgType.ERROR,
                ):
                    raise ConnectivityError(f"socket closed by {conn.relay}")
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue

                try:
                    frame = parse_relay_message(msg.data)
                except ProtocolError as e:
                    logger.debug("relay_bad_frame relay=%s error=%s", conn.relay, e)
                    continue

                kind = frame[0]
                if kind == "EVENT" and len(frame) >= 3 and frame[1] == sub_id:
                    if isinstance(frame[2], dict):
                        if first_event_ms is None:
                            first_event_ms = (time.perf_counter() - started) * 1000
                        events.append(frame[2])
                elif kind == "EOSE" and len(frame) >= 2 and frame[1] == sub_id:
                    eose = True
                    break
                elif kind == "CLOSED" and len(frame) >= 2 and frame[1] == sub_id:
                    reason = str(frame[2]) if len(frame) >= 3 else ""
                    self._closed_messages.append(f"{conn.relay}: {reason}")
                    logger.debug("relay_closed_sub relay=%s reason=%s", conn.relay, reason)
                    break
                elif kind == "NOTICE" and len(frame) >= 2:
                    self._record_notice(conn.relay, str(frame[1]))

            if timed_out:
                self._timeouts += 1
            if not conn.ws.closed:
                await self._send(conn, ["CLOSE", sub_id])

        return _Subscription(
            events=events, eose=eose, timed_out=timed_out, first_event_ms=first_event_ms
        )
