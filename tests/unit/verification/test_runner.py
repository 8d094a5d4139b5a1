"""
Unit tests for verification.runner.run_phase2().

Runs the whole Phase 2 flow against in-memory relays:

Tests:
- Fresh collection: classification, recall, latency, timing
- Extra relays picked outside the declared set are queried
- Second run is served from the disk cache without connecting
"""

import pytest

from outbench.models.benchmark import BenchmarkInput
from outbench.models.params import AlgorithmParams
from outbench.models.result import AlgorithmResult
from outbench.verification.cache import cache_path
from outbench.verification.configs import Phase2Config
from outbench.verification.runner import extra_relays, run_phase2


RELAY_A = "wss://a.example.com"
RELAY_B = "wss://b.example.com"
RELAY_C = "wss://c.example.com"
RELAY_D = "wss://d.example.com"
NOW = 1_700_000_000


@pytest.fixture
def scenario(hex_pubkeys: list[str], relay_network, event_factory):
    """Four writers: two testable, one zero-baseline, one behind a dead relay."""
    w0, w1, w2, w3, target = hex_pubkeys
    relay_network.add(RELAY_A, [event_factory(w0, "e1")])
    relay_network.add(RELAY_B, [event_factory(w0, "e2"), event_factory(w1, "e3")])
    relay_network.add(RELAY_D, [event_factory(w1, "e3")])
    relay_network.unreachable.add(RELAY_C)
    data = BenchmarkInput.from_adjacency(
        target,
        [w0, w1, w2, w3],
        {w0: [RELAY_A, RELAY_B], w1: [RELAY_B], w2: [RELAY_C], w3: [RELAY_A]},
    )
    return data, (w0, w1, w2, w3)


def _result(name: str, data: BenchmarkInput, assignments: dict[str, list[str]]) -> AlgorithmResult:
    return AlgorithmResult.from_pubkey_assignments(name, assignments, data.follows, AlgorithmParams())


class TestExtraRelays:
    """Tests for extra_relays()."""

    def test_undeclared_only(self, scenario) -> None:
        """Test that only relays outside the adjacency are returned."""
        data, (w0, w1, _, _) = scenario
        results = [_result("x", data, {w0: [RELAY_A], w1: [RELAY_D]})]
        assert extra_relays(data, results) == {RELAY_D: {w1}}


class TestRunPhase2:
    """Tests for run_phase2()."""

    async def test_fresh_run(self, scenario, relay_network, tmp_path) -> None:
        """Test classification, recall and replayed latency on a fresh run."""
        data, (w0, w1, w2, w3) = scenario
        results = [
            _result("full", data, {w0: [RELAY_A, RELAY_B], w1: [RELAY_B], w3: [RELAY_A]}),
            _result("partial", data, {w0: [RELAY_A], w1: [RELAY_B]}),
            _result("extra", data, {w1: [RELAY_D]}),
        ]
        config = Phase2Config(cache_dir=tmp_path, window_seconds=3600)
        phase2 = await run_phase2(data, results, config, connector=relay_network.connect, now=NOW)

        assert not phase2.from_cache
        assert phase2.since == NOW - 3600
        assert phase2.total_authors_with_relay_data == 4
        assert phase2.testable_reliable_authors == 2
        assert phase2.testable_partial_authors == 0
        assert phase2.authors_zero_baseline == 1
        assert phase2.authors_unreliable_baseline == 1
        assert phase2.classification_total == 4
        assert phase2.baselines[w0].event_ids == frozenset({"e1", "e2"})

        full, partial, extra = phase2.algorithms
        assert full.event_recall_rate == 1.0
        assert full.author_recall_rate == 1.0
        assert partial.event_recall_rate == pytest.approx(2 / 3)
        assert extra.out_of_baseline_relays == ()
        assert extra.total_found_events_reliable == 1
        assert extra.selected_relay_success_rate is None
        assert full.latency is not None
        assert full.latency.relays_connected == 2

        stats = phase2.baseline_stats
        assert stats.total_relays_queried == 3
        assert stats.relay_success_rate == pytest.approx(2 / 3)
        assert stats.timing_stats is not None
        assert phase2.profile_view_latency is not None
        assert relay_network.connect_count(RELAY_D) == 1
        assert cache_path(tmp_path, data.target_pubkey, 3600, 4, 3).exists()

    async def test_cached_run(self, scenario, relay_network, tmp_path) -> None:
        """Test that a second run reuses the baseline without connecting."""
        data, (w0, w1, _, w3) = scenario
        results = [_result("full", data, {w0: [RELAY_A, RELAY_B], w1: [RELAY_B], w3: [RELAY_A]})]
        config = Phase2Config(cache_dir=tmp_path, window_seconds=3600)
        fresh = await run_phase2(data, results, config, connector=relay_network.connect, now=NOW)
        connects = {url: relay_network.connect_count(url) for url in (RELAY_A, RELAY_B)}

        cached = await run_phase2(data, results, config, connector=relay_network.connect, now=NOW)

        assert cached.from_cache
        assert {url: relay_network.connect_count(url) for url in (RELAY_A, RELAY_B)} == connects
        assert cached.baselines == fresh.baselines
        assert cached.algorithms[0].event_recall_rate == 1.0
        assert cached.algorithms[0].latency is None
        assert cached.profile_view_latency is None
        assert cached.baseline_stats.timing_stats is None
        assert cached.to_dict()["fromCache"] is True

    async def test_cache_disabled(self, scenario, relay_network, tmp_path) -> None:
        """Test that use_cache=False neither reads nor writes the cache."""
        data, (w0, _, _, _) = scenario
        config = Phase2Config(cache_dir=tmp_path)
        await run_phase2(
            data, [_result("x", data, {w0: [RELAY_A]})], config,
            use_cache=False, connector=relay_network.connect, now=NOW,
        )
        assert not list(tmp_path.iterdir())

    async def test_report_shape(self, scenario, relay_network, tmp_path) -> None:
        """Test the camelCase report keys."""
        data, (w0, _, _, _) = scenario
        config = Phase2Config(cache_dir=tmp_path)
        phase2 = await run_phase2(
            data, [_result("x", data, {w0: [RELAY_A]})], config,
            connector=relay_network.connect, now=NOW,
        )
        report = phase2.to_dict()
        assert report["options"]["windowSeconds"] == 86400
        assert "cacheDir" not in report["options"]
        assert report["testableReliableAuthors"] == 2
        assert report["algorithms"][0]["algorithmName"] == "x"
        assert "profileViewLatency" in report
