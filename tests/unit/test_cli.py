"""
Unit tests for the command-line interface.

Tests:
- Argument parsing defaults for run and probe
- build_config() file loading and flag overrides
- load_snapshot() errors
- main() exit codes
"""

import json
from unittest.mock import AsyncMock

import pytest

import outbench.__main__ as cli_module
from outbench.__main__ import build_config, load_snapshot, main, parse_args
from outbench.core.exceptions import ConfigurationError
from outbench.verification.probe import ProbeResult


SNAPSHOT = {
    "targetPubkey": "ab" * 32,
    "follows": ["w1", "w2", "w3"],
    "relayLists": [
        {"pubkey": "w1", "writeRelays": ["wss://a.example.com", "wss://b.example.com"]},
        {"pubkey": "w2", "writeRelays": ["wss://b.example.com"]},
    ],
    "followsMissingRelayList": ["w3"],
    "fetchedAt": 1_700_000_000_000,
}


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT))
    return path


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run from an empty directory and keep the root logger untouched."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli_module, "setup_logging", lambda level: None)


# ============================================================================
# Parsing Tests
# ============================================================================


class TestParseArgs:
    """Tests for parse_args()."""

    def test_run_defaults(self) -> None:
        """Test that unset flags stay None so they do not override the file."""
        args = parse_args(["run", "snap.json"])
        assert args.command == "run"
        assert args.log_level == "INFO"
        assert args.sweep is None
        assert args.use_phase2_cache is None
        assert args.write_json is None
        assert args.algorithms is None

    def test_run_flags(self) -> None:
        """Test negative flags and multi-value algorithms."""
        args = parse_args(
            ["--log-level", "DEBUG", "run", "snap.json", "--algorithms", "greedy", "ilp",
             "--no-json", "--no-phase2-cache", "--fast"]
        )
        assert args.log_level == "DEBUG"
        assert args.algorithms == ["greedy", "ilp"]
        assert args.write_json is False
        assert args.use_phase2_cache is False
        assert args.fast is True

    def test_probe(self) -> None:
        """Test the probe command."""
        args = parse_args(["probe", "wss://a.example.com", "--concurrency", "3"])
        assert args.relays == ["wss://a.example.com"]
        assert args.concurrency == 3

    def test_command_required(self) -> None:
        """Test that a command is mandatory."""
        with pytest.raises(SystemExit):
            parse_args([])


# ============================================================================
# Config Tests
# ============================================================================


class TestBuildConfig:
    """Tests for build_config()."""

    def test_no_file(self) -> None:
        """Test defaults when no config file exists."""
        config = build_config(parse_args(["run", "snap.json"]))
        assert config.runs == 10
        assert config.algorithms == ("all",)

    def test_file_and_overrides(self, tmp_path) -> None:
        """Test that flags win over the file and unset flags keep file values."""
        path = tmp_path / "custom.yaml"
        path.write_text("runs: 4\nmax_connections: 12\nphase2:\n  batch_size: 25\n")
        args = parse_args(
            ["run", "snap.json", "--config", str(path), "--runs", "2",
             "--seed", "7", "--verify-window", "3600", "--verify-concurrency", "5"]
        )
        config = build_config(args)
        assert config.runs == 2
        assert config.max_connections == 12
        assert config.seed == 7
        assert config.phase2.batch_size == 25
        assert config.phase2.window_seconds == 3600
        assert config.phase2.max_concurrent_conns == 5

    def test_default_file(self, tmp_path) -> None:
        """Test that config/benchmark.yaml is picked up when present."""
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "benchmark.yaml").write_text("runs: 6\n")
        assert build_config(parse_args(["run", "snap.json"])).runs == 6

    def test_random_seed(self) -> None:
        """Test the literal random seed."""
        assert build_config(parse_args(["run", "s.json", "--seed", "random"])).seed == "random"

    def test_missing_explicit_file(self, tmp_path) -> None:
        """Test that a named but missing file is an error."""
        args = parse_args(["run", "snap.json", "--config", str(tmp_path / "nope.yaml")])
        with pytest.raises(ConfigurationError, match="not found"):
            build_config(args)

    @pytest.mark.parametrize(
        "flags", [["--max-connections", "0"], ["--seed", "abc"], ["--verify-window", "1"]]
    )
    def test_invalid_override(self, flags: list[str]) -> None:
        """Test that bad flag values become ConfigurationError."""
        with pytest.raises(ConfigurationError):
            build_config(parse_args(["run", "snap.json", *flags]))


class TestLoadSnapshot:
    """Tests for load_snapshot()."""

    def test_valid(self, snapshot_file) -> None:
        """Test the adjacency built from relay lists."""
        data = load_snapshot(snapshot_file)
        assert data.follows == ("w1", "w2", "w3")
        assert data.writer_to_relays["w2"] == frozenset({"wss://b.example.com"})
        assert data.structural_orphans() == ["w3"]

    def test_missing(self, tmp_path) -> None:
        """Test a missing file."""
        with pytest.raises(ConfigurationError):
            load_snapshot(tmp_path / "none.json")

    @pytest.mark.parametrize("content", ["{not json", json.dumps({"follows": []})])
    def test_invalid(self, tmp_path, content: str) -> None:
        """Test malformed JSON and a missing required key."""
        path = tmp_path / "bad.json"
        path.write_text(content)
        with pytest.raises(ConfigurationError, match="Invalid snapshot"):
            load_snapshot(path)


# ============================================================================
# Main Tests
# ============================================================================


class TestMain:
    """Tests for main() exit codes."""

    async def test_run_success(self, snapshot_file, tmp_path) -> None:
        """Test a small offline run."""
        code = await main(
            ["run", str(snapshot_file), "--algorithms", "greedy", "direct", "--fast", "--no-json",
             "--nip66-cache", str(tmp_path / "nip66.json")]
        )
        assert code == 0

    async def test_run_writes_report(self, snapshot_file, tmp_path) -> None:
        """Test that the JSON report lands in the default results directory."""
        code = await main(["run", str(snapshot_file), "--algorithms", "greedy", "--fast"])
        assert code == 0
        assert len(list((tmp_path / "results").glob("*.json"))) == 1

    async def test_unknown_algorithm(self, snapshot_file) -> None:
        """Test that configuration errors exit with 2."""
        assert await main(["run", str(snapshot_file), "--algorithms", "nope", "--no-json"]) == 2

    async def test_missing_snapshot(self, tmp_path) -> None:
        """Test that an unreadable snapshot exits with 2."""
        assert await main(["run", str(tmp_path / "none.json")]) == 2

    async def test_probe_exit_codes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test 0 when any relay connects and 1 when none does."""
        probe = AsyncMock(return_value=[ProbeResult(relay="wss://a", error="refused")])
        monkeypatch.setattr(cli_module, "probe_relays", probe)
        assert await main(["probe", "wss://a", "--concurrency", "4"]) == 1
        probe.assert_awaited_once_with(["wss://a"], concurrency=4)

        probe.return_value = [ProbeResult(relay="wss://a", connectable=True, rtt_ms=10.0)]
        assert await main(["probe", "wss://a"]) == 0

    async def test_unexpected_error(self, snapshot_file, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that unexpected failures exit with 1."""
        monkeypatch.setattr(cli_module, "run_benchmark", AsyncMock(side_effect=RuntimeError("boom")))
        assert await main(["run", str(snapshot_file), "--no-json"]) == 1
