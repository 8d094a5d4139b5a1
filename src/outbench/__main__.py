"""CLI entry point for outbench.

Two commands:

- ``run`` benchmarks every selected strategy on a follow-graph snapshot,
  optionally verifying the Regime A assignments against live relays.
- ``probe`` measures NIP-11, handshake and round-trip latency for a list
  of relay URLs.

Examples:
    ```bash
    python -m outbench run snapshot.json
    python -m outbench run snapshot.json --algorithms greedy ilp --sweep
    python -m outbench run snapshot.json --verify --verify-window 3600 --log-level DEBUG
    python -m outbench probe wss://relay.damus.io wss://nos.lol
    ```
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from outbench.benchmark import BenchmarkConfig, run_benchmark
from outbench.core.exceptions import ConfigurationError
from outbench.core.logger import Logger, setup_logging
from outbench.core.metrics import MetricsServer
from outbench.models.benchmark import BenchmarkInput
from outbench.nip66.cache import DEFAULT_CACHE_PATH, Nip66DataCache
from outbench.verification.probe import DEFAULT_CONCURRENCY, probe_relays


DEFAULT_CONFIG = Path("config") / "benchmark.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="outbench",
        description="Outbox relay-selection benchmark",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Benchmark strategies on a snapshot")
    run.add_argument("snapshot", type=Path, help="BenchmarkInput JSON snapshot")
    run.add_argument(
        "--config",
        type=Path,
        help=f"Benchmark config path (default: {DEFAULT_CONFIG} if present)",
    )
    run.add_argument("--algorithms", nargs="+", help="Algorithm ids, or 'all'")
    run.add_argument("--max-connections", type=int, help="Regime A connection budget")
    run.add_argument("--relays-per-user", type=int, help="Per-writer relay target")
    run.add_argument("--runs", type=int, help="Repetitions of stochastic algorithms")
    run.add_argument("--seed", help="First PRNG seed, or 'random'")
    run.add_argument("--sweep", action="store_true", default=None, help="Run the budget sweep")
    run.add_argument(
        "--fast",
        action="store_true",
        default=None,
        help="Reduced sweep, at most 3 runs, no Regime B",
    )
    run.add_argument(
        "--verify",
        action="store_true",
        default=None,
        help="Verify Regime A assignments against live relays",
    )
    run.add_argument("--verify-window", type=int, help="Phase 2 window in seconds")
    run.add_argument("--verify-concurrency", type=int, help="Phase 2 concurrent connections")
    run.add_argument(
        "--no-phase2-cache",
        dest="use_phase2_cache",
        action="store_false",
        default=None,
        help="Ignore and do not refresh the Phase 2 baseline cache",
    )
    run.add_argument(
        "--full-assignments",
        action="store_true",
        default=None,
        help="Write every relay assignment to the JSON report",
    )
    run.add_argument(
        "--no-json",
        dest="write_json",
        action="store_false",
        default=None,
        help="Do not write the JSON report",
    )
    run.add_argument(
        "--nip66-cache",
        type=Path,
        default=DEFAULT_CACHE_PATH,
        help=f"NIP-66 monitor data file (default: {DEFAULT_CACHE_PATH})",
    )

    probe = commands.add_parser("probe", help="Measure relay latency")
    probe.add_argument("relays", nargs="+", help="Relay WebSocket URLs")
    probe.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Probes in flight (default: {DEFAULT_CONCURRENCY})",
    )

    return parser.parse_args(argv)


def load_snapshot(path: Path) -> BenchmarkInput:
    """Read a snapshot file into a [BenchmarkInput][outbench.models.benchmark.BenchmarkInput].

    Raises:
        ConfigurationError: If the file is unreadable or not a valid snapshot.
    """
    try:
        with path.open(encoding="utf-8") as fh:
            return BenchmarkInput.from_snapshot(json.load(fh))
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigurationError(f"Invalid snapshot {path}: {e}") from e


def build_config(args: argparse.Namespace) -> BenchmarkConfig:
    """Load the YAML config, then apply command-line overrides on top.

    Raises:
        ConfigurationError: If the file or the merged settings are invalid.
    """
    config_path = args.config or DEFAULT_CONFIG
    if config_path.exists():
        base = BenchmarkConfig.from_yaml(config_path)
    elif args.config is not None:
        raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        base = BenchmarkConfig()

    overrides: dict[str, Any] = {
        key: value
        for key in (
            "algorithms",
            "max_connections",
            "relays_per_user",
            "runs",
            "seed",
            "sweep",
            "fast",
            "verify",
            "use_phase2_cache",
            "full_assignments",
            "write_json",
        )
        if (value := getattr(args, key)) is not None
    }

    phase2: dict[str, Any] = base.phase2.model_dump()
    if args.verify_window is not None:
        phase2["window_seconds"] = args.verify_window
    if args.verify_concurrency is not None:
        phase2["max_concurrent_conns"] = args.verify_concurrency

    merged = {**base.model_dump(), **overrides, "phase2": phase2}
    try:
        return BenchmarkConfig.model_validate(merged)
    except ValueError as e:
        raise ConfigurationError(f"Invalid benchmark settings: {e}") from e


async def run_command(args: argparse.Namespace) -> int:
    """Run the benchmark and report where the results went."""
    data = load_snapshot(args.snapshot)
    config = build_config(args)

    nip66_cache = Nip66DataCache(args.nip66_cache)
    nip66_cache.load()

    metrics_server = MetricsServer(config.metrics)
    await metrics_server.start()
    if config.metrics.enabled:
        logger.info(
            "metrics_server_started",
            host=config.metrics.host,
            port=config.metrics.port,
            path=config.metrics.path,
        )

    try:
        report = await run_benchmark(data, config, nip66_cache=nip66_cache)
    finally:
        await metrics_server.stop()
        if config.metrics.enabled:
            logger.info("metrics_server_stopped")

    best = max(report.regime_a_metrics, key=lambda m: m.assignment_coverage, default=None)
    if best is not None:
        logger.info(
            "benchmark_completed",
            algorithms=len(report.regime_a_metrics),
            best=best.name,
            coverage=round(best.assignment_coverage, 4),
            output=report.output_path,
        )
    return 0


async def probe_command(args: argparse.Namespace) -> int:
    """Probe relays and log one line per relay."""
    results = await probe_relays(args.relays, concurrency=args.concurrency)
    for result in results:
        if result.error:
            logger.warning("relay_probe_failed", relay=result.relay, error=result.error)
            continue
        logger.info(
            "relay_probed",
            relay=result.relay,
            nip11=result.nip11_available,
            connect_ms=result.connect_ms,
            rtt_ms=result.rtt_ms,
            geo=result.geo_hint,
        )
    return 0 if any(r.connectable for r in results) else 1


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args and dispatch the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        if args.command == "probe":
            return await probe_command(args)
        return await run_command(args)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return 2
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130
    except Exception as e:  # Intentionally broad: CLI error boundary
        logger.exception(f"{args.command}_failed", error=str(e))
        return 1


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
