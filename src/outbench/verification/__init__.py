"""
Phase 2: verify algorithm assignments against events relays actually serve.

The package is split along the data flow:

- [RelayPool][outbench.verification.relay_pool.RelayPool] queries relays
  with bounded concurrency and fills a
  [QueryCache][outbench.verification.query_cache.QueryCache].
- [collect_baseline][outbench.verification.baseline.collect_baseline]
  builds and classifies per-author ground truth.
- [verify_algorithm][outbench.verification.verify.verify_algorithm] and
  the latency replay score each result offline.
- [run_phase2][outbench.verification.runner.run_phase2] ties it together
  with the on-disk baseline cache.
- [probe_relays][outbench.verification.probe.probe_relays] measures relay
  latency independently of a benchmark run.
"""

from outbench.verification.baseline import build_baselines, collect_baseline
from outbench.verification.configs import Phase2Config
from outbench.verification.latency import algorithm_latency, profile_view_latency
from outbench.verification.probe import ProbeResult, probe_relay, probe_relays
from outbench.verification.query_cache import QueryCache
from outbench.verification.relay_pool import RelayPool
from outbench.verification.runner import run_phase2
from outbench.verification.verify import verify_algorithm


__all__ = [
    "Phase2Config",
    "ProbeResult",
    "QueryCache",
    "RelayPool",
    "algorithm_latency",
    "build_baselines",
    "collect_baseline",
    "probe_relay",
    "probe_relays",
    "profile_view_latency",
    "run_phase2",
    "verify_algorithm",
]
