r"""outbench -- Relay-selection benchmark for the Nostr outbox model.

Given a user's follow list and each follow's declared write relays,
outbench runs a family of relay-selection strategies under a connection
budget, scores their assignments, and optionally verifies them against
the events relays actually serve.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
                 benchmark              Regimes, sweep, JSON report
               /     |     \
     algorithms  verification  learning Strategies, Phase 2, priors
               \     |     /
          core   nip66   utils          Infrastructure and helpers
               \     |     /
                 models                 Frozen dataclasses and pydantic models
```

Attributes:
    models: Input snapshot, parameters, results, metrics and Phase 2 records.
    core: Exceptions, structured logging, Prometheus metrics, YAML loading.
    utils: Seedable PRNG, Beta/Gamma samplers, descriptive statistics.
    nip66: Relay quality scoring from NIP-66 monitor data.
    algorithms: The strategy registry.
    verification: Relay pool, baseline collection, recall and latency.
    learning: Thompson Sampling relay-score persistence.
    benchmark: Orchestration of one benchmark run.

Note:
    Top-level imports (``from outbench import run_benchmark``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("outbench")

__all__ = [
    "AlgorithmMetrics",
    "AlgorithmParams",
    "AlgorithmResult",
    "BenchmarkConfig",
    "BenchmarkInput",
    "Logger",
    "Nip66DataCache",
    "Phase2Config",
    "RelayGraph",
    "RelayPool",
    "compute_metrics",
    "get_algorithms",
    "run_algorithm",
    "run_benchmark",
    "run_phase2",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("outbench.core", "Logger"),
    "AlgorithmMetrics": ("outbench.models", "AlgorithmMetrics"),
    "AlgorithmParams": ("outbench.models", "AlgorithmParams"),
    "AlgorithmResult": ("outbench.models", "AlgorithmResult"),
    "BenchmarkInput": ("outbench.models", "BenchmarkInput"),
    "RelayGraph": ("outbench.models", "RelayGraph"),
    "Nip66DataCache": ("outbench.nip66", "Nip66DataCache"),
    "get_algorithms": ("outbench.algorithms", "get_algorithms"),
    "run_algorithm": ("outbench.algorithms", "run_algorithm"),
    "compute_metrics": ("outbench.evaluation", "compute_metrics"),
    "Phase2Config": ("outbench.verification", "Phase2Config"),
    "RelayPool": ("outbench.verification", "RelayPool"),
    "run_phase2": ("outbench.verification", "run_phase2"),
    "BenchmarkConfig": ("outbench.benchmark", "BenchmarkConfig"),
    "run_benchmark": ("outbench.benchmark", "run_benchmark"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'outbench' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
