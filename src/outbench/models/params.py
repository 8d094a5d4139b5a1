"""
Algorithm parameter surface.

One Pydantic model carries every knob any strategy reads. Strategies read
only the fields they understand, and unknown keys are ignored rather than
rejected, so a single parameter dictionary can drive the whole registry.

Field names accept both the snake_case Python spelling and the camelCase
wire spelling (``maxConnections``, ``relayGoalPerAuthor``, ...).

The four per-writer targets (``max_relays_per_user``,
``relay_goal_per_author``, ``relay_limit``, ``write_limit``) describe the
same idea under the names different client libraries use; Regime B sets
all four at once.

Calibration constants (ILP time box, MAB rounds, hybrid split, ...) are
``None`` by default, meaning "use the strategy's module default".
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


DEFAULT_MAX_CONNECTIONS = 20
DEFAULT_PER_WRITER_TARGET = 2


class BetaPrior(BaseModel):
    """Beta(alpha, beta) delivery prior for one relay."""

    model_config = ConfigDict(frozen=True)

    alpha: float = Field(default=1.0, gt=0)
    beta: float = Field(default=1.0, gt=0)


class AlgorithmParams(BaseModel):
    """Parameters shared by all relay-selection strategies.

    Examples:
        ```python
        AlgorithmParams.model_validate({"maxConnections": 20, "relayLimit": 3, "foo": 1})
        # AlgorithmParams(max_connections=20.0, relay_limit=3, ...)
        ```
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    # Budgets
    max_connections: float | None = Field(default=None, gt=0)
    max_relays_per_user: int | None = Field(default=None, ge=1)
    relay_goal_per_author: int | None = Field(default=None, ge=1)
    relay_limit: int | None = Field(default=None, ge=0)
    write_limit: int | None = Field(default=None, ge=0)
    skip_top_relays: int | None = Field(default=None, ge=0)

    # Exploration / learning
    epsilon: float | None = Field(default=None, ge=0, le=1)
    relay_priors: dict[str, BetaPrior] | None = None
    alpha: float | None = Field(default=None, ge=0)

    # Calibration overrides
    time_limit_ms: float | None = Field(default=None, gt=0)
    sample_epsilon: float | None = Field(default=None, gt=0, lt=1)
    rounds: int | None = Field(default=None, ge=1)
    exploration_constant: float | None = Field(default=None, ge=0)
    greedy_ratio: float | None = Field(default=None, ge=0, le=1)
    max_iterations: int | None = Field(default=None, ge=1)

    def merged(self, overrides: AlgorithmParams | None) -> AlgorithmParams:
        """Return a copy with every explicitly set field of *overrides* applied."""
        if overrides is None:
            return self
        return self.model_copy(update=overrides.model_dump(exclude_unset=True))

    def connection_budget(self, default: float = DEFAULT_MAX_CONNECTIONS) -> float:
        """``max_connections``, or *default* when unset (``math.inf`` = unbounded)."""
        return self.max_connections if self.max_connections is not None else default

    @property
    def has_finite_cap(self) -> bool:
        return self.max_connections is not None and math.isfinite(self.max_connections)

    def per_writer_target(self) -> int:
        """Per-writer relay goal used for target attainment."""
        for value in (
            self.relay_goal_per_author,
            self.max_relays_per_user,
            self.relay_limit,
            self.write_limit,
        ):
            if value is not None:
                return value
        return DEFAULT_PER_WRITER_TARGET

    def with_per_writer_target(self, target: int) -> AlgorithmParams:
        """Set all four per-writer fields to *target*."""
        return self.model_copy(
            update={
                "max_relays_per_user": target,
                "relay_goal_per_author": target,
                "relay_limit": target,
                "write_limit": target,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        """camelCase dict for reports; priors are summarized by count."""
        data = self.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"relay_priors"}
        )
        if self.max_connections is not None and math.isinf(self.max_connections):
            data["maxConnections"] = "unlimited"
        if self.relay_priors:
            data["relayPriors"] = len(self.relay_priors)
        return data
