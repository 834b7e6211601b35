"""Policy resolver — typed access to the productivity parameter file.

All tunable constants (score weights, trend threshold, attention threshold,
anchoring cadence) live in config/productivity_params.json. Engines take a
resolver instead of hard-coding numbers so every threshold is documented in
one place.

Loading is fail-closed: missing sections or weights that do not sum to 1.0
raise ValueError.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

PARAMS_FILE = "productivity_params.json"


@dataclass(frozen=True)
class AnchoringPolicy:
    """Cadence and retry budget for the confirmation poller."""
    poll_interval_seconds: float
    confirmation_timeout_seconds: float
    backoff_base_seconds: float
    backoff_max_seconds: float
    max_retries: int
    gas_limit: int

    def backoff_seconds(self, retry_count: int) -> float:
        """Exponential backoff for the given retry count, capped."""
        delay = self.backoff_base_seconds * (2 ** retry_count)
        return min(delay, self.backoff_max_seconds)


class PolicyResolver:
    """Resolves productivity and anchoring parameters."""

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = params
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / PARAMS_FILE
        with path.open("r", encoding="utf-8") as f:
            return cls(json.load(f))

    @classmethod
    def from_dict(cls, params: dict[str, Any]) -> PolicyResolver:
        return cls(params)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_weights(self) -> tuple[float, float]:
        """(w_completion, w_on_time)."""
        w = self._params["scoring"]["weights"]
        return float(w["task_completion_rate"]), float(w["on_time_rate"])

    def trend_threshold(self) -> int:
        return int(self._params["scoring"]["trend_threshold"])

    def max_recommendations(self) -> int:
        return int(self._params["scoring"]["max_recommendations"])

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def top_performer_count(self) -> int:
        return int(self._params["insights"]["top_performer_count"])

    def attention_threshold(self) -> int:
        return int(self._params["insights"]["attention_threshold"])

    def suggestion_weights(self) -> tuple[float, float]:
        """(w_score, w_availability)."""
        w = self._params["suggestions"]["weights"]
        return float(w["score"]), float(w["availability"])

    def open_task_capacity(self) -> int:
        return int(self._params["suggestions"]["open_task_capacity"])

    def suggestion_limit(self) -> int:
        return int(self._params["suggestions"]["limit"])

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------

    def anchoring_policy(self) -> AnchoringPolicy:
        a = self._params["anchoring"]
        return AnchoringPolicy(
            poll_interval_seconds=float(a["poll_interval_seconds"]),
            confirmation_timeout_seconds=float(a["confirmation_timeout_seconds"]),
            backoff_base_seconds=float(a["backoff_base_seconds"]),
            backoff_max_seconds=float(a["backoff_max_seconds"]),
            max_retries=int(a["max_retries"]),
            gas_limit=int(a.get("gas_limit", 30_000)),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        for section in ("scoring", "insights", "suggestions", "anchoring"):
            if section not in self._params:
                raise ValueError(f"Missing policy section: {section}")

        for name, weights in (
            ("scoring", self.score_weights()),
            ("suggestions", self.suggestion_weights()),
        ):
            if any(w < 0 for w in weights):
                raise ValueError(f"{name} weights must be non-negative: {weights}")
            if not math.isclose(sum(weights), 1.0, abs_tol=1e-9):
                raise ValueError(f"{name} weights must sum to 1.0, got {sum(weights)}")

        if self.trend_threshold() <= 0:
            raise ValueError("trend_threshold must be positive")
        if self.max_recommendations() < 0:
            raise ValueError("max_recommendations must be >= 0")

        anchoring = self.anchoring_policy()
        if anchoring.max_retries < 1:
            raise ValueError("anchoring.max_retries must be >= 1")
        if anchoring.confirmation_timeout_seconds <= 0:
            raise ValueError("anchoring.confirmation_timeout_seconds must be positive")
