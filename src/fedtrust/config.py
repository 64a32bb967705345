"""
fedtrust.config — Tunables for the registry, graph and score engine.

Defaults match the scoring model. Override per process via environment:

    FEDTRUST_HISTORY_LIMIT    score history entries kept per organization (100)
    FEDTRUST_TREND_WINDOW     history entries used for trend regression (90)
    FEDTRUST_DECAY_DAYS       recency decay constant for historical score (90)
    FEDTRUST_RANKING_LIMIT    influence ranking size used for network score (100)
    FEDTRUST_SEARCH_LIMIT     default organization search limit (20)
    FEDTRUST_LOG_LEVEL        logging level for the fedtrust logger (INFO)
    FEDTRUST_LOG_JSON         "0" for plain text logs (1)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}


@dataclass
class FederationConfig:
    history_limit: int = 100
    trend_window: int = 90
    decay_days: float = 90.0
    ranking_limit: int = 100
    search_limit: int = 20
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        if self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        if self.trend_window < 2:
            raise ValueError("trend_window must be >= 2")
        if self.decay_days <= 0:
            raise ValueError("decay_days must be positive")
        if self.ranking_limit < 1:
            raise ValueError("ranking_limit must be >= 1")
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        self.log_level = self.log_level.upper()

    @property
    def decay_seconds(self) -> float:
        return self.decay_days * 24 * 60 * 60

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FederationConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            history_limit=int(env.get("FEDTRUST_HISTORY_LIMIT", defaults.history_limit)),
            trend_window=int(env.get("FEDTRUST_TREND_WINDOW", defaults.trend_window)),
            decay_days=float(env.get("FEDTRUST_DECAY_DAYS", defaults.decay_days)),
            ranking_limit=int(env.get("FEDTRUST_RANKING_LIMIT", defaults.ranking_limit)),
            search_limit=int(env.get("FEDTRUST_SEARCH_LIMIT", defaults.search_limit)),
            log_level=env.get("FEDTRUST_LOG_LEVEL", defaults.log_level),
            log_json=env.get("FEDTRUST_LOG_JSON", "1").strip().lower() in _TRUE,
        )
