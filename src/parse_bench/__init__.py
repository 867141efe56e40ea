"""Parse benchmark package."""

from .config import ComparisonConfig, HistoryConfig, PassageConfig, PollingConfig

__all__ = ["ComparisonConfig", "HistoryConfig", "PassageConfig", "PollingConfig"]
