"""Education advisor package."""

from .config import AdvisoryConfig, ExtractionConfig, ScoringConfig, StreamConfig

__all__ = ["AdvisoryConfig", "ExtractionConfig", "ScoringConfig", "StreamConfig"]
