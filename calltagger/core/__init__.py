"""
Core modules for calltagger.

This package contains the classification pipeline:
- taxonomy: Funnel stages and their topics
- rate_limiter: RPM/TPM budget for provider calls
- tag_cache: Content-addressed tag cache
- confidence: Isotonic confidence calibration
- circuit_breaker / failover: Provider resilience
- prompt_engine: System prompt and message building
- stores: Transcript, tag and validation sample collaborators
- tagger: Orchestrator tying it all together
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .confidence import CalibrationReport, ConfidenceCalibrator, Observation
from .failover import FailoverClient, is_transient_error
from .rate_limiter import RateLimiter
from .stores import (
    CalibrationSample,
    InMemoryTagStore,
    InMemoryTranscriptStore,
    InMemoryValidationSampleStore,
    TagStore,
    TranscriptChunk,
    TranscriptNotFoundError,
    TranscriptStore,
    ValidationSampleStore,
)
from .tag_cache import TagCache
from .tagger import AITagger, CalibrationRun, ChunkTaggingResult, ChunkTags
from .taxonomy import FunnelStage, TaxonomyTag, is_valid_tag

__all__ = [
    "AITagger",
    "CalibrationReport",
    "CalibrationRun",
    "CalibrationSample",
    "ChunkTaggingResult",
    "ChunkTags",
    "CircuitBreaker",
    "CircuitState",
    "ConfidenceCalibrator",
    "FailoverClient",
    "FunnelStage",
    "InMemoryTagStore",
    "InMemoryTranscriptStore",
    "InMemoryValidationSampleStore",
    "Observation",
    "RateLimiter",
    "TagCache",
    "TagStore",
    "TaxonomyTag",
    "TranscriptChunk",
    "TranscriptNotFoundError",
    "TranscriptStore",
    "ValidationSampleStore",
    "is_transient_error",
]
