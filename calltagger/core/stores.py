"""
Collaborator interfaces for transcripts, tag persistence and validation samples.

The tagger only depends on the abstract stores below. In-memory versions are
provided for tests, the CLI and local runs; production deployments plug in
their database-backed implementations.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .taxonomy import FunnelStage, is_valid_tag, parse_stage

logger = logging.getLogger(__name__)


class TranscriptNotFoundError(LookupError):
    """Raised when a call has no transcript."""


@dataclass(frozen=True)
class TranscriptChunk:
    """A contiguous slice of a call transcript."""
    id: str
    text: str


@dataclass(frozen=True)
class CalibrationSample:
    """A human-labeled chunk with its expected tag."""
    id: str
    chunk_text: str
    expected_funnel_stage: FunnelStage
    expected_topic: str


class TranscriptStore(ABC):
    """Source of ordered transcript chunks."""

    @abstractmethod
    def chunks(self, call_id: str) -> Optional[List[TranscriptChunk]]:
        """
        Ordered chunks for a call.

        Returns:
            Chunks in transcript order, or None if the call has no transcript
        """
        pass


class TagStore(ABC):
    """Idempotent tag persistence keyed by (owner id, stage, topic)."""

    @abstractmethod
    def upsert_chunk_tag(
        self, chunk_id: str, funnel_stage: FunnelStage, topic: str, confidence: float
    ) -> None:
        pass

    @abstractmethod
    def upsert_call_tag(
        self, call_id: str, funnel_stage: FunnelStage, topic: str, confidence: float
    ) -> None:
        pass


class ValidationSampleStore(ABC):
    """Source of human-labeled calibration samples."""

    @abstractmethod
    def validation_samples(self) -> List[CalibrationSample]:
        pass

    def add_validation_sample(self, sample: CalibrationSample) -> str:
        raise NotImplementedError(f"{type(self).__name__} is read-only")


# ─── In-memory implementations ───────────────────────────────────────────────


class InMemoryTranscriptStore(TranscriptStore):
    """Transcripts held in a dict of call id -> ordered chunks."""

    def __init__(self, calls: Optional[Dict[str, List[TranscriptChunk]]] = None):
        self._calls: Dict[str, List[TranscriptChunk]] = dict(calls or {})

    def add_call(self, call_id: str, chunks: Iterable[TranscriptChunk]) -> None:
        self._calls[call_id] = list(chunks)

    def call_ids(self) -> List[str]:
        return list(self._calls)

    def chunks(self, call_id: str) -> Optional[List[TranscriptChunk]]:
        chunks = self._calls.get(call_id)
        return list(chunks) if chunks is not None else None


TagKey = Tuple[str, FunnelStage, str]


class InMemoryTagStore(TagStore):
    """Tag rows keyed by their natural key; upserts overwrite confidence."""

    def __init__(self):
        self.chunk_tags: Dict[TagKey, float] = {}
        self.call_tags: Dict[TagKey, float] = {}
        self._lock = threading.Lock()

    def upsert_chunk_tag(self, chunk_id, funnel_stage, topic, confidence) -> None:
        with self._lock:
            self.chunk_tags[(chunk_id, funnel_stage, topic)] = confidence

    def upsert_call_tag(self, call_id, funnel_stage, topic, confidence) -> None:
        with self._lock:
            self.call_tags[(call_id, funnel_stage, topic)] = confidence

    def tags_for_call(self, call_id: str) -> Dict[Tuple[FunnelStage, str], float]:
        """Call-level tags as {(stage, topic): confidence}."""
        with self._lock:
            return {
                (stage, topic): confidence
                for (owner, stage, topic), confidence in self.call_tags.items()
                if owner == call_id
            }

    def tags_for_chunk(self, chunk_id: str) -> Dict[Tuple[FunnelStage, str], float]:
        """Chunk-level tags as {(stage, topic): confidence}."""
        with self._lock:
            return {
                (stage, topic): confidence
                for (owner, stage, topic), confidence in self.chunk_tags.items()
                if owner == chunk_id
            }


class InMemoryValidationSampleStore(ValidationSampleStore):
    """Validation samples kept in a list."""

    def __init__(self, samples: Optional[Iterable[CalibrationSample]] = None):
        self._samples: List[CalibrationSample] = list(samples or [])
        self._lock = threading.Lock()

    def validation_samples(self) -> List[CalibrationSample]:
        with self._lock:
            return list(self._samples)

    def add_validation_sample(self, sample: CalibrationSample) -> str:
        with self._lock:
            self._samples.append(sample)
        return sample.id


# ─── JSON file loaders ───────────────────────────────────────────────────────


def load_transcripts_file(path: str) -> InMemoryTranscriptStore:
    """
    Load transcripts from a JSON file.

    Expected format:
        {"calls": {"<call_id>": [{"id": "...", "text": "..."}, ...]}}

    Chunk ids default to "<call_id>:<index>" when missing.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    calls = data.get("calls", data) if isinstance(data, dict) else None
    if not isinstance(calls, dict):
        raise ValueError(f"Transcript file {path} must map call ids to chunk lists")

    store = InMemoryTranscriptStore()
    for call_id, raw_chunks in calls.items():
        store.add_call(
            call_id,
            [
                TranscriptChunk(
                    id=str(chunk.get("id") or f"{call_id}:{index}"),
                    text=str(chunk["text"]),
                )
                for index, chunk in enumerate(raw_chunks)
            ],
        )

    logger.info(f"Loaded {len(calls)} transcripts from {path}")
    return store


def load_validation_samples_file(path: str) -> InMemoryValidationSampleStore:
    """
    Load labeled validation samples from a JSON file.

    Expected format:
        {"samples": [{"chunk_text": "...", "expected_funnel_stage": "BOFU",
                      "expected_topic": "roi_financial_outcomes"}, ...]}

    Samples whose expected tag is not in the taxonomy are skipped.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    raw_samples = data.get("samples", []) if isinstance(data, dict) else data
    samples = []

    for raw in raw_samples:
        stage = raw.get("expected_funnel_stage")
        # Hand-written sample files may use any case for the stage
        if isinstance(stage, str):
            stage = stage.strip().upper()
        topic = raw.get("expected_topic")
        if not is_valid_tag(stage, topic):
            logger.warning(f"Skipping validation sample with invalid tag {stage}/{topic}")
            continue
        samples.append(CalibrationSample(
            id=str(raw.get("id") or uuid.uuid4()),
            chunk_text=str(raw["chunk_text"]),
            expected_funnel_stage=parse_stage(stage),
            expected_topic=topic,
        ))

    logger.info(f"Loaded {len(samples)} validation samples from {path}")
    return InMemoryValidationSampleStore(samples)
