"""
Tagger module - Core transcript classification pipeline.

Coordinates the flow for each chunk:
Cache -> Rate Limit -> LLM (with failover) -> Validate -> Calibrate -> Cache.

Calls are tagged through a bounded worker pool; batches run one call at a time
so the per-call pool size is the global ceiling on in-flight provider calls.
"""

import asyncio
import dataclasses
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .confidence import CalibrationReport, ConfidenceCalibrator, Observation
from .failover import is_transient_error
from .prompt_engine import build_tagging_messages, estimate_request_tokens
from .rate_limiter import RateLimiter
from .stores import TagStore, TranscriptChunk, TranscriptNotFoundError, TranscriptStore
from .tag_cache import TagCache
from .taxonomy import FunnelStage, TaxonomyTag, is_valid_tag, parse_stage
from ..providers.base import AIClient, ChatCompletionOptions

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class ChunkTags:
    """Tags for one chunk text and whether they came from the cache."""
    tags: List[TaxonomyTag]
    cached: bool


@dataclass(frozen=True)
class ChunkTaggingResult:
    """Tags for one transcript chunk, in the order the model returned them."""
    chunk_id: str
    tags: List[TaxonomyTag] = field(default_factory=list)
    cached: bool = False

    def to_dict(self) -> Dict:
        return {
            "chunk_id": self.chunk_id,
            "tags": [tag.to_dict() for tag in self.tags],
            "cached": self.cached,
        }


@dataclass
class CalibrationRun:
    report: CalibrationReport
    cache_stats: Dict


def aggregate_call_tags(results: Sequence[ChunkTaggingResult]) -> Dict[Tuple[FunnelStage, str], float]:
    """
    Roll chunk tags up to call level.

    Returns:
        {(stage, topic): confidence} keeping the highest confidence per pair
    """
    aggregated: Dict[Tuple[FunnelStage, str], float] = {}
    for result in results:
        for tag in result.tags:
            current = aggregated.get(tag.key)
            if current is None or tag.confidence > current:
                aggregated[tag.key] = tag.confidence
    return aggregated


def _coerce_confidence(value) -> Optional[float]:
    """Model confidence as a float clamped to [0, 1], or None if unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        confidence = float(value)
    except (OverflowError, ValueError):
        return None
    if math.isnan(confidence):
        return None
    return max(0.0, min(1.0, confidence))


class AITagger:
    """
    Tags transcript chunks against the sales taxonomy.

    Rate limiter, cache and calibrator are injected so several taggers (or
    tests) can share or isolate them; private defaults are created when omitted.

    Usage:
        tagger = AITagger(client, transcripts, tag_store, rate_limiter=limiter)
        results = asyncio.run(tagger.tag_call_transcript("call-1"))
    """

    DEFAULT_CONCURRENCY = 5
    DEFAULT_TEMPERATURE = 0.1
    DEFAULT_COMPLETION_TOKENS = 500
    DEFAULT_STORAGE_RETRIES = 3

    def __init__(
        self,
        ai_client: AIClient,
        transcript_store: TranscriptStore,
        tag_store: TagStore,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[TagCache] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
        config: Optional[Dict] = None,
    ):
        """
        Initialize tagger.

        Args:
            ai_client: LLM client (usually a FailoverClient)
            transcript_store: Source of call chunks
            tag_store: Tag persistence
            rate_limiter: Shared RPM/TPM limiter
            cache: Shared tag cache
            calibrator: Optional confidence calibrator
            config: Configuration with:
                - concurrency: Workers per call (default: 5)
                - temperature: Sampling temperature (default: 0.1)
                - completion_token_estimate: Expected completion tokens (default: 500)
                - storage_retries: Attempts per tag write on transient errors (default: 3)
        """
        config = config or {}

        self.ai_client = ai_client
        self.transcript_store = transcript_store
        self.tag_store = tag_store
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache or TagCache()
        self.calibrator = calibrator

        self.concurrency = max(1, int(config.get("concurrency", self.DEFAULT_CONCURRENCY)))
        self.temperature = config.get("temperature", self.DEFAULT_TEMPERATURE)
        self.completion_token_estimate = config.get(
            "completion_token_estimate", self.DEFAULT_COMPLETION_TOKENS
        )
        self.storage_retries = max(1, int(config.get("storage_retries", self.DEFAULT_STORAGE_RETRIES)))

        self._parse_failures = 0

    @property
    def cache_stats(self) -> Dict:
        return self.cache.stats

    @property
    def parse_failures(self) -> int:
        """Number of provider responses that could not be parsed."""
        return self._parse_failures

    # ─── Single chunk ────────────────────────────────────────────────────

    async def tag_chunk(self, text: str, apply_calibration: bool = True) -> ChunkTags:
        """
        Tag one chunk of transcript text.

        Args:
            text: Chunk text (cache key is its exact bytes)
            apply_calibration: Map confidences through the calibrator when it is active

        Returns:
            ChunkTags; an unparseable response yields zero tags
        """
        cached = self.cache.get(text)
        if cached is not None:
            return ChunkTags(self._calibrate(cached, apply_calibration), cached=True)

        estimated_tokens = estimate_request_tokens(text, self.completion_token_estimate)
        await self.rate_limiter.acquire(estimated_tokens)

        options = ChatCompletionOptions(
            messages=build_tagging_messages(text),
            temperature=self.temperature,
            json_mode=True,
        )
        completion = await asyncio.to_thread(self.ai_client.chat_completion, options)

        if completion.total_tokens:
            self.rate_limiter.report_usage(completion.total_tokens, estimated_tokens)

        tags = self._parse_tag_response(completion.content)
        if tags is None:
            return ChunkTags([], cached=False)

        self.cache.set(text, tags)
        return ChunkTags(self._calibrate(tags, apply_calibration), cached=False)

    def _calibrate(self, tags: List[TaxonomyTag], apply_calibration: bool) -> List[TaxonomyTag]:
        calibrator = self.calibrator
        if not apply_calibration or calibrator is None or not calibrator.calibrated:
            return list(tags)
        return [
            dataclasses.replace(tag, confidence=calibrator.adjust_confidence(tag.confidence))
            for tag in tags
        ]

    def _parse_tag_response(self, content: Optional[str]) -> Optional[List[TaxonomyTag]]:
        """
        Parse and validate the model's JSON response.

        Tags outside the taxonomy, with a stage that doesn't own the topic, or
        with a confidence that is not a number (or numeric string) are dropped;
        confidences are clamped to [0, 1]. A tag repeated within the response
        keeps its highest confidence.

        Returns:
            Validated tags, or None if the response is not usable JSON
        """
        if not content:
            self._record_parse_failure("empty response")
            return None

        try:
            parsed = json.loads(content)
        except ValueError as e:
            self._record_parse_failure(f"invalid JSON ({e})")
            return None

        raw_tags = parsed.get("tags", []) if isinstance(parsed, dict) else None
        if not isinstance(raw_tags, list):
            self._record_parse_failure("missing 'tags' array")
            return None

        tags: Dict[Tuple[FunnelStage, str], TaxonomyTag] = {}
        for raw in raw_tags:
            if not isinstance(raw, dict):
                continue

            stage = raw.get("funnel_stage")
            topic = raw.get("topic")
            if not is_valid_tag(stage, topic):
                logger.debug(f"Dropping tag outside taxonomy: {stage}/{topic}")
                continue

            confidence = _coerce_confidence(raw.get("confidence"))
            if confidence is None:
                logger.debug(f"Dropping tag with unusable confidence: {stage}/{topic}")
                continue

            tag = TaxonomyTag(parse_stage(stage), topic, confidence)
            # Repeated tags within one chunk keep the highest confidence
            current = tags.get(tag.key)
            if current is None or confidence > current.confidence:
                tags[tag.key] = tag

        return list(tags.values())

    def _record_parse_failure(self, reason: str) -> None:
        self._parse_failures += 1
        logger.warning(
            f"Unparseable tagging response from {self.ai_client.circuit_key}: {reason} "
            f"(total parse failures: {self._parse_failures})"
        )

    # ─── Calls and batches ───────────────────────────────────────────────

    async def tag_call_transcript(self, call_id: str) -> List[ChunkTaggingResult]:
        """
        Tag every chunk of a call, then persist chunk and call-level tags.

        Nothing is persisted if any chunk fails.

        Raises:
            TranscriptNotFoundError: If the call has no transcript
        """
        chunks = await asyncio.to_thread(self.transcript_store.chunks, call_id)
        if chunks is None:
            raise TranscriptNotFoundError(f"No transcript found for call {call_id}")

        logger.info(f"Tagging call {call_id} ({len(chunks)} chunks)")
        results = await self._tag_chunks(chunks)

        for result in results:
            for tag in result.tags:
                await self._store(
                    self.tag_store.upsert_chunk_tag,
                    result.chunk_id, tag.funnel_stage, tag.topic, tag.confidence,
                )

        call_tags = aggregate_call_tags(results)
        for (stage, topic), confidence in call_tags.items():
            await self._store(self.tag_store.upsert_call_tag, call_id, stage, topic, confidence)

        logger.info(
            f"Call {call_id} tagged: {sum(len(r.tags) for r in results)} chunk tags, "
            f"{len(call_tags)} call tags, {sum(1 for r in results if r.cached)} cached chunks"
        )
        return results

    async def tag_batch(
        self,
        call_ids: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, List[ChunkTaggingResult]]:
        """
        Tag several calls, strictly one after another.

        Args:
            call_ids: Calls to tag
            on_progress: Optional callback(call_id, index, total), index 1-based

        Returns:
            Dict of call_id -> chunk results, in call_ids order
        """
        results: Dict[str, List[ChunkTaggingResult]] = {}
        total = len(call_ids)

        for index, call_id in enumerate(call_ids, start=1):
            results[call_id] = await self.tag_call_transcript(call_id)

            if on_progress:
                try:
                    on_progress(call_id, index, total)
                except Exception as e:
                    logger.warning(f"Progress callback failed for {call_id}: {e}")

        return results

    async def run_calibration(self) -> Optional[CalibrationRun]:
        """
        Rebuild the calibration curve from the validation set.

        Each sample is tagged with calibration disabled; every returned tag
        becomes an observation, and a sample whose expected tag is missing
        adds a wrong observation at confidence 0.

        Returns:
            CalibrationRun, or None when no calibrator is attached
        """
        calibrator = self.calibrator
        if calibrator is None:
            return None

        samples = await asyncio.to_thread(calibrator.load_validation_samples)
        if not samples:
            return CalibrationRun(calibrator.build_calibration([]), self.cache_stats)

        logger.info(f"Running calibration over {len(samples)} validation samples")
        chunks = [TranscriptChunk(id=s.id, text=s.chunk_text) for s in samples]
        results = await self._tag_chunks(chunks, apply_calibration=False)

        observations = []
        for sample, result in zip(samples, results):
            expected = (sample.expected_funnel_stage, sample.expected_topic)
            found = False
            for tag in result.tags:
                is_correct = tag.key == expected
                found = found or is_correct
                observations.append(Observation(tag.confidence, is_correct))
            if not found:
                observations.append(Observation(0.0, False))

        report = calibrator.build_calibration(observations)
        return CalibrationRun(report, self.cache_stats)

    # ─── Internals ───────────────────────────────────────────────────────

    async def _tag_chunks(
        self, chunks: Sequence[TranscriptChunk], apply_calibration: bool = True
    ) -> List[ChunkTaggingResult]:
        """
        Tag chunks through a pool of min(concurrency, len(chunks)) workers.

        Results are written by index so output order matches input order.
        """
        if not chunks:
            return []

        results: List[Optional[ChunkTaggingResult]] = [None] * len(chunks)
        cursor = 0

        async def worker() -> None:
            nonlocal cursor
            while cursor < len(chunks):
                # Claimed before the await; the event loop never preempts here
                index = cursor
                cursor += 1
                chunk = chunks[index]
                tagged = await self.tag_chunk(chunk.text, apply_calibration)
                results[index] = ChunkTaggingResult(chunk.id, tagged.tags, tagged.cached)

        workers = [
            asyncio.create_task(worker())
            for _ in range(min(self.concurrency, len(chunks)))
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        return results

    async def _store(self, write, *args) -> None:
        """Run a tag write, retrying transient storage errors."""
        for attempt in range(1, self.storage_retries + 1):
            try:
                await asyncio.to_thread(write, *args)
                return
            except Exception as e:
                if attempt >= self.storage_retries or not is_transient_error(e):
                    raise
                logger.warning(
                    f"Transient storage error on attempt {attempt}/{self.storage_retries}: {e}"
                )
