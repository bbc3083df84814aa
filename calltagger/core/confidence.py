"""
Confidence score calibration.

The LLM's self-reported confidence is not a probability: it is systematically
over- or under-confident. Running the tagger over a human-labeled validation
set gives (raw confidence, was it correct) observations; an isotonic
(monotonically non-decreasing) curve fit to them maps raw scores to empirical
accuracy at inference time.
"""

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from .stores import CalibrationSample, ValidationSampleStore

logger = logging.getLogger(__name__)

# Raw scores closer than this are pooled into one regression group
GROUP_WIDTH = 0.01


@dataclass
class Observation:
    """One tag produced during a calibration run."""
    raw_confidence: float
    is_correct: bool


@dataclass
class CalibrationPoint:
    raw_confidence: float
    empirical_accuracy: float


@dataclass
class CalibrationBucket:
    range_start: float
    range_end: float
    count: int
    mean_raw_confidence: float
    empirical_accuracy: float


@dataclass
class CalibrationReport:
    """Summary of a calibration fit."""
    sample_count: int
    buckets: List[CalibrationBucket] = field(default_factory=list)
    brier_score: float = 0.0
    calibration_curve: List[CalibrationPoint] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


class ConfidenceCalibrator:
    """
    Isotonic-regression confidence calibrator.

    Features:
    - Pool Adjacent Violators fit over (raw confidence -> accuracy)
    - Reliability buckets and Brier score for the report
    - Pass-through until a calibration has been built at least once
    - Optional persistence of the curve to a local JSON file

    Usage:
        calibrator = ConfidenceCalibrator(sample_store)

        report = calibrator.build_calibration(observations)
        calibrated = calibrator.adjust_confidence(0.85)
    """

    DEFAULT_NUM_BUCKETS = 10

    def __init__(
        self,
        sample_store: Optional[ValidationSampleStore] = None,
        config: Optional[Dict] = None,
    ):
        """
        Initialize confidence calibrator.

        Args:
            sample_store: Source of labeled validation samples
            config: Configuration with:
                - curve_file: Path to persist the curve (optional)
                - num_buckets: Report buckets (default: 10)
        """
        config = config or {}

        self.sample_store = sample_store
        self.curve_file = config.get("curve_file")
        self.num_buckets = config.get("num_buckets", self.DEFAULT_NUM_BUCKETS)

        self._curve: List[CalibrationPoint] = []
        self._calibrated = False
        self._lock = threading.Lock()

        if self.curve_file:
            self.load_curve()

    @property
    def calibrated(self) -> bool:
        """Whether a calibration curve is active."""
        return self._calibrated

    @property
    def curve(self) -> List[CalibrationPoint]:
        with self._lock:
            return list(self._curve)

    # ─── Validation set ──────────────────────────────────────────────────

    def load_validation_samples(self) -> List[CalibrationSample]:
        """All labeled samples from the attached store (empty if none)."""
        if self.sample_store is None:
            logger.warning("No validation sample store attached")
            return []
        return self.sample_store.validation_samples()

    def add_validation_sample(self, sample: CalibrationSample) -> str:
        """Add a human-labeled sample to the attached store."""
        if self.sample_store is None:
            raise ValueError("No validation sample store attached")
        return self.sample_store.add_validation_sample(sample)

    def add_validation_samples(self, samples: Sequence[CalibrationSample]) -> int:
        """Add several samples; returns the number added."""
        for sample in samples:
            self.add_validation_sample(sample)
        return len(samples)

    # ─── Calibration ─────────────────────────────────────────────────────

    def build_calibration(self, observations: Sequence[Observation]) -> CalibrationReport:
        """
        Fit a new calibration curve.

        With no observations the curve falls back to identity and the
        calibrator reports itself uncalibrated.

        Args:
            observations: (raw confidence, correctness) pairs from a validation pass

        Returns:
            CalibrationReport with buckets, Brier score and the fitted curve
        """
        if not observations:
            with self._lock:
                self._curve = [CalibrationPoint(0.0, 0.0), CalibrationPoint(1.0, 1.0)]
                self._calibrated = False
            logger.warning("Calibration run produced no observations; using raw confidence")
            return CalibrationReport(sample_count=0, calibration_curve=self.curve)

        ordered = sorted(
            (Observation(_clamp(o.raw_confidence), bool(o.is_correct)) for o in observations),
            key=lambda o: o.raw_confidence,
        )

        buckets = self._build_buckets(ordered)
        brier_score = sum(
            (o.raw_confidence - (1.0 if o.is_correct else 0.0)) ** 2 for o in ordered
        ) / len(ordered)
        curve = _fit_isotonic(ordered)

        with self._lock:
            self._curve = curve
            self._calibrated = True

        logger.info(
            f"Calibration built from {len(ordered)} observations: "
            f"{len(curve)} curve points, Brier score {brier_score:.4f}"
        )

        if self.curve_file:
            self.save_curve()

        return CalibrationReport(
            sample_count=len(ordered),
            buckets=buckets,
            brier_score=brier_score,
            calibration_curve=list(curve),
        )

    def _build_buckets(self, ordered: List[Observation]) -> List[CalibrationBucket]:
        """Reliability buckets; the last bucket includes 1.0."""
        buckets = []
        n = self.num_buckets

        for i in range(n):
            start, end = i / n, (i + 1) / n
            last = i == n - 1
            members = [
                o for o in ordered
                if start <= o.raw_confidence < end or (last and o.raw_confidence == end)
            ]
            if not members:
                continue
            buckets.append(CalibrationBucket(
                range_start=start,
                range_end=end,
                count=len(members),
                mean_raw_confidence=sum(o.raw_confidence for o in members) / len(members),
                empirical_accuracy=sum(1 for o in members if o.is_correct) / len(members),
            ))

        return buckets

    def adjust_confidence(self, raw_confidence: float) -> float:
        """
        Map a raw confidence through the calibration curve.

        Uncalibrated: returned unchanged. Calibrated: clamped to [0, 1], flat
        beyond the curve's endpoints and linearly interpolated between points.
        """
        with self._lock:
            if not self._calibrated or not self._curve:
                return raw_confidence
            curve = self._curve

        x = _clamp(raw_confidence)

        if x <= curve[0].raw_confidence:
            return curve[0].empirical_accuracy
        if x >= curve[-1].raw_confidence:
            return curve[-1].empirical_accuracy

        for lo, hi in zip(curve, curve[1:]):
            if lo.raw_confidence <= x <= hi.raw_confidence:
                span = hi.raw_confidence - lo.raw_confidence
                if span == 0:
                    return lo.empirical_accuracy
                t = (x - lo.raw_confidence) / span
                return lo.empirical_accuracy + t * (hi.empirical_accuracy - lo.empirical_accuracy)

        return x

    def reset(self) -> None:
        """Drop the curve and go back to pass-through."""
        with self._lock:
            self._curve = []
            self._calibrated = False
        logger.info("Calibration cleared")

    # ─── Persistence ─────────────────────────────────────────────────────

    def save_curve(self) -> None:
        """Save the active curve to curve_file."""
        if not self.curve_file:
            return

        with self._lock:
            data = {
                "calibrated": self._calibrated,
                "curve": [asdict(p) for p in self._curve],
            }

        try:
            directory = os.path.dirname(self.curve_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.curve_file, "w", encoding="utf-8") as f:
                json.dump(data, f)
            logger.debug(f"Saved calibration curve to {self.curve_file}")
        except OSError as e:
            logger.warning(f"Failed to save calibration curve: {e}")

    def load_curve(self) -> bool:
        """
        Load a previously saved curve from curve_file.

        Returns:
            True if a calibrated curve was loaded
        """
        if not self.curve_file or not os.path.exists(self.curve_file):
            return False

        try:
            with open(self.curve_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            curve = [CalibrationPoint(**p) for p in data.get("curve", [])]
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load calibration curve: {e}")
            return False

        with self._lock:
            self._curve = curve
            self._calibrated = bool(data.get("calibrated")) and bool(curve)
            loaded = self._calibrated

        if loaded:
            logger.info(f"Loaded calibration curve ({len(curve)} points) from {self.curve_file}")
        return loaded


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _fit_isotonic(ordered: List[Observation]) -> List[CalibrationPoint]:
    """
    Pool Adjacent Violators over observations sorted by raw confidence.

    Observations within GROUP_WIDTH of a group's first score are pooled first;
    blocks are then merged backwards while accuracy decreases.
    """
    groups = []  # (mean raw confidence, accuracy, weight)
    i = 0
    while i < len(ordered):
        j = i
        while j < len(ordered) and ordered[j].raw_confidence - ordered[i].raw_confidence < GROUP_WIDTH:
            j += 1
        members = ordered[i:j]
        groups.append((
            sum(o.raw_confidence for o in members) / len(members),
            sum(1 for o in members if o.is_correct) / len(members),
            len(members),
        ))
        i = j

    blocks = []  # [value, weight, first group, last group]
    for index, (_, value, weight) in enumerate(groups):
        blocks.append([value, weight, index, index])
        while len(blocks) >= 2 and blocks[-2][0] > blocks[-1][0]:
            last = blocks.pop()
            prev = blocks[-1]
            total = prev[1] + last[1]
            prev[0] = (prev[0] * prev[1] + last[0] * last[1]) / total
            prev[1] = total
            prev[3] = last[3]

    # One point per block at its middle group's raw confidence
    return [
        CalibrationPoint(
            raw_confidence=groups[(first + last) // 2][0],
            empirical_accuracy=value,
        )
        for value, _, first, last in blocks
    ]
