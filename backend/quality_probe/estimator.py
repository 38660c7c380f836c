"""
Quality estimators.

A QualityEstimator ingests stats samples, keeps a running MOS and bandwidth
estimate and announces convergence once it is confident. MOSEstimator is the
default implementation: audio is scored with an E-model style R factor driven
by packet loss, video with a logarithmic bitrate curve, and the probe's
quality score is the weaker of the two.
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Optional

from quality_probe.channel import Subscriber
from quality_probe.models import Bandwidth, MediaKind, StatsSample

logger = logging.getLogger(__name__)

ConvergedCallback = Callable[[float, Bandwidth], None]

MIN_MOS = 1.0
MAX_MOS = 4.5

# Default estimator tuning
DEFAULT_MIN_SAMPLES = 5
DEFAULT_CONVERGENCE_WINDOW = 5
DEFAULT_CONVERGENCE_TOLERANCE = 0.1
DEFAULT_VIDEO_FLOOR_BPS = 30_000  # below this video is unusable
DEFAULT_VIDEO_TARGET_BPS = 1_000_000  # 640x480@30 at full quality

# E-model constants
R_BASE = 93.2
AUDIO_EQUIPMENT_IMPAIRMENT = 0.0  # Ie
AUDIO_LOSS_ROBUSTNESS = 25.0  # Bpl


def _clamp_mos(value: float) -> float:
    return max(MIN_MOS, min(MAX_MOS, value))


def r_factor_to_mos(r: float) -> float:
    """Convert an E-model R factor to MOS."""
    if r <= 0:
        return MIN_MOS
    if r >= 100:
        return MAX_MOS
    return _clamp_mos(1 + 0.035 * r + 7e-6 * r * (r - 60) * (100 - r))


def audio_mos(loss_ratio: float) -> float:
    """Score audio from the packet loss ratio (0.0 - 1.0) of one interval."""
    ppl = max(0.0, loss_ratio) * 100
    ie_eff = AUDIO_EQUIPMENT_IMPAIRMENT + (95 - AUDIO_EQUIPMENT_IMPAIRMENT) * (
        ppl / (ppl + AUDIO_LOSS_ROBUSTNESS)
    )
    return r_factor_to_mos(R_BASE - ie_eff)


def video_mos(
    bitrate_bps: float,
    floor_bps: float = DEFAULT_VIDEO_FLOOR_BPS,
    target_bps: float = DEFAULT_VIDEO_TARGET_BPS,
) -> float:
    """Score video on a log curve: MIN_MOS at the floor, MAX_MOS at the target."""
    if bitrate_bps <= floor_bps:
        return MIN_MOS
    ratio = math.log(bitrate_bps / floor_bps) / math.log(target_bps / floor_bps)
    return _clamp_mos(MIN_MOS + (MAX_MOS - MIN_MOS) * ratio)


class QualityEstimator(ABC):
    """Running MOS / bandwidth estimator fed by the race controller."""

    @abstractmethod
    def start(self, on_converged: ConvergedCallback) -> None:
        """
        Begin estimating.

        ``on_converged`` is scheduled on the event loop (never called inline)
        with ``(score, bandwidth)`` the first time the estimate is stable.
        """
        pass

    @abstractmethod
    def ingest(self, sample: StatsSample) -> None:
        pass

    @abstractmethod
    def current_score(self) -> float:
        pass

    @abstractmethod
    def current_bandwidth(self) -> Bandwidth:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


EstimatorFactory = Callable[[Subscriber], QualityEstimator]


class MOSEstimator(QualityEstimator):
    """
    Default estimator built on per-interval deltas of the cumulative counters.

    ``subscriber`` is accepted so the class itself is an EstimatorFactory;
    samples only ever arrive through ``ingest()``.
    """

    def __init__(
        self,
        subscriber: Optional[Subscriber] = None,
        min_samples: int = DEFAULT_MIN_SAMPLES,
        convergence_window: int = DEFAULT_CONVERGENCE_WINDOW,
        convergence_tolerance: float = DEFAULT_CONVERGENCE_TOLERANCE,
        video_floor_bps: float = DEFAULT_VIDEO_FLOOR_BPS,
        video_target_bps: float = DEFAULT_VIDEO_TARGET_BPS,
    ):
        if video_target_bps <= video_floor_bps:
            raise ValueError("video_target_bps must be greater than video_floor_bps")
        self.min_samples = max(1, min_samples)
        self.convergence_window = max(1, convergence_window)
        self.convergence_tolerance = convergence_tolerance
        self.video_floor_bps = video_floor_bps
        self.video_target_bps = video_target_bps

        self._on_converged: Optional[ConvergedCallback] = None
        self._previous: Optional[StatsSample] = None
        self._scores: list[float] = []
        self._bitrates: dict[MediaKind, list[float]] = {kind: [] for kind in MediaKind}
        self._converged = False
        self._stopped = False

    @property
    def converged(self) -> bool:
        return self._converged

    @property
    def interval_count(self) -> int:
        return len(self._scores)

    def start(self, on_converged: ConvergedCallback) -> None:
        self._on_converged = on_converged
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True
        self._on_converged = None

    def ingest(self, sample: StatsSample) -> None:
        if self._stopped:
            return

        previous = self._previous
        self._previous = sample
        if previous is None:
            return

        elapsed_ms = sample.timestamp - previous.timestamp
        if elapsed_ms <= 0:
            raise ValueError(
                f"Stats timestamp did not advance ({previous.timestamp} -> {sample.timestamp})"
            )

        for kind in MediaKind:
            delta_bytes = sample.for_kind(kind).bytes_received - previous.for_kind(kind).bytes_received
            if delta_bytes < 0:
                raise ValueError(f"{kind.value} byte counter went backwards")
            self._bitrates[kind].append(delta_bytes * 8 * 1000 / elapsed_ms)

        score = min(
            audio_mos(self._interval_loss(previous, sample)),
            video_mos(self._bitrates[MediaKind.VIDEO][-1], self.video_floor_bps, self.video_target_bps),
        )
        self._scores.append(score)
        logger.debug("[QUALITY-PROBE-MOS] Interval %s scored %.2f", len(self._scores), score)

        if not self._converged and self._is_stable():
            self._converged = True
            self._notify_converged()

    def current_score(self) -> float:
        # No scored interval within the budget means nothing got through
        if not self._scores:
            return MIN_MOS
        window = self._scores[-self.convergence_window:]
        return sum(window) / len(window)

    def current_bandwidth(self) -> Bandwidth:
        def mean(values: list[float]) -> float:
            return sum(values) / len(values) if values else 0.0

        return Bandwidth(
            audio=mean(self._bitrates[MediaKind.AUDIO]),
            video=mean(self._bitrates[MediaKind.VIDEO]),
        )

    def _interval_loss(self, previous: StatsSample, sample: StatsSample) -> float:
        lost = sample.audio.packets_lost - previous.audio.packets_lost
        received = sample.audio.packets_received - previous.audio.packets_received
        if lost < 0 or received < 0:
            raise ValueError("audio packet counters went backwards")
        total = lost + received
        return lost / total if total else 0.0

    def _is_stable(self) -> bool:
        if len(self._scores) < max(self.min_samples, self.convergence_window):
            return False
        window = self._scores[-self.convergence_window:]
        return max(window) - min(window) <= self.convergence_tolerance

    def _notify_converged(self) -> None:
        if self._on_converged is None:
            return
        score = self.current_score()
        bandwidth = self.current_bandwidth()
        logger.info(
            "[QUALITY-PROBE-MOS] Converged after %s intervals: score=%.2f audio=%.0fbps video=%.0fbps",
            len(self._scores), score, bandwidth.audio, bandwidth.video,
        )
        asyncio.get_running_loop().call_soon(self._on_converged, score, bandwidth)
