"""
Quality probe data model.

Value types shared by the sequencer, race controller, estimator and assembler.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from quality_probe.channel import ProbeMediaChannel, Publisher, Subscriber

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session & media
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionDescriptor:
    """Opaque identifiers handed to the channel provider."""
    api_key: str
    session_id: str
    token: str

    def is_complete(self) -> bool:
        return bool(self.api_key and self.session_id and self.token)


class MediaKind(Enum):
    AUDIO = "audio"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaKindStats:
    """Cumulative counters for one media kind, as reported by the channel."""
    bytes_received: int = 0
    packets_received: int = 0
    packets_lost: int = 0


@dataclass(frozen=True)
class StatsSample:
    """One per-interval measurement pushed by the subscriber."""
    timestamp: float  # milliseconds
    audio: MediaKindStats = field(default_factory=MediaKindStats)
    video: MediaKindStats = field(default_factory=MediaKindStats)

    def for_kind(self, kind: MediaKind) -> MediaKindStats:
        return self.audio if kind is MediaKind.AUDIO else self.video


@dataclass(frozen=True)
class RenderTarget:
    """Offscreen element the test publisher and subscriber render into."""
    name: str = "quality-probe-offscreen"
    headless: bool = True


@dataclass(frozen=True)
class PublisherOptions:
    test_only: bool = True  # keep the probe publication out of normal room semantics
    publish_audio: bool = True
    publish_video: bool = True


@dataclass(frozen=True)
class SubscriberOptions:
    test_network: bool = True  # synthetic subscription, not a real participant


# ---------------------------------------------------------------------------
# Estimates & results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Bandwidth:
    """Bits per second per media kind."""
    audio: float = 0.0
    video: float = 0.0

    def for_kind(self, kind: MediaKind) -> float:
        return self.audio if kind is MediaKind.AUDIO else self.video


@dataclass(frozen=True)
class RunningEstimate:
    """Estimator state captured when the race settles."""
    quality_score: float
    bandwidth: Bandwidth
    converged: bool = False


@dataclass(frozen=True)
class MediaResult:
    bandwidth: float


@dataclass(frozen=True)
class ProbeResult:
    """Final report handed to the caller."""
    mos: float
    audio: MediaResult
    video: MediaResult

    def to_dict(self) -> dict:
        return {
            "mos": self.mos,
            "audio": {"bandwidth": self.audio.bandwidth},
            "video": {"bandwidth": self.video.bandwidth},
        }


# ---------------------------------------------------------------------------
# Live channel state
# ---------------------------------------------------------------------------

@dataclass
class ProbeHandle:
    """
    Live channel state for one probe.

    Built up by the sequencer, owned by the race controller once the
    subscription exists. ``release()`` is the only place the publisher is
    destroyed and the channel disconnected; calling it again is a no-op.
    """
    channel: "ProbeMediaChannel"
    publisher: Optional["Publisher"] = None
    subscriber: Optional["Subscriber"] = None
    released: bool = False

    async def release(self) -> None:
        if self.released:
            return
        self.released = True

        if self.publisher is not None:
            try:
                self.publisher.destroy()
            except Exception:
                logger.exception("[QUALITY-PROBE] Failed to destroy test publisher")

        try:
            await self.channel.disconnect()
            logger.debug("[QUALITY-PROBE] Channel disconnected")
        except Exception:
            # Release failures must not mask the probe outcome
            logger.exception("[QUALITY-PROBE] Failed to disconnect channel")
