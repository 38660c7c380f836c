"""
Quality Probe - measure MOS and bandwidth of a real-time media channel.

Publishes a test stream, subscribes to it, samples live statistics and settles
on a quality verdict when the estimator converges or the deadline expires.
"""

from quality_probe.assembler import assemble
from quality_probe.channel import ProbeMediaChannel, Publisher, Stream, Subscriber
from quality_probe.errors import (
    ChannelConnectError,
    ChannelSetupError,
    EstimationError,
    MissingSubscriberError,
    ProbeError,
    PublishError,
    PublisherInitError,
    SubscribeError,
)
from quality_probe.estimator import MOSEstimator, QualityEstimator
from quality_probe.facade import NetworkTest
from quality_probe.models import (
    Bandwidth,
    MediaKindStats,
    ProbeHandle,
    ProbeResult,
    RunningEstimate,
    SessionDescriptor,
    StatsSample,
)
from quality_probe.race import ConvergenceRace, race
from quality_probe.runner import run_quality_probe
from quality_probe.sequencer import run_probe

__all__ = [
    "assemble",
    "Bandwidth",
    "ChannelConnectError",
    "ChannelSetupError",
    "ConvergenceRace",
    "EstimationError",
    "MediaKindStats",
    "MissingSubscriberError",
    "MOSEstimator",
    "NetworkTest",
    "ProbeError",
    "ProbeHandle",
    "ProbeMediaChannel",
    "ProbeResult",
    "Publisher",
    "PublishError",
    "PublisherInitError",
    "QualityEstimator",
    "race",
    "run_probe",
    "run_quality_probe",
    "RunningEstimate",
    "SessionDescriptor",
    "StatsSample",
    "Stream",
    "SubscribeError",
    "Subscriber",
]
