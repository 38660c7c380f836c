"""
Quality probe entry point.

Builds a fresh channel for the probe, runs the setup sequence, races the
estimator against the deadline and assembles the report. Nothing is shared
between calls, so probes can run concurrently on the same loop.
"""
import logging
from typing import Optional

from quality_probe.assembler import assemble
from quality_probe.channel import ChannelFactory
from quality_probe.errors import ChannelConnectError, EstimationError
from quality_probe.estimator import EstimatorFactory, MOSEstimator
from quality_probe.models import ProbeResult, RenderTarget, SessionDescriptor
from quality_probe.race import ConvergenceRace, ProgressCallback
from quality_probe.sequencer import run_probe

logger = logging.getLogger(__name__)


async def run_quality_probe(
    channel_factory: ChannelFactory,
    descriptor: SessionDescriptor,
    deadline_ms: float,
    on_progress: Optional[ProgressCallback] = None,
    estimator_factory: EstimatorFactory = MOSEstimator,
    target: Optional[RenderTarget] = None,
) -> ProbeResult:
    """
    Run one quality probe end to end.

    Returns:
        ProbeResult, possibly built from a deadline-forced snapshot

    Raises:
        ChannelSetupError subclasses or EstimationError. The channel is
        disconnected before either a result or an error reaches the caller.
    """
    if deadline_ms <= 0:
        raise ValueError(f"deadline_ms must be positive, got {deadline_ms}")

    try:
        channel = channel_factory(descriptor)
    except Exception as e:
        raise ChannelConnectError(f"Could not create channel: {e}") from e
    logger.info("[QUALITY-PROBE] Starting probe for session %s (deadline %sms)", descriptor.session_id, deadline_ms)

    handle = await run_probe(channel, descriptor, target)
    try:
        estimator = estimator_factory(handle.subscriber)
    except Exception as e:
        await handle.release()
        raise EstimationError(f"Could not create estimator: {e}") from e

    estimate = await ConvergenceRace(handle, estimator, deadline_ms, on_progress).run()
    result = assemble(estimate)
    logger.info(
        "[QUALITY-PROBE] Probe finished for session %s: mos=%.2f audio=%.0fbps video=%.0fbps converged=%s",
        descriptor.session_id, result.mos, result.audio.bandwidth, result.video.bandwidth, estimate.converged,
    )
    return result
