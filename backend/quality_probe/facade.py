"""
NetworkTest facade.

Public entry point: validates the channel factory and credentials up front,
validates caller callbacks, records analytics around each quality test and
drives the optional completion callback.
"""
import logging
from typing import Callable, Optional

from config import ProbeSettings, get_settings
from log_utils import register_secret
from quality_probe.analytics import (
    ACTION_TEST_QUALITY,
    VARIATION_ATTEMPT,
    VARIATION_FAILURE,
    VARIATION_SUCCESS,
    ProbeAnalytics,
)
from quality_probe.channel import ChannelFactory, Subscriber
from quality_probe.errors import (
    IncompleteSessionCredentialsError,
    InvalidOnCompleteCallback,
    InvalidOnUpdateCallback,
    MissingChannelFactoryError,
    MissingSessionCredentialsError,
    ProbeError,
)
from quality_probe.estimator import MOSEstimator, QualityEstimator
from quality_probe.models import ProbeResult, RenderTarget, SessionDescriptor
from quality_probe.runner import run_quality_probe
from quality_probe.race import ProgressCallback

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Optional[ProbeError], Optional[ProbeResult]], None]


def _notify_complete(
    on_complete: Optional[CompletionCallback],
    error: Optional[ProbeError],
    result: Optional[ProbeResult],
) -> None:
    if on_complete is None:
        return
    try:
        on_complete(error, result)
    except Exception:
        # The probe outcome stands regardless of the caller's callback
        logger.exception("[QUALITY-PROBE] Completion callback raised")


class NetworkTest:
    """Runs quality probes against one session."""

    def __init__(
        self,
        channel_factory: ChannelFactory,
        descriptor: Optional[SessionDescriptor],
        settings: Optional[ProbeSettings] = None,
        analytics: Optional[ProbeAnalytics] = None,
    ):
        if channel_factory is None or not callable(channel_factory):
            raise MissingChannelFactoryError()
        if descriptor is None:
            raise MissingSessionCredentialsError()
        if not descriptor.is_complete():
            raise IncompleteSessionCredentialsError()

        register_secret(descriptor.token)
        self.channel_factory = channel_factory
        self.descriptor = descriptor
        self.settings = settings or get_settings()
        self.analytics = analytics or ProbeAnalytics(descriptor, self.settings)

    def _build_estimator(self, subscriber: Subscriber) -> QualityEstimator:
        return MOSEstimator(
            subscriber,
            min_samples=self.settings.min_samples,
            convergence_window=self.settings.convergence_window,
            convergence_tolerance=self.settings.convergence_tolerance,
            video_floor_bps=self.settings.video_floor_bps,
            video_target_bps=self.settings.video_target_bps,
        )

    async def _validate_callbacks(
        self,
        on_progress: Optional[ProgressCallback],
        on_complete: Optional[CompletionCallback],
    ) -> None:
        if on_progress is not None and not callable(on_progress):
            await self.analytics.log_event(ACTION_TEST_QUALITY, VARIATION_FAILURE)
            raise InvalidOnUpdateCallback()
        if on_complete is not None and not callable(on_complete):
            await self.analytics.log_event(ACTION_TEST_QUALITY, VARIATION_FAILURE)
            raise InvalidOnCompleteCallback()

    async def test_quality(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> ProbeResult:
        """
        Publish a test stream, subscribe to it and estimate MOS and bandwidth.

        Args:
            on_progress: Called with each StatsSample as it arrives
            on_complete: Called once with (error, result) before this returns

        Returns:
            ProbeResult

        Raises:
            ProbeError subclass describing the failed stage
        """
        await self.analytics.log_event(ACTION_TEST_QUALITY, VARIATION_ATTEMPT)
        await self._validate_callbacks(on_progress, on_complete)

        try:
            result = await run_quality_probe(
                self.channel_factory,
                self.descriptor,
                self.settings.deadline_ms,
                on_progress=on_progress,
                estimator_factory=self._build_estimator,
                target=RenderTarget(name=self.settings.render_target),
            )
        except ProbeError as e:
            logger.warning("[QUALITY-PROBE] Quality test failed (%s): %s", e.code, e)
            await self.analytics.log_event(ACTION_TEST_QUALITY, VARIATION_FAILURE)
            _notify_complete(on_complete, e, None)
            raise

        await self.analytics.log_event(ACTION_TEST_QUALITY, VARIATION_SUCCESS)
        _notify_complete(on_complete, None, result)
        return result

    async def aclose(self) -> None:
        await self.analytics.aclose()
