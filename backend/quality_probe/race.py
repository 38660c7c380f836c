"""
Convergence race controller.

Races the estimator's convergence signal against a single deadline timer.
Whichever fires first settles the race; the other is suppressed by an explicit
settled guard. Every exit path (convergence, deadline, estimator failure,
cancellation) goes through one teardown block that cancels the timer, detaches
the stats listener, stops the estimator and releases the channel before the
result is handed back.
"""
import asyncio
import logging
from typing import Callable, Optional

from quality_probe.errors import EstimationError, MissingSubscriberError
from quality_probe.estimator import QualityEstimator
from quality_probe.models import Bandwidth, ProbeHandle, RunningEstimate, StatsSample

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StatsSample], None]

SETTLED_BY_CONVERGENCE = "convergence"
SETTLED_BY_DEADLINE = "deadline"
SETTLED_BY_ERROR = "error"


def _estimation_error(cause: Exception) -> EstimationError:
    error = EstimationError(str(cause) or type(cause).__name__)
    error.__cause__ = cause
    return error


class ConvergenceRace:
    """
    One race per probe. Owns the handle from the moment ``run()`` starts.

    Args:
        handle: Probe handle with a live subscriber
        estimator: Estimator fed with every stats sample
        deadline_ms: Time budget before falling back to the estimator snapshot
        on_sample: Optional progress sink, called once per sample, in order
    """

    def __init__(
        self,
        handle: ProbeHandle,
        estimator: QualityEstimator,
        deadline_ms: float,
        on_sample: Optional[ProgressCallback] = None,
    ):
        if deadline_ms <= 0:
            raise ValueError(f"deadline_ms must be positive, got {deadline_ms}")
        self._handle = handle
        self._estimator = estimator
        self._deadline_ms = deadline_ms
        self._on_sample = on_sample

        self._future: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._settled = False
        self._started_at = 0.0
        self.settled_by: Optional[str] = None
        self.samples_seen = 0

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def deadline_pending(self) -> bool:
        return self._timer is not None

    async def run(self) -> RunningEstimate:
        if self._future is not None:
            raise RuntimeError("ConvergenceRace.run() can only be awaited once")

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._started_at = loop.time()
        try:
            subscriber = self._handle.subscriber
            if subscriber is None:
                raise MissingSubscriberError()

            subscriber.on_stats(self._handle_sample)
            try:
                self._estimator.start(self._on_converged)
            except Exception as e:
                raise _estimation_error(e) from e

            self._timer = loop.call_later(self._deadline_ms / 1000, self._on_deadline)
            logger.debug("[QUALITY-PROBE-RACE] Started with deadline %sms", self._deadline_ms)
            return await self._future
        finally:
            self._teardown()
            await self._handle.release()

    # -------------------------------------------------------------------------
    # Completion sources
    # -------------------------------------------------------------------------

    def _handle_sample(self, sample: StatsSample) -> None:
        if self._settled:
            return
        self.samples_seen += 1

        if self._on_sample is not None:
            try:
                self._on_sample(sample)
            except Exception:
                # A broken progress sink does not invalidate the measurement
                logger.exception("[QUALITY-PROBE-RACE] Progress callback raised")

        try:
            self._estimator.ingest(sample)
        except Exception as e:
            logger.error("[QUALITY-PROBE-RACE] Estimator failed on sample %s: %s", self.samples_seen, e)
            self._settle(SETTLED_BY_ERROR, error=_estimation_error(e))

    def _on_converged(self, score: float, bandwidth: Bandwidth) -> None:
        self._settle(
            SETTLED_BY_CONVERGENCE,
            result=RunningEstimate(quality_score=score, bandwidth=bandwidth, converged=True),
        )

    def _on_deadline(self) -> None:
        self._timer = None
        if self._settled:
            return
        try:
            estimate = RunningEstimate(
                quality_score=self._estimator.current_score(),
                bandwidth=self._estimator.current_bandwidth(),
                converged=False,
            )
        except Exception as e:
            self._settle(SETTLED_BY_ERROR, error=_estimation_error(e))
            return
        self._settle(SETTLED_BY_DEADLINE, result=estimate)

    def _settle(
        self,
        source: str,
        result: Optional[RunningEstimate] = None,
        error: Optional[Exception] = None,
    ) -> bool:
        if self._settled:
            logger.debug("[QUALITY-PROBE-RACE] Ignoring %s signal, race already settled by %s", source, self.settled_by)
            return False
        self._settled = True
        self.settled_by = source
        self._cancel_timer()

        elapsed_ms = (asyncio.get_running_loop().time() - self._started_at) * 1000
        if error is not None:
            logger.info("[QUALITY-PROBE-RACE] Settled by %s after %.0fms", source, elapsed_ms)
            self._future.set_exception(error)
        else:
            logger.info(
                "[QUALITY-PROBE-RACE] Settled by %s after %.0fms (%s samples, score=%.2f)",
                source, elapsed_ms, self.samples_seen, result.quality_score,
            )
            self._future.set_result(result)
        return True

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _teardown(self) -> None:
        # Also reached on cancellation, where nothing settled the race
        self._settled = True
        self._cancel_timer()

        subscriber = self._handle.subscriber
        if subscriber is not None:
            try:
                subscriber.on_stats(None)
            except Exception:
                logger.exception("[QUALITY-PROBE-RACE] Failed to detach stats listener")
        try:
            self._estimator.stop()
        except Exception:
            logger.exception("[QUALITY-PROBE-RACE] Failed to stop estimator")


async def race(
    handle: ProbeHandle,
    estimator: QualityEstimator,
    deadline_ms: float,
    on_sample: Optional[ProgressCallback] = None,
) -> RunningEstimate:
    """Run a single convergence race and return the settled estimate."""
    return await ConvergenceRace(handle, estimator, deadline_ms, on_sample).run()
