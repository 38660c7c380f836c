"""
End-to-end tests for run_quality_probe against scripted channels.
"""
import asyncio

import pytest

from quality_probe.errors import ChannelConnectError, EstimationError, PublisherInitError
from quality_probe.estimator import MOSEstimator
from quality_probe.models import Bandwidth, ProbeResult
from quality_probe.runner import run_quality_probe
from tests.fixtures.fake_channel import (
    FakeChannelFactory,
    ScriptedEstimator,
    make_sample,
    make_steady_samples,
)


def _converging_samples():
    # Delays are relative to subscribe, which happens once the stream exists
    return [
        (50, make_sample(timestamp=100, audio_bytes=500, video_bytes=3125)),
        (150, make_sample(timestamp=200, audio_bytes=1000, video_bytes=6250)),
        (250, make_sample(timestamp=300, audio_bytes=1500, video_bytes=9375)),
    ]


class TestConvergedProbe:

    @pytest.mark.asyncio
    async def test_reports_converged_estimate_before_deadline(self, descriptor):
        factory = FakeChannelFactory(stream_created_ms=50, samples=_converging_samples())
        estimators = []

        def estimator_factory(subscriber):
            estimator = ScriptedEstimator(
                converge_after_ms=300,
                converge_with=(4.2, Bandwidth(audio=40000, video=250000)),
            )
            estimators.append(estimator)
            return estimator

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await run_quality_probe(factory, descriptor, 3000, estimator_factory=estimator_factory)
        elapsed = loop.time() - started

        assert result.to_dict() == {
            "mos": 4.2,
            "audio": {"bandwidth": 40000},
            "video": {"bandwidth": 250000},
        }
        assert elapsed < 1.0
        assert factory.last.disconnect_count == 1
        assert len(estimators[0].ingested) == 3

    @pytest.mark.asyncio
    async def test_progress_sees_every_sample(self, descriptor):
        factory = FakeChannelFactory(stream_created_ms=50, samples=_converging_samples())
        progress = []

        await run_quality_probe(
            factory,
            descriptor,
            3000,
            on_progress=progress.append,
            estimator_factory=lambda subscriber: ScriptedEstimator(converge_after_ms=300),
        )

        assert [s.timestamp for s in progress] == [100, 200, 300]

    @pytest.mark.asyncio
    async def test_default_estimator_on_steady_stream(self, descriptor):
        samples = make_steady_samples(8, audio_bps=40000, video_bps=1_000_000)
        factory = FakeChannelFactory(samples=[(5 * (i + 1), s) for i, s in enumerate(samples)])

        result = await run_quality_probe(factory, descriptor, 3000, estimator_factory=MOSEstimator)

        assert isinstance(result, ProbeResult)
        assert result.mos == pytest.approx(4.409, abs=0.001)
        assert result.audio.bandwidth == pytest.approx(40000)
        assert result.video.bandwidth == pytest.approx(1_000_000)


class TestDeadlineProbe:

    @pytest.mark.asyncio
    async def test_falls_back_to_snapshot_at_deadline(self, descriptor):
        factory = FakeChannelFactory(stream_created_ms=50, samples=_converging_samples())
        estimator = ScriptedEstimator(score=2.5, bandwidth=Bandwidth(audio=20000, video=90000))
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await run_quality_probe(factory, descriptor, 300, estimator_factory=lambda s: estimator)

        assert loop.time() - started >= 0.29
        assert result.to_dict() == {
            "mos": 2.5,
            "audio": {"bandwidth": 20000},
            "video": {"bandwidth": 90000},
        }
        assert estimator.snapshot_reads == 1
        assert factory.last.disconnect_count == 1

    @pytest.mark.asyncio
    async def test_no_samples_reports_floor_score(self, descriptor):
        factory = FakeChannelFactory()

        result = await run_quality_probe(factory, descriptor, 50)

        assert result.mos == 1.0
        assert result.audio.bandwidth == 0.0
        assert result.video.bandwidth == 0.0


class TestProbeFailures:

    @pytest.mark.asyncio
    async def test_publisher_init_failure_never_subscribes(self, descriptor):
        factory = FakeChannelFactory(init_error=RuntimeError("no camera"))

        with pytest.raises(PublisherInitError):
            await run_quality_probe(factory, descriptor, 3000)

        assert "subscribe" not in factory.last.calls
        assert factory.last.disconnect_count == 1

    @pytest.mark.asyncio
    async def test_channel_factory_failure(self, descriptor):
        def broken_factory(d):
            raise RuntimeError("provider unavailable")

        with pytest.raises(ChannelConnectError) as exc_info:
            await run_quality_probe(broken_factory, descriptor, 3000)

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_estimator_factory_failure_releases_channel(self, descriptor):
        factory = FakeChannelFactory()

        def broken_estimator(subscriber):
            raise RuntimeError("model missing")

        with pytest.raises(EstimationError):
            await run_quality_probe(factory, descriptor, 3000, estimator_factory=broken_estimator)

        assert factory.last.disconnect_count == 1
        assert factory.last.publisher.destroyed == 1

    @pytest.mark.asyncio
    async def test_rejects_non_positive_deadline(self, descriptor, channel_factory):
        with pytest.raises(ValueError):
            await run_quality_probe(channel_factory, descriptor, 0)

        assert channel_factory.channels == []


class TestConcurrentProbes:

    @pytest.mark.asyncio
    async def test_probes_do_not_share_state(self, descriptor):
        fast = FakeChannelFactory()
        slow = FakeChannelFactory(stream_created_ms=30)

        first, second = await asyncio.gather(
            run_quality_probe(
                fast, descriptor, 3000,
                estimator_factory=lambda s: ScriptedEstimator(
                    converge_after_ms=10, converge_with=(4.0, Bandwidth(audio=1, video=2)),
                ),
            ),
            run_quality_probe(
                slow, descriptor, 60,
                estimator_factory=lambda s: ScriptedEstimator(score=2.0, bandwidth=Bandwidth(audio=3, video=4)),
            ),
        )

        assert first.mos == 4.0
        assert second.mos == 2.0
        assert (second.audio.bandwidth, second.video.bandwidth) == (3, 4)
        assert fast.last is not slow.last
        assert fast.last.disconnect_count == 1
        assert slow.last.disconnect_count == 1
