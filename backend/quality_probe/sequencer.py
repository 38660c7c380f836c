"""
Probe flow sequencer.

Drives channel setup in strict order: connect, initialize the test publisher,
publish, wait for the stream-created event, subscribe. Any failure aborts the
probe with a typed error after releasing whatever was already acquired.
"""
import asyncio
import logging
from typing import Optional

from quality_probe.channel import ProbeMediaChannel, Publisher, Stream
from quality_probe.errors import (
    ChannelConnectError,
    MissingSubscriberError,
    PublishError,
    PublisherInitError,
    SubscribeError,
)
from quality_probe.models import (
    ProbeHandle,
    PublisherOptions,
    RenderTarget,
    SessionDescriptor,
    SubscriberOptions,
)

logger = logging.getLogger(__name__)


async def run_probe(
    channel: ProbeMediaChannel,
    descriptor: SessionDescriptor,
    target: Optional[RenderTarget] = None,
) -> ProbeHandle:
    """
    Establish the test publication and the subscription to it.

    Args:
        channel: Channel built for this probe only
        descriptor: Session credentials (only the token is used here)
        target: Offscreen render target for publisher and subscriber

    Returns:
        ProbeHandle holding the channel, publisher and subscriber. The caller
        owns it and must release it.

    Raises:
        ChannelConnectError, PublisherInitError, PublishError, SubscribeError,
        MissingSubscriberError
    """
    target = target or RenderTarget()
    handle = ProbeHandle(channel=channel)
    try:
        await _ensure_connected(channel, descriptor)
        handle.publisher = await _init_publisher(channel, target)
        stream = await _publish_and_wait(channel, handle.publisher)
        handle.subscriber = await _subscribe(channel, stream, target)
    except BaseException:
        await handle.release()
        raise
    return handle


async def _ensure_connected(channel: ProbeMediaChannel, descriptor: SessionDescriptor) -> None:
    if channel.is_connected:
        logger.debug("[QUALITY-PROBE] Reusing active channel connection")
        return
    try:
        await channel.connect(descriptor.token)
    except Exception as e:
        logger.warning("[QUALITY-PROBE] Connect failed for session %s: %s", descriptor.session_id, e)
        raise ChannelConnectError(str(e)) from e
    logger.info("[QUALITY-PROBE] Connected to session %s", descriptor.session_id)


async def _init_publisher(channel: ProbeMediaChannel, target: RenderTarget) -> Publisher:
    try:
        return await channel.init_publisher(target, PublisherOptions(test_only=True))
    except Exception as e:
        logger.warning("[QUALITY-PROBE] Publisher init failed: %s", e)
        raise PublisherInitError(str(e)) from e


async def _publish_and_wait(channel: ProbeMediaChannel, publisher: Publisher) -> Stream:
    created: asyncio.Future = asyncio.get_running_loop().create_future()

    def _on_stream_created(stream: Stream) -> None:
        if not created.done():
            created.set_result(stream)

    # Listen before publishing so an immediate event is not lost
    publisher.on_stream_created(_on_stream_created)
    try:
        await channel.publish(publisher)
    except Exception as e:
        created.cancel()
        logger.warning("[QUALITY-PROBE] Publish failed: %s", e)
        raise PublishError(str(e)) from e

    stream = await created
    logger.info("[QUALITY-PROBE] Test stream %s created", stream.stream_id)
    return stream


async def _subscribe(channel: ProbeMediaChannel, stream: Stream, target: RenderTarget):
    try:
        subscriber = await channel.subscribe(stream, target, SubscriberOptions(test_network=True))
    except Exception as e:
        logger.warning("[QUALITY-PROBE] Subscribe to %s failed: %s", stream.stream_id, e)
        raise SubscribeError(str(e)) from e
    if subscriber is None:
        raise MissingSubscriberError()
    logger.debug("[QUALITY-PROBE] Subscribed to test stream %s", stream.stream_id)
    return subscriber
