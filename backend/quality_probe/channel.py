"""
Media channel provider interface.

The probe never talks to a real-time media SDK directly. Provider bindings
implement these abstract classes; the sequencer and race controller only use
the methods declared here.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from quality_probe.models import (
    PublisherOptions,
    RenderTarget,
    SessionDescriptor,
    StatsSample,
    SubscriberOptions,
)


@dataclass(frozen=True)
class Stream:
    """A published stream as announced by the channel."""
    stream_id: str


StreamCreatedCallback = Callable[[Stream], None]
StatsListener = Callable[[StatsSample], None]


class Publisher(ABC):
    """Test publisher created by ``ProbeMediaChannel.init_publisher``."""

    @abstractmethod
    def on_stream_created(self, callback: StreamCreatedCallback) -> None:
        """Register the listener fired once the published stream exists."""
        pass

    @abstractmethod
    def destroy(self) -> None:
        """Stop publishing and release local media."""
        pass


class Subscriber(ABC):
    """Subscription to the probe's own test stream."""

    @abstractmethod
    def on_stats(self, listener: Optional[StatsListener]) -> None:
        """
        Register the per-interval stats listener.

        The channel calls the listener on the event loop once per sample.
        Passing None detaches the current listener.
        """
        pass


class ProbeMediaChannel(ABC):
    """One real-time media session, created per probe."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def connect(self, token: str) -> None:
        pass

    @abstractmethod
    async def init_publisher(
        self, target: RenderTarget, options: PublisherOptions
    ) -> Publisher:
        pass

    @abstractmethod
    async def publish(self, publisher: Publisher) -> None:
        pass

    @abstractmethod
    async def subscribe(
        self, stream: Stream, target: RenderTarget, options: SubscriberOptions
    ) -> Optional[Subscriber]:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass


ChannelFactory = Callable[[SessionDescriptor], ProbeMediaChannel]
