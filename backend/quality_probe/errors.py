"""
Quality probe error taxonomy.

Every failure a probe can surface to its caller is a ProbeError subclass with a
stable ``code``. Channel collaborators raise whatever they like; the sequencer
and race controller translate those into the typed errors below and chain the
original exception as ``__cause__``.
"""


class ProbeError(Exception):
    """Base class for all quality probe failures."""

    code = "probe_error"
    default_message = "Quality probe failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


# ---------------------------------------------------------------------------
# Channel setup
# ---------------------------------------------------------------------------

class ChannelSetupError(ProbeError):
    """A channel setup step failed. Never retried."""

    code = "channel_setup_failed"


class ChannelConnectError(ChannelSetupError):
    code = "channel_connect_failed"
    default_message = "Could not connect to the session"


class PublisherInitError(ChannelSetupError):
    code = "publisher_init_failed"
    default_message = "Could not initialize the test publisher"


class PublishError(ChannelSetupError):
    code = "publish_failed"
    default_message = "Could not publish the test stream"


class SubscribeError(ChannelSetupError):
    code = "subscribe_failed"
    default_message = "Could not subscribe to the test stream"


class MissingSubscriberError(ChannelSetupError):
    code = "missing_subscriber"
    default_message = "Subscription did not produce a usable subscriber"


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

class EstimationError(ProbeError):
    """The quality estimator failed while processing stats."""

    code = "estimation_failed"
    default_message = "Quality estimator failed while processing stats"


# ---------------------------------------------------------------------------
# Caller configuration (raised by the NetworkTest facade)
# ---------------------------------------------------------------------------

class ProbeConfigurationError(ProbeError):
    code = "invalid_configuration"


class MissingChannelFactoryError(ProbeConfigurationError):
    code = "missing_channel_factory"
    default_message = "A callable channel factory is required"


class MissingSessionCredentialsError(ProbeConfigurationError):
    code = "missing_session_credentials"
    default_message = "Session credentials are required"


class IncompleteSessionCredentialsError(ProbeConfigurationError):
    code = "incomplete_session_credentials"
    default_message = "Session credentials need an api_key, session_id and token"


class InvalidOnUpdateCallback(ProbeConfigurationError):
    code = "invalid_on_update_callback"
    default_message = "on_progress must be a callable taking one stats sample"


class InvalidOnCompleteCallback(ProbeConfigurationError):
    code = "invalid_on_complete_callback"
    default_message = "on_complete must be a callable taking (error, result)"
