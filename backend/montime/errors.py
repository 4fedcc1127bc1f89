"""Error taxonomy for the alerting engine."""


class MontimeError(Exception):
    """Base class for errors raised by the engine."""


class TransportError(MontimeError):
    """A probe could not reach its target (network failure or timeout).

    Never escapes the probe runner; it is converted into a failed verdict.
    """

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class ConfigurationError(MontimeError):
    """A store table or relation the engine relies on does not exist."""

    def __init__(self, feature: str, message: str | None = None):
        super().__init__(message or f"{feature} not yet configured")
        self.feature = feature


class ChannelDeliveryError(MontimeError):
    """A notification channel failed to deliver an alert."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class ValidationError(MontimeError):
    """An ingestion payload was malformed."""
