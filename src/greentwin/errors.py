"""Exception types raised inside the engine.

Only the engine boundary turns these into failure results; scoring code never
raises for sparse data.
"""


class GreenTwinError(Exception):
    """Base class for engine errors."""

    code = "error"


class TransportError(GreenTwinError, ConnectionError):
    """Connect or send failure. Retried with backoff, never fatal."""

    code = "transport_error"


class UnknownMessageType(GreenTwinError, ValueError):
    """Inbound message with a type nobody handles."""

    code = "unknown_message_type"


class DelayNotFound(GreenTwinError, KeyError):
    """No delay record with the requested id."""

    code = "delay_not_found"


class DelayAlreadyCompleted(GreenTwinError, ValueError):
    """Delay record already carries an outcome."""

    code = "delay_already_completed"
