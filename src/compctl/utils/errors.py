class ControlError(Exception):
    """
    Base class for failures seen by a control-plane client.
    """


class TransportError(ControlError):
    """
    Raised when a call never completes: connection refused or dropped,
    deadline exceeded, or an undecodable frame.
    """

    def __init__(self, message: str, method: str | None = None):
        self.message = message
        self.method = method
        ctx = f" during '{method}'" if method else ""
        super().__init__(f"Transport Error{ctx}: {message}")


class PingMismatchError(ControlError):
    """Raised when a ping response does not echo the request payload."""

    def __init__(self, sent: bytes | None, received: bytes | None):
        self.sent = sent
        self.received = received
        super().__init__(f"Ping payload mismatch: sent {sent!r}, received {received!r}")
