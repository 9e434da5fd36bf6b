"""Error taxonomy for flowdeck.

ClientError subclasses separate the two ways a remote call fails:

- TransportError: no usable response (timeout, refused connection, non-2xx)
- DecodeError: a response arrived but could not be parsed; carries an
  excerpt of the body so the log shows what the server actually sent
"""


class FlowdeckError(Exception):
    """Base class for all flowdeck errors."""


class ClientError(FlowdeckError):
    """A call to the orchestration server failed."""


class TransportError(ClientError):
    """The server could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(ClientError):
    """The server answered but the body was not what we expected."""

    def __init__(self, message: str, body_excerpt: str = "") -> None:
        super().__init__(message)
        self.body_excerpt = body_excerpt


class ClientConstructionError(FlowdeckError):
    """A client could not be built from a server configuration entry."""


class NoActiveEnvironment(FlowdeckError):
    """A command needs a client but no environment is active."""


class WorkerQueueFull(FlowdeckError):
    """The worker's bounded command queue rejected a submission."""
