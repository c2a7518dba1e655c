"""Exceptions raised by the print pipeline.

Every error carries the pipeline stage it came from so callers can decide
whether to retry, reconfigure, or abort.
"""


class PrintError(Exception):
    """Base class for print pipeline failures."""

    stage = "print"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        """Short name of the error kind (the class name)."""
        return type(self).__name__


class ConfigError(PrintError, ValueError):
    """Printer configuration is invalid (darkness, speed, paper type, model)."""

    stage = "config"


class CompositionError(PrintError):
    """A template field could not be resolved."""

    stage = "compose"

    def __init__(self, message: str, field_id: str | None = None) -> None:
        super().__init__(message)
        self.field_id = field_id


class RenderError(PrintError):
    """The resolved document could not be parsed or rasterized."""

    stage = "rasterize"


class TransportError(PrintError):
    """Base class for transport failures.

    `frames_sent` is the number of frames the transport confirmed before the
    failure. Partial jobs cannot be resumed; resend from the init frame.
    """

    stage = "transmit"

    def __init__(self, message: str, frames_sent: int = 0) -> None:
        super().__init__(message)
        self.frames_sent = frames_sent


class PrinterConnectionError(TransportError, ConnectionError):
    """The transport could not be opened."""

    stage = "connect"


class WriteError(TransportError):
    """Writing a frame failed mid-transmission."""

    stage = "transmit"
