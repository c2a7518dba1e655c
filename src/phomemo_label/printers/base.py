"""Abstract base class for printer transports."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from phomemo_label.errors import TransportError, WriteError
from phomemo_label.templates.converters import Frame

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """Ordered, exclusive byte channel to one printer.

    Frames are written strictly in order; frame n+1 is not started until
    frame n has been accepted. `exclusive()` serializes whole jobs so frames
    from two jobs never interleave on the wire.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._connected = False
        self._lock = asyncio.Lock()
        self._frames_sent = 0
        self._last_job_at: datetime | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the transport is currently open."""
        return self._connected

    @property
    def frames_sent(self) -> int:
        """Frames confirmed written for the current or most recent job."""
        return self._frames_sent

    @property
    def last_job_at(self) -> datetime | None:
        """Time the most recent job finished transmitting."""
        return self._last_job_at

    def exclusive(self) -> asyncio.Lock:
        """Lock to hold for the duration of a whole frame sequence."""
        return self._lock

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            PrinterConnectionError: If the device cannot be opened.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Safe to call when not connected."""
        pass

    @abstractmethod
    async def write(self, frame: Frame) -> None:
        """Write one frame and wait until the device has accepted it.

        Raises:
            WriteError: If the write fails.
        """
        pass

    async def send(self, frames: Iterable[Frame]) -> int:
        """Write a frame sequence in order.

        Connects first if needed. The caller should hold `exclusive()`.

        Returns:
            Number of frames written.

        Raises:
            PrinterConnectionError: If the transport cannot be opened.
            WriteError: If a frame fails; `frames_sent` holds the count
                written before the failure.
        """
        self._frames_sent = 0
        if not self._connected:
            await self.connect()

        for frame in frames:
            try:
                await self.write(frame)
            except TransportError as e:
                e.frames_sent = self._frames_sent
                raise
            except OSError as e:
                raise WriteError(
                    f"Printer {self.name}: writing {frame.kind} frame failed: {e}", self._frames_sent
                ) from e
            self._frames_sent += 1

        self._last_job_at = datetime.now()
        logger.debug(f"Printer {self.name}: sent {self._frames_sent} frames")
        return self._frames_sent

    async def __aenter__(self) -> "BaseTransport":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.disconnect()
