"""Serial (Bluetooth SPP / USB CDC) transport for Phomemo printers."""

import asyncio
import logging

import serial

from phomemo_label.errors import PrinterConnectionError, WriteError
from phomemo_label.models.printer import SerialConnection
from phomemo_label.printers.base import BaseTransport
from phomemo_label.templates.converters import Frame

logger = logging.getLogger(__name__)


class SerialTransport(BaseTransport):
    """Transport over a pyserial port.

    Writes block until the OS has flushed the frame to the device, and run in
    the default executor so the event loop keeps running while the printer
    applies back-pressure.
    """

    def __init__(self, name: str, connection: SerialConnection) -> None:
        super().__init__(name)
        self.connection = connection
        self._serial: serial.Serial | None = None

    async def connect(self) -> None:
        """Open the serial port."""
        if self._connected:
            return

        conn = self.connection
        loop = asyncio.get_running_loop()
        try:
            self._serial = await loop.run_in_executor(
                None,
                lambda: serial.Serial(
                    port=conn.device,
                    baudrate=conn.baudrate,
                    bytesize=conn.bytesize,
                    parity=conn.parity,
                    stopbits=conn.stopbits,
                    write_timeout=conn.write_timeout,
                ),
            )
        except (serial.SerialException, ValueError) as e:
            raise PrinterConnectionError(f"Failed to open serial port {conn.device}: {e}") from e

        self._connected = True
        logger.info(f"Printer {self.name}: connected to {conn.device}")

    async def disconnect(self) -> None:
        """Close the serial port."""
        if self._serial:
            try:
                self._serial.close()
            except serial.SerialException as e:
                logger.warning(f"Printer {self.name}: error closing {self.connection.device} - {e}")
            self._serial = None
        if self._connected:
            logger.info(f"Printer {self.name}: disconnected")
        self._connected = False

    async def write(self, frame: Frame) -> None:
        """Write one frame and flush it to the device.

        If the caller is cancelled (e.g. a job timeout) the port stays owned
        by this call until the blocking write has returned; it is then closed
        and the transport left disconnected, so the next job reopens it.
        """
        port = self._serial
        if port is None:
            raise WriteError(f"Printer {self.name}: not connected", self.frames_sent)

        data = bytes(frame)
        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(None, _write_blocking, port, data)
        try:
            await asyncio.shield(pending)
        except asyncio.CancelledError:
            await self._abandon_write(port, pending)
            raise
        except serial.SerialTimeoutException as e:
            raise WriteError(f"Printer {self.name}: timed out writing {frame.kind} frame", self.frames_sent) from e
        except serial.SerialException as e:
            self._connected = False
            raise WriteError(f"Printer {self.name}: writing {frame.kind} frame failed: {e}", self.frames_sent) from e

    async def _abandon_write(self, port: serial.Serial, pending: asyncio.Future) -> None:
        """Interrupt a write nobody is waiting for, then close the port under it."""
        logger.warning(f"Printer {self.name}: write cancelled, closing {self.connection.device}")
        self._connected = False
        try:
            port.cancel_write()
        except (serial.SerialException, OSError) as e:
            logger.debug(f"Printer {self.name}: cancel_write failed - {e}")
        try:
            await pending
        except (serial.SerialException, OSError) as e:
            logger.debug(f"Printer {self.name}: cancelled write ended with {e}")
        finally:
            await self.disconnect()


def _write_blocking(port: serial.Serial, data: bytes) -> None:
    port.write(data)
    port.flush()
