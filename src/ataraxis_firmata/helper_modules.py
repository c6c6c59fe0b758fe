"""This module stores the mock transport classes used to test the board engines without a connected board.

SerialMock simulates the subset of the pySerial Serial class used by the synchronous FirmataBoard, and StreamMock
simulates the writer half of an asyncio stream used by the concurrent BoardIO driver. The reader half of asyncio
streams is simulated with the standard asyncio.StreamReader class, which supports feeding data manually.
"""

from .exceptions import TransportIOError


class SerialMock:
    """Simulates the methods of the pySerial Serial class used by the FirmataBoard class to support unit-testing.

    Notes:
        Unlike its prototype, this class exposes the rx_ and tx_ buffers while using similar logic for adding data to
        the buffers as the real Serial class with a zero read timeout: read() returns as many of the requested bytes as
        are available and never blocks.

    Attributes:
        is_open: A boolean flag that tracks the state of the serial port.
        tx_buffer: A buffer that stores the data sent to the board.
        rx_buffer: A buffer that stores the data received from the board.
    """

    def __init__(self) -> None:
        self.is_open = False
        self.tx_buffer = b""
        self.rx_buffer = b""

    def __repr__(self) -> str:
        """Returns a string representation of the SerialMock object."""
        return f"SerialMock(open={self.is_open})"

    def open(self) -> None:
        """Simulates the effect of successful 'open' method calls."""
        self.is_open = True

    def close(self) -> None:
        """Simulates the effect of successful 'close' method calls."""
        self.is_open = False

    def write(self, data: bytes) -> None:
        """Appends the input data to the tx_buffer.

        Raises:
            TypeError: If the input data is not a bytes-like object.
            TransportIOError: If the mock serial port is not open.
        """
        if not self.is_open:
            raise TransportIOError("Mock serial port is not open")
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("Data must be a 'bytes' object")
        self.tx_buffer += bytes(data)

    def read(self, size: int = 1) -> bytes:
        """Reads up to 'size' bytes from the rx_buffer.

        Raises:
            TransportIOError: If the mock serial port is not open.
        """
        if not self.is_open:
            raise TransportIOError("Mock serial port is not open")
        data = self.rx_buffer[:size]
        self.rx_buffer = self.rx_buffer[size:]
        return data

    def reset_input_buffer(self) -> None:
        """Resets the rx_buffer to an empty byte array."""
        self.rx_buffer = b""

    def reset_output_buffer(self) -> None:
        """Resets the tx_buffer to an empty byte array."""
        self.tx_buffer = b""

    @property
    def in_waiting(self) -> int:
        """Returns the number of bytes currently stored in the rx_buffer."""
        return len(self.rx_buffer)


class StreamMock:
    """Simulates the methods of the asyncio StreamWriter class used by the BoardIO class to support unit-testing.

    Attributes:
        tx_buffer: A buffer that stores the data sent to the board.
        drain_count: The number of times drain() was awaited. Each drain() call corresponds to one transport write.
        closed: A boolean flag that tracks whether the stream was closed.
    """

    def __init__(self) -> None:
        self.tx_buffer = b""
        self.drain_count = 0
        self.closed = False

    def __repr__(self) -> str:
        """Returns a string representation of the StreamMock object."""
        return f"StreamMock(closed={self.closed})"

    def write(self, data: bytes) -> None:
        """Appends the input data to the tx_buffer.

        Raises:
            TransportIOError: If the mock stream is closed.
        """
        if self.closed:
            raise TransportIOError("Mock stream is closed")
        self.tx_buffer += bytes(data)

    async def drain(self) -> None:
        """Simulates flushing the written data."""
        self.drain_count += 1

    def close(self) -> None:
        """Closes the mock stream."""
        self.closed = True

    def is_closing(self) -> bool:
        """Returns True if the mock stream is closed."""
        return self.closed

    async def wait_closed(self) -> None:
        """Returns immediately, as the mock stream closes synchronously."""
