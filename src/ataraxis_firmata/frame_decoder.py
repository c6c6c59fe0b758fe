"""This module provides the FrameDecoder class that extracts complete Firmata frames from a stream of received bytes.

The Firmata protocol does not use a transport-level packet format, so the bytes received from the board have to be
scanned for frame headers to recover message boundaries. The FrameDecoder works on a growable bytearray that
accumulates the received bytes and removes exactly the bytes of each decoded frame, leaving any partially received
frame in the buffer until more bytes arrive.
"""

from numba import njit  # type: ignore
import numpy as np
from numpy.typing import NDArray

from .communication import IncomingMessage, parse_frame


@njit(nogil=True, cache=True)
def _find_header(buffer: NDArray[np.uint8]) -> int:
    """Returns the index of the earliest frame header stored in the input buffer, or -1 if there are no headers.

    Recognized headers are the START_SYSEX byte (0xF0), the analog message headers (0xE0-0xEF), the digital message
    headers (0x90-0x9F), and the protocol version header (0xF9).
    """
    for index in range(buffer.size):
        byte = buffer[index]
        if byte == 0xF0 or byte == 0xF9 or (0xE0 <= byte <= 0xEF) or (0x90 <= byte <= 0x9F):
            return index
    return -1


class FrameDecoder:
    """Decodes Firmata frames stored in a growable byte buffer.

    Each call to decode() locates the earliest frame header in the buffer and, if the entire frame has been received,
    removes the frame bytes from the buffer and parses them into the matching message structure. Sysex frames extend
    from the START_SYSEX byte to the first following END_SYSEX byte. Analog, digital, and protocol version frames
    always contain the header byte and 2 data bytes.

    Notes:
        To prevent the buffer from growing without bound when the received data is mostly noise, the decoder
        implements an overflow guard that runs at the end of every decode() call, whether a frame was extracted or
        not. If the buffer holds more than 70% of the capacity bytes and the earliest frame header is located past the
        first 30% of the capacity, all bytes preceding the header are discarded. If the buffer holds more than 70% of
        the capacity bytes and contains no frame headers at all, the entire buffer is discarded, as none of its bytes
        can belong to a frame.

        Bytes that precede a decoded frame but are not a part of any frame are left in the buffer. They are discarded
        by the overflow guard once they accumulate past the guard threshold.

    Args:
        capacity: The capacity bound, in bytes, used by the overflow guard.

    Attributes:
        _capacity: Stores the capacity bound used by the overflow guard.
    """

    def __init__(self, capacity: int = 1000) -> None:
        self._capacity = capacity

    def __repr__(self) -> str:
        """Returns a string representation of the FrameDecoder instance."""
        return f"FrameDecoder(capacity={self._capacity})"

    @property
    def capacity(self) -> int:
        """Returns the capacity bound used by the overflow guard."""
        return self._capacity

    def decode(self, buffer: bytearray) -> IncomingMessage | None:
        """Extracts and parses the earliest complete frame stored in the input buffer.

        Args:
            buffer: The bytearray that accumulates the bytes received from the board. The bytes of the decoded frame
                (and any bytes discarded by the overflow guard) are removed from this buffer in-place.

        Returns:
            The parsed message, or None if the buffer does not contain a complete frame. When None is returned, the
            buffer is left unchanged, unless the overflow guard discarded leading bytes.

        Raises:
            ParseError: If the extracted frame cannot be parsed. The frame bytes are removed from the buffer before
                parsing, so the next call continues with the following frame.
        """
        found, start, end = self._locate_frame(np.frombuffer(bytes(buffer), dtype=np.uint8))

        frame = None
        if found:
            frame = bytes(buffer[start:end])
            del buffer[start:end]

        # Overflow guard: discards the bytes that precede the earliest remaining header, or the whole buffer if it
        # contains no headers.
        discarded = self._overflow_count(np.frombuffer(bytes(buffer), dtype=np.uint8), self._capacity)
        if discarded > 0:
            del buffer[:discarded]

        if frame is None:
            return None
        return parse_frame(frame)

    @staticmethod
    @njit(nogil=True, cache=True)
    def _locate_frame(buffer: NDArray[np.uint8]) -> tuple[bool, int, int]:
        """Finds the boundaries of the earliest frame stored in the input buffer.

        This method is jit-compiled. Only the earliest header is considered: if its frame is incomplete, the method
        reports that no frame was found, even if complete frames follow it.

        Args:
            buffer: The array of received bytes.

        Returns:
            A tuple of three elements. The first element determines whether a complete frame was found. The second and
            third elements store the start (inclusive) and end (exclusive) indices of the frame.
        """
        size = buffer.size
        start = _find_header(buffer)
        if start < 0:
            return False, 0, 0

        if buffer[start] == 0xF0:
            for end in range(start + 1, size):
                if buffer[end] == 0xF7:
                    return True, start, end + 1
            return False, start, start

        if size - start >= 3:
            return True, start, start + 3
        return False, start, start

    @staticmethod
    @njit(nogil=True, cache=True)
    def _overflow_count(buffer: NDArray[np.uint8], capacity: int) -> int:
        """Returns the number of leading bytes the overflow guard should discard from the input buffer.

        Args:
            buffer: The array of received bytes that remain after frame extraction.
            capacity: The capacity bound used by the overflow guard.
        """
        size = buffer.size
        if size <= int(capacity * 0.7):
            return 0

        start = _find_header(buffer)
        if start < 0:
            return size
        if start > int(capacity * 0.3):
            return start
        return 0
