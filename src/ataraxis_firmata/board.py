"""This module provides the FirmataBoard class, the synchronous (blocking) interface to boards running Firmata firmware.

FirmataBoard exclusively owns the byte-stream connected to the board. Every command method immediately writes the
serialized command to the stream, and the read() and poll() methods receive, parse, and apply incoming messages to the
locally tracked board state. This class is intended for single-threaded scripts; use the BoardIO class from the
board_io module to share one board between multiple asyncio tasks.
"""

from queue import Queue
from typing import Any, Protocol
from datetime import timedelta
from dataclasses import replace
from multiprocessing import Queue as MPQueue

import numpy as np
from serial import Serial, SerialException
from numpy.typing import NDArray
from ataraxis_time import PrecisionTimer
from ataraxis_base_utilities import LogLevel, console
from ataraxis_data_structures import LogPackage
from ataraxis_time.time_helpers import get_timestamp

from .exceptions import (
    ParseError,
    FirmataError,
    NotFoundError,
    WrongTypeError,
    TransportIOError,
    UninitializedError,
    FirmataTimeoutError,
)
from .board_state import Pin, PinId, PinKind, PinMode, I2CReply, BoardState
from .state_store import apply_command, apply_message, bootstrap_state
from .communication import (
    I2cRead,
    I2cWrite,
    I2cConfig,
    AnalogWrite,
    DigitalPort,
    MessageKind,
    SetPinMode,
    StringWrite,
    ReportAnalog,
    ReportDigital,
    MessageHeaders,
    ReportFirmware,
    CapabilityQuery,
    OutgoingCommand,
    SamplingInterval,
    CapabilityResponse,
    AnalogMappingQuery,
    ReportFirmwareQuery,
    AnalogMappingResponse,
    parse_frame,
    message_kind,
    encode_command,
    is_frame_start,
)


class ByteStream(Protocol):
    """Describes the byte-stream interface required by the FirmataBoard class.

    The pySerial Serial class, sockets wrapped with socket.makefile(), and the SerialMock class all satisfy this
    interface. The read() method may block or return fewer bytes than requested (including none).
    """

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes) -> Any: ...


def _to_microseconds(timeout: float | timedelta) -> int:
    """Converts the input timeout, given in seconds or as a timedelta, to whole microseconds."""
    if isinstance(timeout, timedelta):
        return int(timeout / timedelta(microseconds=1))
    return int(timeout * 1_000_000)


class FirmataBoard:
    """Provides methods to control and monitor a board running Firmata firmware over a blocking byte-stream.

    This class tracks the board state locally. The state is populated by one of the handshake methods
    (generate_board_state() or populate_board_info()) and is then updated by every message received via read() or
    poll(). Commands that change pin modes or output values (set_pin_mode(), analog_write(), and digital_write())
    also update the local state at the time they are sent.

    Notes:
        This class is designed to integrate with the DataLogger class available from the ataraxis_data_structures
        library. When a logger_queue is provided, all sent and received frames are logged as serialized byte arrays,
        timestamped relative to the onset timestamp logged at class initialization.

    Args:
        stream: The opened byte-stream connected to the board. Use the from_port() constructor to connect to a board
            over a serial port.
        verbose: Determines whether to print sent and received frames to the console. The class itself does NOT enable
            the console, so the console has to be enabled manually for this flag to have an effect.
        logger_queue: The Queue (usually the 'input_queue' of a DataLogger instance) used to pipe the sent and received
            frames to the logger. If not provided, the frames are not logged.
        source_id: The ID code that identifies this board in the logged data. Has to be unique for all classes that
            log data to the same DataLogger at the same time.
        stall_timeout: The maximum time, in seconds, to wait for the next byte of a partially received frame.

    Attributes:
        _stream: Stores the byte-stream connected to the board.
        _state: Stores the current board state snapshot.
        _i2c_data: Stores all I2C replies received from the board.
        _timer: Stores the PrecisionTimer used to enforce read timeouts.
        _timestamp_timer: Stores the PrecisionTimer used to timestamp the logged frames.
        _logger_queue: Stores the queue used to pipe data to the logger, if one was provided.
        _source_id: Stores the ID code used in the logged data.
        _verbose: Stores the verbose flag.
        _stall_timeout: Stores the stall timeout in microseconds.

    Raises:
        ValueError: If the source_id is not a valid byte value or the stall_timeout is not positive.
    """

    def __init__(
        self,
        stream: ByteStream,
        *,
        verbose: bool = False,
        logger_queue: "Queue | MPQueue | None" = None,  # type: ignore
        source_id: int = 1,
        stall_timeout: float | timedelta = 1.0,
    ) -> None:
        if not isinstance(source_id, (int, np.integer)) or not 0 <= source_id <= 255:
            message = (
                f"Unable to initialize FirmataBoard class. Expected an integer 'source_id' argument value between 0 "
                f"and 255, but encountered {source_id} of type {type(source_id).__name__}."
            )
            console.error(message=message, error=ValueError)
        if _to_microseconds(stall_timeout) <= 0:
            message = (
                f"Unable to initialize FirmataBoard class. Expected a positive 'stall_timeout' argument value, but "
                f"encountered {stall_timeout}."
            )
            console.error(message=message, error=ValueError)

        self._stream = stream
        self._state = BoardState()
        self._i2c_data: list[I2CReply] = []
        self._timer = PrecisionTimer("us")
        self._timestamp_timer = PrecisionTimer("us")
        self._logger_queue = logger_queue
        self._source_id = int(source_id)
        self._verbose = verbose
        self._stall_timeout = _to_microseconds(stall_timeout)

        # Logs the onset timestamp. All further timestamps are integer time deltas (in microseconds) relative to the
        # onset timestamp.
        if self._logger_queue is not None:
            onset: NDArray[np.uint8] = get_timestamp(as_bytes=True)  # type: ignore
            self._timestamp_timer.reset()
            self._logger_queue.put(LogPackage(self._source_id, 0, onset))

    def __repr__(self) -> str:
        """Returns a string representation of the FirmataBoard object."""
        return (
            f"FirmataBoard(stream={self._stream!r}, pins={len(self._state.pins)}, "
            f"firmware='{self._state.firmware_name}', verbose={self._verbose})"
        )

    @classmethod
    def from_port(cls, port: str, baudrate: int = 57600, **kwargs: Any) -> "FirmataBoard":
        """Opens the serial port and returns a FirmataBoard that communicates with the board through it.

        Args:
            port: The name of the serial port to connect to, e.g.: 'COM3' or '/dev/ttyUSB0'.
            baudrate: The baudrate used by the board firmware. StandardFirmata uses 57600.
            **kwargs: Additional keyword arguments passed to the FirmataBoard initializer.

        Raises:
            TypeError: If the port is not a string or the baudrate is not an integer.
            ValueError: If the baudrate is not positive.
            TransportIOError: If the serial port cannot be opened.
        """
        if not isinstance(port, str):
            message = (
                f"Unable to initialize FirmataBoard class. Expected a string value for 'port' argument, but "
                f"encountered {port} of type {type(port).__name__}."
            )
            console.error(message=message, error=TypeError)
        if not isinstance(baudrate, int) or isinstance(baudrate, bool):
            message = (
                f"Unable to initialize FirmataBoard class. Expected an integer value for 'baudrate' argument, but "
                f"encountered {baudrate} of type {type(baudrate).__name__}."
            )
            console.error(message=message, error=TypeError)
        if baudrate <= 0:
            message = (
                f"Unable to initialize FirmataBoard class. Expected a positive integer value for 'baudrate' "
                f"argument, but encountered {baudrate}."
            )
            console.error(message=message, error=ValueError)

        # Disables the built-in timeout, as read timeouts are enforced by the class.
        try:
            serial = Serial(port, baudrate, timeout=0)
        except SerialException as exception:
            message = f"Unable to open the serial port {port} at {baudrate} baud: {exception}"
            console.error(message=message, error=TransportIOError)
            # Fallback to appease mypy
            raise TransportIOError(message) from exception  # pragma: no cover
        return cls(serial, **kwargs)

    def close(self) -> None:
        """Closes the underlying byte-stream, if it supports closing."""
        close = getattr(self._stream, "close", None)
        if close is not None:
            close()

    @property
    def state(self) -> BoardState:
        """Returns the current board state snapshot."""
        return self._state

    @property
    def pins(self) -> tuple[Pin, ...]:
        """Returns the board pins, indexed by their physical number."""
        return self._state.pins

    @property
    def firmware_name(self) -> str:
        """Returns the name of the firmware reported by the board."""
        return self._state.firmware_name

    @property
    def firmware_version(self) -> str:
        """Returns the version of the firmware reported by the board."""
        return self._state.firmware_version

    @property
    def protocol_version(self) -> str:
        """Returns the version of the protocol reported by the board."""
        return self._state.protocol_version

    @property
    def i2c_data(self) -> list[I2CReply]:
        """Returns the list of all I2C replies received from the board.

        The returned list is the live reply log, so callers may clear it after processing the replies.
        """
        return self._i2c_data

    def pin_id_to_pin(self, pin_id: PinId) -> int:
        """Returns the physical pin number that matches the input pin identifier."""
        return self._state.pin_states.resolve(pin_id)

    def get_physical_pin(self, pin_id: PinId) -> Pin:
        """Returns the Pin record that matches the input pin identifier.

        Raises:
            OutOfRangeError: If the board does not have the addressed pin.
        """
        return self._state.pin_states.get(self.pin_id_to_pin(pin_id))

    def send(self, command: OutgoingCommand) -> None:
        """Serializes the input command and writes it to the byte-stream.

        Raises:
            TransportIOError: If the byte-stream fails to write the data.
        """
        self._write(encode_command(command))

    def query_analog_mapping(self) -> None:
        """Requests the board to report which pins are mapped to analog channels."""
        self.send(AnalogMappingQuery())

    def query_capabilities(self) -> None:
        """Requests the board to report the modes supported by each pin."""
        self.send(CapabilityQuery())

    def query_firmware(self) -> None:
        """Requests the board to report the name and version of its firmware."""
        self.send(ReportFirmwareQuery())

    def i2c_config(self, delay: int) -> None:
        """Configures the delay, in microseconds, between writing the I2C register and reading the data."""
        self.send(I2cConfig(delay))

    def i2c_read(self, address: int, size: int) -> None:
        """Requests the board to read 'size' bytes from the I2C device with the input address.

        The data is received as an I2C reply message and is appended to the i2c_data list by read().
        """
        self.send(I2cRead(address, size))

    def i2c_write(self, address: int, data: tuple[int, ...] | list[int] | bytes) -> None:
        """Requests the board to write the input data to the I2C device with the input address."""
        self.send(I2cWrite(address, tuple(data)))

    def report_digital(self, pin: PinId, enable: bool) -> None:
        """Enables or disables the automatic reporting of the digital port addressed by the input pin identifier.

        Raises:
            WrongTypeError: If the input pin identifier addresses an analog channel.
        """
        if pin.kind is PinKind.ANALOG:
            message = (
                f"Unable to enable digital reporting for {pin!r}. Expected a digital or raw pin identifier, but "
                f"encountered an analog pin identifier."
            )
            console.error(message=message, error=WrongTypeError)
        self.send(ReportDigital(pin.index, enable))

    def report_analog(self, pin: PinId, enable: bool) -> None:
        """Enables or disables the automatic reporting of the analog pin addressed by the input pin identifier.

        Raises:
            WrongTypeError: If the input pin identifier addresses a digital pin.
        """
        if pin.kind is PinKind.DIGITAL:
            message = (
                f"Unable to enable analog reporting for {pin!r}. Expected an analog or raw pin identifier, but "
                f"encountered a digital pin identifier."
            )
            console.error(message=message, error=WrongTypeError)
        self.send(ReportAnalog(self.pin_id_to_pin(pin), enable))

    def analog_write(self, pin: PinId, value: int) -> None:
        """Writes the input value to the addressed pin and records the value in the local board state."""
        command = AnalogWrite(self.pin_id_to_pin(pin), value)
        self._state = apply_command(self._state, command)
        self.send(command)

    def digital_write(self, pin: PinId, value: int) -> None:
        """Sets the level of the addressed digital pin.

        The value is recorded in the local board state, and the levels of all 8 pins of the port that contains the
        addressed pin are then sent to the board as a single port bitmask.

        Raises:
            WrongTypeError: If the input pin identifier addresses an analog channel.
            OutOfRangeError: If the board does not have the addressed pin.
        """
        if pin.kind is PinKind.ANALOG:
            message = (
                f"Unable to write the digital value to {pin!r}. Expected a digital or raw pin identifier, but "
                f"encountered an analog pin identifier."
            )
            console.error(message=message, error=WrongTypeError)

        index = pin.index
        pin_states = self._state.pin_states
        updated = replace(pin_states.get(index), value=value)
        pin_states = pin_states.with_pin(index, updated)
        self._state = replace(self._state, pin_states=pin_states)

        port = index // 8
        bitmask = 0
        for bit, port_pin in enumerate(pin_states.pins[8 * port : 8 * port + 8]):
            if port_pin.value != 0:
                bitmask |= 1 << bit
        self.send(DigitalPort(port, bitmask))

    def string_write(self, text: str) -> None:
        """Sends the input text to the board."""
        self.send(StringWrite(text))

    def set_pin_mode(self, pin: PinId, mode: PinMode) -> None:
        """Sets the mode of the addressed pin and records the mode in the local board state."""
        command = SetPinMode(self.pin_id_to_pin(pin), mode)
        self._state = apply_command(self._state, command)
        self.send(command)

    def sampling_interval(self, interval: timedelta | int) -> None:
        """Sets the interval at which the board samples its pins. Integer intervals are interpreted as milliseconds."""
        self.send(SamplingInterval(interval))

    def read(self, timeout: float | timedelta = 1.0) -> MessageKind:
        """Receives the next message from the board and applies it to the local board state.

        This method polls the byte-stream for a frame header until the timeout expires. Bytes that do not start a
        frame are discarded. Once a header is received, the method blocks until the rest of the frame is received.

        Args:
            timeout: The maximum time to wait for a frame header, in seconds or as a timedelta.

        Returns:
            The MessageKind of the received and applied message.

        Raises:
            FirmataTimeoutError: If no frame header is received before the timeout expires.
            TransportIOError: If the byte-stream fails or stalls in the middle of a frame.
            FirmataError: If the frame cannot be parsed or applied to the board state (see the parse_frame() and
                apply_message() functions).
        """
        frame = self._receive_frame(_to_microseconds(timeout))
        self._log_data(frame, output=False)
        message = parse_frame(frame)
        self._state = apply_message(self._state, message)
        if isinstance(message, I2CReply):
            self._i2c_data.append(message)
        return message_kind(message)

    def poll(self, count: int) -> None:
        """Calls read() 'count' times, waiting at most 1 second for each message.

        Timeouts are ignored, so this method returns after all reads are attempted. All other errors are raised.
        """
        for _ in range(count):
            try:
                self.read(1.0)
            except FirmataTimeoutError:
                continue

    def generate_board_state(self, timeout: float | timedelta = 5.0) -> BoardState:
        """Bootstraps the board state by running the pipelined handshake.

        Sends the firmware, capability, and analog mapping queries as a single write, then receives messages until
        all three responses arrive (in any order). Other messages received during the handshake are ignored. The
        responses are then committed to the local board state in a single step.

        Args:
            timeout: The maximum time to wait for all three responses.

        Returns:
            The bootstrapped board state.

        Raises:
            FirmataTimeoutError: If the responses are not received before the timeout expires.
            StateError: If the analog mapping references pins that the capability response does not report. The
                local board state is not modified in this case.
        """
        queries = (ReportFirmwareQuery(), CapabilityQuery(), AnalogMappingQuery())
        self._write(b"".join(encode_command(query) for query in queries))

        capability: CapabilityResponse | None = None
        mapping: AnalogMappingResponse | None = None
        firmware: ReportFirmware | None = None
        deadline = PrecisionTimer("us")
        deadline.reset()
        limit = _to_microseconds(timeout)
        while capability is None or mapping is None or firmware is None:
            remaining = limit - deadline.elapsed
            if remaining <= 0:
                self._raise_handshake_timeout(timeout)
            frame = self._receive_frame(remaining)
            self._log_data(frame, output=False)
            message = parse_frame(frame)
            if isinstance(message, CapabilityResponse):
                capability = message
            elif isinstance(message, AnalogMappingResponse):
                mapping = message
            elif isinstance(message, ReportFirmware):
                firmware = message

        self._state = bootstrap_state(self._state, capability, mapping, firmware)
        return self._state

    def populate_board_info(self, timeout: float | timedelta = 5.0) -> None:
        """Bootstraps the board state by querying the firmware, capabilities, and analog mapping one at a time.

        Each query is sent only after the response to the previous query is received and applied. Messages that
        cannot be applied yet (because the pins are not initialized) are skipped.

        Args:
            timeout: The maximum time to wait for each response.

        Raises:
            FirmataTimeoutError: If any response is not received before the timeout expires.
        """
        self.query_firmware()
        self._read_until(MessageKind.REPORT_FIRMWARE, timeout)
        self.query_capabilities()
        self._read_until(MessageKind.CAPABILITY_RESPONSE, timeout)
        self.query_analog_mapping()
        self._read_until(MessageKind.ANALOG_MAPPING_RESPONSE, timeout)

    def _read_until(self, kind: MessageKind, timeout: float | timedelta) -> None:
        """Reads and applies messages until a message of the input kind is applied or the timeout expires."""
        deadline = PrecisionTimer("us")
        deadline.reset()
        limit = _to_microseconds(timeout)
        while True:
            remaining = limit - deadline.elapsed
            if remaining <= 0:
                self._raise_handshake_timeout(timeout)
            try:
                if self.read(timedelta(microseconds=remaining)) == kind:
                    return
            except (UninitializedError, NotFoundError):
                continue

    @staticmethod
    def _raise_handshake_timeout(timeout: float | timedelta) -> None:
        """Raises the FirmataTimeoutError used when the board does not answer the handshake queries in time."""
        message = (
            f"Unable to bootstrap the board state. The board did not respond to the handshake queries within "
            f"{timeout} seconds."
        )
        console.error(message=message, error=FirmataTimeoutError)

    def _receive_frame(self, timeout: int) -> bytes:
        """Receives the next complete frame from the byte-stream.

        Args:
            timeout: The maximum time, in microseconds, to wait for the frame header.

        Returns:
            The frame bytes, starting with the header byte.
        """
        self._timer.reset()
        while True:
            byte = self._read(1)
            if byte and is_frame_start(byte[0]):
                break
            if self._timer.elapsed >= timeout:
                message = f"Unable to receive a message from the board. No frame header arrived within {timeout} us."
                console.error(message=message, error=FirmataTimeoutError)

        header = byte[0]
        if header != MessageHeaders.START_SYSEX:
            return byte + self._read_exact(2)

        frame = bytearray(byte)
        while True:
            value = self._read_exact(1)[0]
            frame.append(value)
            if value == MessageHeaders.END_SYSEX:
                return bytes(frame)

            # ParseError carries the offending bytes, so it is raised directly.
            if is_frame_start(value):
                message = (
                    f"Unable to receive the sysex message. Encountered the frame header byte {value} before the "
                    f"end of the sysex message, which indicates overlapping messages."
                )
                raise ParseError(message, raw=bytes(frame))

    def _read_exact(self, size: int) -> bytes:
        """Blocks until exactly 'size' bytes are read from the byte-stream.

        Raises:
            TransportIOError: If no new byte arrives within the stall timeout.
        """
        data = b""
        self._timer.reset()
        while len(data) < size:
            chunk = self._read(size - len(data))
            if chunk:
                data += chunk
                self._timer.reset()
            elif self._timer.elapsed >= self._stall_timeout:
                message = (
                    f"Unable to receive the message from the board. Reception stalled after {len(data)} of {size} "
                    f"bytes, as no new byte arrived within {self._stall_timeout} us."
                )
                console.error(message=message, error=TransportIOError)
        return data

    def _read(self, size: int) -> bytes:
        """Reads up to 'size' bytes from the byte-stream, converting stream errors into TransportIOError."""
        try:
            return bytes(self._stream.read(size))
        except FirmataError:
            raise
        except OSError as exception:
            message = f"Unable to read data from the board: {exception}"
            console.error(message=message, error=TransportIOError)
            # Fallback to appease mypy
            raise TransportIOError(message) from exception  # pragma: no cover

    def _write(self, data: bytes) -> None:
        """Writes the input data to the byte-stream, converting stream errors into TransportIOError."""
        try:
            self._stream.write(data)
        except FirmataError:
            raise
        except OSError as exception:
            message = f"Unable to write data to the board: {exception}"
            console.error(message=message, error=TransportIOError)
            # Fallback to appease mypy
            raise TransportIOError(message) from exception  # pragma: no cover
        self._log_data(data, output=True)

    def _log_data(self, data: bytes, *, output: bool) -> None:
        """Packages and sends the input frame data to the DataLogger and, in verbose mode, prints it to the console.

        Args:
            data: The sent or received frame bytes.
            output: Determines whether the logged data was sent or received.
        """
        if self._logger_queue is not None:
            stamp = self._timestamp_timer.elapsed
            package = LogPackage(self._source_id, stamp, np.frombuffer(data, dtype=np.uint8).copy())
            self._logger_queue.put(package)

        if self._verbose:
            if output:
                message = f"Board {self._source_id} sent data: {list(data)}"
            else:
                message = f"Board {self._source_id} received data: {list(data)}"
            console.echo(message=message, level=LogLevel.INFO)
