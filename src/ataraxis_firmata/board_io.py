"""This module provides the BoardIO class and its BoardHandle and StateSubscriber helpers, which together make up the
asyncio (concurrent) interface to boards running Firmata firmware.

BoardIO is the driver: a single coroutine (run()) exclusively owns the byte-stream connected to the board and the live
board state. Any number of asyncio tasks communicate with the board through BoardHandle instances, which enqueue
commands into a bounded queue consumed by the driver, and through StateSubscriber instances, which observe the board
state snapshots published by the driver after every applied message. Handles and subscribers never access the
byte-stream or the live state directly.
"""

import asyncio
from typing import Any, Protocol
from datetime import timedelta

from ataraxis_base_utilities import LogLevel, console
import serial_asyncio  # type: ignore

from .exceptions import FirmataError, WrongTypeError, TransportIOError, ChannelClosedError
from .board_state import PinId, PinKind, PinMode, BoardState
from .state_store import apply_command, apply_message, bootstrap_state
from .communication import (
    I2cRead,
    I2cWrite,
    I2cConfig,
    AnalogWrite,
    SetPinMode,
    StringWrite,
    DigitalWrite,
    ReportAnalog,
    ReportDigital,
    ReportFirmware,
    CapabilityQuery,
    OutgoingCommand,
    SamplingInterval,
    CapabilityResponse,
    AnalogMappingQuery,
    ReportFirmwareQuery,
    AnalogMappingResponse,
    encode_command,
)
from .frame_decoder import FrameDecoder

COMMAND_QUEUE_SIZE = 50
"""The maximum number of commands that can be queued for the driver. Sending more commands suspends the senders."""

READ_CHUNK_SIZE = 1024
"""The maximum number of bytes requested from the byte-stream by each read."""


class AsyncByteReader(Protocol):
    """Describes the reader half of the byte-stream, satisfied by asyncio.StreamReader."""

    async def read(self, n: int = -1) -> bytes: ...


class AsyncByteWriter(Protocol):
    """Describes the writer half of the byte-stream, satisfied by asyncio.StreamWriter."""

    def write(self, data: bytes) -> Any: ...

    async def drain(self) -> None: ...


class _StateChannel:
    """Stores the latest published board state snapshot and wakes up the subscribers waiting for a newer one.

    Publishing never blocks: each new snapshot overwrites the previous one, so slow subscribers observe only the most
    recent snapshot.
    """

    def __init__(self, state: BoardState) -> None:
        self.state = state
        self.version = 0
        self.closed = False
        self._event = asyncio.Event()

    def publish(self, state: BoardState) -> None:
        """Replaces the stored snapshot with the input state and wakes up all waiting subscribers."""
        self.state = state
        self.version += 1
        self._wake()

    def close(self) -> None:
        """Marks the channel as closed and wakes up all waiting subscribers."""
        self.closed = True
        self._wake()

    def _wake(self) -> None:
        """Releases the current waiters."""
        # Replaces the event, so waiters of the next version block until the next publish.
        event, self._event = self._event, asyncio.Event()
        event.set()

    async def wait(self) -> None:
        """Waits until the next publish() or close() call."""
        await self._event.wait()


class _CommandChannel:
    """Wraps the bounded command queue and tracks the number of open handles that send commands through it.

    When the last handle is closed, an end-of-input marker (None) is enqueued after all previously sent commands, which
    instructs the driver to stop.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[OutgoingCommand | None] = asyncio.Queue(maxsize=COMMAND_QUEUE_SIZE)
        self.senders = 0
        self.closed = False
        self.stopped = False

    def acquire(self) -> None:
        """Registers a new handle as a sender.

        Raises:
            ChannelClosedError: If the channel is closed.
        """
        if self.closed:
            message = "Unable to create a board handle. The command channel is closed, as the board driver has stopped."
            console.error(message=message, error=ChannelClosedError)
        self.senders += 1

    async def release(self) -> None:
        """Unregisters a handle. Releasing the last sender enqueues the end-of-input marker."""
        self.senders -= 1
        if self.senders == 0 and not self.closed:
            self.closed = True
            await self.queue.put(None)

    async def send(self, command: OutgoingCommand) -> None:
        """Enqueues the input command, suspending while the queue is full.

        Raises:
            ChannelClosedError: If the channel is closed, or if the driver stops while the command waits for a free
                queue slot.
        """
        if self.closed:
            message = (
                "Unable to send the command to the board. The command channel is closed, as all handles were closed "
                "or the board driver has stopped."
            )
            console.error(message=message, error=ChannelClosedError)
        await self.queue.put(command)

        # Senders suspended on the full queue are resumed by shutdown(), after the driver stopped reading the queue.
        if self.stopped:
            message = (
                "Unable to send the command to the board. The board driver stopped before the command was accepted "
                "into the command queue."
            )
            console.error(message=message, error=ChannelClosedError)

    def shutdown(self) -> None:
        """Closes the channel for good and discards the queued commands.

        Discarding the commands also resumes the senders suspended by the full queue, which then raise
        ChannelClosedError.
        """
        self.closed = True
        self.stopped = True
        while not self.queue.empty():
            self.queue.get_nowait()


class StateSubscriber:
    """Provides read-only access to the board state snapshots published by the BoardIO driver.

    Each subscriber tracks the last snapshot it observed via changed(), so multiple subscribers can wait for state
    changes independently.
    """

    def __init__(self, channel: _StateChannel) -> None:
        self._channel = channel
        self._seen = channel.version

    def __repr__(self) -> str:
        """Returns a string representation of the StateSubscriber object."""
        return f"StateSubscriber(version={self._channel.version}, closed={self._channel.closed})"

    def borrow(self) -> BoardState:
        """Returns the most recently published board state snapshot without marking it as seen."""
        return self._channel.state

    def has_changed(self) -> bool:
        """Returns True if a snapshot newer than the last one observed via changed() is available."""
        return self._seen != self._channel.version

    async def changed(self) -> BoardState:
        """Waits until a snapshot newer than the last observed one is published and returns it.

        If a newer snapshot was already published, returns it immediately, so the final snapshot is never missed.

        Raises:
            ChannelClosedError: If the driver stopped and no unseen snapshot remains.
        """
        while self._seen == self._channel.version:
            if self._channel.closed:
                message = "Unable to wait for the board state change. The board driver has stopped publishing states."
                console.error(message=message, error=ChannelClosedError)
            await self._channel.wait()
        self._seen = self._channel.version
        return self._channel.state


class BoardHandle:
    """Sends commands to the board managed by a BoardIO driver and reads its published state.

    Handles are cheap to create and can be cloned to give each task its own handle. The driver stops once all handles
    are closed, so every handle (including clones) has to be closed when it is no longer needed, either explicitly
    via close() or by using the handle as an async context manager.

    Args:
        commands: The command channel shared by all handles of the driver.
        states: The state channel shared by all handles and subscribers of the driver.

    Attributes:
        _commands: Stores the command channel.
        _states: Stores the state channel.
        _closed: Tracks whether this handle was closed.
    """

    def __init__(self, commands: _CommandChannel, states: _StateChannel) -> None:
        commands.acquire()
        self._commands = commands
        self._states = states
        self._closed = False

    def __repr__(self) -> str:
        """Returns a string representation of the BoardHandle object."""
        return f"BoardHandle(closed={self._closed}, senders={self._commands.senders})"

    async def __aenter__(self) -> "BoardHandle":
        """Returns the handle itself."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Closes the handle when the async context is exited."""
        await self.close()

    def clone(self) -> "BoardHandle":
        """Returns a new handle that sends commands to the same driver."""
        return BoardHandle(self._commands, self._states)

    async def close(self) -> None:
        """Closes the handle. Closing the last open handle instructs the driver to stop after the queued commands."""
        if self._closed:
            return
        self._closed = True
        await self._commands.release()

    @property
    def state(self) -> BoardState:
        """Returns the most recently published board state snapshot."""
        return self._states.state

    def subscribe(self) -> StateSubscriber:
        """Returns a new StateSubscriber that observes the snapshots published by the driver."""
        return StateSubscriber(self._states)

    def resolve(self, pin: PinId) -> int:
        """Returns the physical pin number of the input identifier, using the last published analog pin offset."""
        return self._states.state.pin_states.resolve(pin)

    async def send(self, command: OutgoingCommand) -> None:
        """Enqueues the input command. Suspends while the command queue is full.

        Raises:
            ChannelClosedError: If the handle was closed or the driver has stopped.
        """
        if self._closed:
            message = "Unable to send the command to the board. The board handle is closed."
            console.error(message=message, error=ChannelClosedError)
        await self._commands.send(command)

    async def set_pin_mode(self, pin: PinId, mode: PinMode) -> None:
        """Sets the mode of the addressed pin."""
        await self.send(SetPinMode(self.resolve(pin), mode))

    async def digital_write(self, pin: PinId, level: bool) -> None:
        """Sets the level of the addressed digital pin."""
        await self.send(DigitalWrite(self.resolve(pin), level))

    async def analog_write(self, pin: PinId, value: int) -> None:
        """Writes the input value to the addressed pin."""
        await self.send(AnalogWrite(self.resolve(pin), value))

    async def report_digital(self, pin: PinId, enable: bool) -> None:
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
        await self.send(ReportDigital(self.resolve(pin), enable))

    async def report_analog(self, pin: PinId, enable: bool) -> None:
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
        await self.send(ReportAnalog(self.resolve(pin), enable))

    async def sampling_interval(self, interval: timedelta | int) -> None:
        """Sets the board sampling interval, given as a timedelta or as an integer number of milliseconds."""
        await self.send(SamplingInterval(interval))

    async def query_firmware(self) -> None:
        """Requests the board to report the name and version of its firmware."""
        await self.send(ReportFirmwareQuery())

    async def query_capabilities(self) -> None:
        """Requests the board to report the modes supported by each pin."""
        await self.send(CapabilityQuery())

    async def query_analog_mapping(self) -> None:
        """Requests the board to report which pins are mapped to analog channels."""
        await self.send(AnalogMappingQuery())

    async def string_write(self, text: str) -> None:
        """Sends the input text to the board."""
        await self.send(StringWrite(text))

    async def i2c_config(self, delay: int) -> None:
        """Configures the delay, in microseconds, between writing the I2C register and reading the data."""
        await self.send(I2cConfig(delay))

    async def i2c_read(self, address: int, size: int) -> None:
        """Requests the board to read 'size' bytes from the I2C device with the input address."""
        await self.send(I2cRead(address, size))

    async def i2c_write(self, address: int, data: tuple[int, ...] | list[int] | bytes) -> None:
        """Requests the board to write the input data to the I2C device with the input address."""
        await self.send(I2cWrite(address, tuple(data)))


class BoardIO:
    """Owns the byte-stream connected to the board and multiplexes the commands and messages exchanged with it.

    The driver loop (run()) waits for either the next chunk of received bytes or the next queued command, whichever
    becomes available first. Received bytes are decoded into messages, which are applied to the live board state in
    arrival order; a new snapshot is published after each applied message. Queued commands are written to the
    byte-stream in queue order; commands that change pin modes or output values are also mirrored into the live board
    state (and published) before the board confirms them.

    Notes:
        The driver has no internal timeouts. Use asyncio.wait_for() or task cancellation to bound the runtime of
        generate_board_state() and run().

        The driver stops when all handles created via get_board() (and their clones) are closed. Subscribers observe
        the stop as a ChannelClosedError raised by StateSubscriber.changed().

    Args:
        reader: The reader half of the byte-stream connected to the board.
        writer: The writer half of the byte-stream connected to the board.
        verbose: Determines whether to print sent and received frames to the console. The class itself does NOT enable
            the console, so the console has to be enabled manually for this flag to have an effect.

    Attributes:
        _reader: Stores the reader half of the byte-stream.
        _writer: Stores the writer half of the byte-stream.
        _decoder: Stores the FrameDecoder used to extract frames from the received bytes.
        _buffer: Stores the received bytes that were not decoded yet.
        _state: Stores the live board state.
        _commands: Stores the command channel shared with the handles.
        _states: Stores the state channel shared with the handles and subscribers.
        _verbose: Stores the verbose flag.
    """

    def __init__(self, reader: AsyncByteReader, writer: AsyncByteWriter, *, verbose: bool = False) -> None:
        self._reader = reader
        self._writer = writer
        self._decoder = FrameDecoder()
        self._buffer = bytearray()
        self._state = BoardState()
        self._commands = _CommandChannel()
        self._states = _StateChannel(self._state)
        self._verbose = verbose

    def __repr__(self) -> str:
        """Returns a string representation of the BoardIO object."""
        return (
            f"BoardIO(pins={len(self._state.pins)}, firmware='{self._state.firmware_name}', "
            f"handles={self._commands.senders}, verbose={self._verbose})"
        )

    def get_board(self) -> BoardHandle:
        """Returns a new handle that sends commands to this driver."""
        return BoardHandle(self._commands, self._states)

    def subscribe(self) -> StateSubscriber:
        """Returns a new StateSubscriber that observes the snapshots published by this driver."""
        return StateSubscriber(self._states)

    async def generate_board_state(self) -> BoardState:
        """Bootstraps the board state by running the pipelined handshake.

        Sends the firmware, capability, and analog mapping queries as a single write, then decodes received messages
        until all three responses arrive (in any order). Other messages received during the handshake are ignored. The
        responses are then committed to the live board state in a single step, and the new state is published.

        This method has to be awaited before run(), as both use the byte-stream.

        Returns:
            The bootstrapped board state.

        Raises:
            StateError: If the analog mapping references pins that the capability response does not report. The live
                board state is not modified in this case.
            TransportIOError: If the byte-stream fails or reaches the end of the stream.
        """
        queries = (ReportFirmwareQuery(), CapabilityQuery(), AnalogMappingQuery())
        await self._write(b"".join(encode_command(query) for query in queries))

        capability: CapabilityResponse | None = None
        mapping: AnalogMappingResponse | None = None
        firmware: ReportFirmware | None = None
        while capability is None or mapping is None or firmware is None:
            message = self._decoder.decode(self._buffer)
            if message is None:
                self._receive(await self._read())
                continue
            if isinstance(message, CapabilityResponse):
                capability = message
            elif isinstance(message, AnalogMappingResponse):
                mapping = message
            elif isinstance(message, ReportFirmware):
                firmware = message

        self._state = bootstrap_state(self._state, capability, mapping, firmware)
        self._states.publish(self._state)
        return self._state

    async def run(self) -> None:
        """Runs the driver loop until all handles are closed.

        Raises:
            TransportIOError: If the byte-stream fails or reaches the end of the stream.
            FirmataError: If a received message cannot be parsed or applied to the board state.
        """
        read_task: asyncio.Task[bytes] | None = None
        command_task: asyncio.Task[OutgoingCommand | None] | None = None
        try:
            while True:
                # Applies all complete frames before waiting for more data.
                self._apply_buffered()

                if read_task is None:
                    read_task = asyncio.ensure_future(self._read())
                if command_task is None:
                    command_task = asyncio.ensure_future(self._commands.queue.get())

                done, _ = await asyncio.wait({read_task, command_task}, return_when=asyncio.FIRST_COMPLETED)

                if read_task in done:
                    data = read_task.result()
                    read_task = None
                    self._receive(data)

                if command_task in done:
                    command = command_task.result()
                    command_task = None
                    if command is None:
                        return
                    self._state = apply_command(self._state, command)
                    self._states.publish(self._state)
                    await self._write(encode_command(command))
        finally:
            for task in (read_task, command_task):
                if task is not None and not task.done():
                    task.cancel()
            self._commands.shutdown()
            self._states.close()

    def _apply_buffered(self) -> None:
        """Decodes and applies all complete frames stored in the buffer, publishing a snapshot after each one."""
        while True:
            message = self._decoder.decode(self._buffer)
            if message is None:
                return
            self._state = apply_message(self._state, message)
            self._states.publish(self._state)

    def _receive(self, data: bytes) -> None:
        """Appends the received bytes to the buffer."""
        self._buffer.extend(data)
        if self._verbose:
            console.echo(message=f"Board received data: {list(data)}", level=LogLevel.INFO)

    async def _read(self) -> bytes:
        """Reads the next chunk of bytes from the byte-stream.

        Raises:
            TransportIOError: If the byte-stream fails or reaches the end of the stream.
        """
        try:
            data = await self._reader.read(READ_CHUNK_SIZE)
        except FirmataError:
            raise
        except OSError as exception:
            message = f"Unable to read data from the board: {exception}"
            console.error(message=message, error=TransportIOError)
            # Fallback to appease mypy
            raise TransportIOError(message) from exception  # pragma: no cover
        if not data:
            message = "Unable to read data from the board. The byte-stream reached the end of the stream."
            console.error(message=message, error=TransportIOError)
        return data

    async def _write(self, data: bytes) -> None:
        """Writes the input bytes to the byte-stream and waits until they are flushed.

        Raises:
            TransportIOError: If the byte-stream fails to write the data.
        """
        try:
            self._writer.write(data)
            await self._writer.drain()
        except FirmataError:
            raise
        except OSError as exception:
            message = f"Unable to write data to the board: {exception}"
            console.error(message=message, error=TransportIOError)
            # Fallback to appease mypy
            raise TransportIOError(message) from exception  # pragma: no cover
        if self._verbose:
            console.echo(message=f"Board sent data: {list(data)}", level=LogLevel.INFO)


async def open_serial(url: str, baudrate: int = 57600, *, verbose: bool = False, **kwargs: Any) -> BoardIO:
    """Opens the serial port and returns a BoardIO driver that communicates with the board through it.

    Args:
        url: The name or URL of the serial port to connect to, e.g.: 'COM3' or '/dev/ttyUSB0'.
        baudrate: The baudrate used by the board firmware. StandardFirmata uses 57600.
        verbose: Determines whether the driver prints sent and received frames to the console.
        **kwargs: Additional keyword arguments passed to the pySerial Serial class.

    Raises:
        TransportIOError: If the serial port cannot be opened.
    """
    try:
        reader, writer = await serial_asyncio.open_serial_connection(url=url, baudrate=baudrate, **kwargs)
    except OSError as exception:
        message = f"Unable to open the serial port {url} at {baudrate} baud: {exception}"
        console.error(message=message, error=TransportIOError)
        # Fallback to appease mypy
        raise TransportIOError(message) from exception  # pragma: no cover
    return BoardIO(reader, writer, verbose=verbose)
