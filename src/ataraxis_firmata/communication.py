"""This module provides the message structures and the codec used to communicate with boards running Firmata firmware.

Outgoing messages (commands) are frozen dataclasses that serialize their data into the 'packed_data' numpy array at
initialization, so sending the same command multiple times does not repeat the serialization. Incoming messages are
parsed from complete frames (as delimited by the FrameDecoder or the synchronous FirmataBoard reader) via the
parse_frame() function.

Additionally, this module exposes the enumerations that store the byte-codes used by the Firmata protocol.
"""

from enum import IntEnum
from typing import Union
from datetime import timedelta
from dataclasses import field, dataclass

import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import console

from .exceptions import ParseError, Utf8Error, OutOfRangeError, ConversionFailure
from .board_state import Pin, Mode, PinId, PinMode, I2CReply


class MessageHeaders(IntEnum):
    """Stores the header byte-codes that start (or end) each Firmata frame.

    Analog, digital, and report messages store the pin or port number in the lower nibble of the header byte, so the
    codes of these messages are the lowest value of the 16-value range reserved for each message.
    """

    START_SYSEX = 0xF0
    """Starts a variable-length system-exclusive (sysex) message."""

    END_SYSEX = 0xF7
    """Ends a sysex message."""

    ANALOG_MESSAGE = 0xE0
    """Transmits the 16-bit value of an analog pin (0xE0 to 0xEF)."""

    DIGITAL_MESSAGE = 0x90
    """Transmits the 8-pin bitmask of a digital port (0x90 to 0x9F)."""

    PROTOCOL_VERSION = 0xF9
    """Transmits the major and minor version of the protocol used by the board."""

    REPORT_ANALOG = 0xC0
    """Enables or disables the reporting of an analog pin (0xC0 to 0xCF)."""

    REPORT_DIGITAL = 0xD0
    """Enables or disables the reporting of a digital port (0xD0 to 0xDF)."""

    PIN_MODE = 0xF4
    """Sets the mode of a pin."""

    DIGITAL_PIN_WRITE = 0xF5
    """Sets the value of a single digital pin."""

    def as_uint8(self) -> np.uint8:
        """Converts the enum value to numpy.uint8 type."""
        return np.uint8(self.value)


class SysexCommands(IntEnum):
    """Stores the sysex command codes, transmitted as the first byte following the START_SYSEX header."""

    ANALOG_MAPPING_QUERY = 0x69
    """Requests the mapping of analog channels to physical pins."""

    ANALOG_MAPPING_RESPONSE = 0x6A
    """Transmits the mapping of analog channels to physical pins."""

    CAPABILITY_QUERY = 0x6B
    """Requests the modes supported by each board pin."""

    CAPABILITY_RESPONSE = 0x6C
    """Transmits the modes supported by each board pin."""

    STRING_DATA = 0x71
    """Transmits a text string."""

    I2C_REQUEST = 0x76
    """Requests an I2C read or write operation."""

    I2C_REPLY = 0x77
    """Transmits the data read from an I2C device."""

    I2C_CONFIG = 0x78
    """Configures the I2C bus."""

    REPORT_FIRMWARE = 0x79
    """Requests or transmits the name and version of the board firmware."""

    SAMPLING_INTERVAL = 0x7A
    """Sets the interval at which the board samples and reports its pins."""

    def as_uint8(self) -> np.uint8:
        """Converts the enum value to numpy.uint8 type."""
        return np.uint8(self.value)


class MessageKind(IntEnum):
    """Identifies the type of incoming message processed by the board reader."""

    ANALOG = 0
    """The value of an analog pin."""

    DIGITAL = 1
    """The bitmask of a digital port."""

    ANALOG_MAPPING_RESPONSE = 2
    """The mapping of analog channels to physical pins."""

    CAPABILITY_RESPONSE = 3
    """The modes supported by each board pin."""

    REPORT_FIRMWARE = 4
    """The name and version of the board firmware."""

    I2C_REPLY = 5
    """The data read from an I2C device."""

    PROTOCOL_VERSION = 6
    """The version of the protocol used by the board."""


I2C_MODE_WRITE = 0x00
"""The I2C request mode used to write data to a device. Transmitted shifted 3 bits to the left."""

I2C_MODE_READ = 0x01
"""The I2C request mode used to read data from a device. Transmitted shifted 3 bits to the left."""

SYSEX_SEPARATOR = 0x7F
"""Separates the per-pin records of the capability response and marks unmapped pins in the analog mapping response."""


def is_frame_start(byte: int) -> bool:
    """Determines whether the input byte starts any of the frames the board can send to the PC."""
    return (
        byte == MessageHeaders.START_SYSEX
        or byte == MessageHeaders.PROTOCOL_VERSION
        or 0xE0 <= byte <= 0xEF
        or 0x90 <= byte <= 0x9F
    )


def _validate_range(command: str, name: str, value: int, maximum: int) -> None:
    """Ensures the input value is an integer that fits between 0 and the maximum value (inclusive).

    Raises:
        OutOfRangeError: If the value is not an integer or does not fit into the range.
    """
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool) and 0 <= value <= maximum:
        return
    message = (
        f"Unable to initialize {command} message. Expected an integer '{name}' argument value between 0 and "
        f"{maximum}, but encountered {value} of type {type(value).__name__}."
    )
    console.error(message=message, error=OutOfRangeError)
    # Fallback to appease mypy
    raise OutOfRangeError(message)  # pragma: no cover


def _sysex(command: SysexCommands, *data: int) -> NDArray[np.uint8]:
    """Packs the input sysex command code and data bytes into a numpy array bounded by the sysex sentinels."""
    packed = np.empty(len(data) + 3, dtype=np.uint8)
    packed[0] = MessageHeaders.START_SYSEX
    packed[1] = command
    packed[2:-1] = np.array(data, dtype=np.uint8)
    packed[-1] = MessageHeaders.END_SYSEX
    return packed


def _little_endian(value: int) -> tuple[int, int]:
    """Splits the input 16-bit value into its low and high bytes."""
    return value & 0xFF, (value >> 8) & 0xFF


@dataclass(frozen=True)
class AnalogMappingQuery:
    """Requests the board to report which physical pins are mapped to analog channels."""

    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.ANALOG_MAPPING_QUERY))


@dataclass(frozen=True)
class CapabilityQuery:
    """Requests the board to report the modes supported by each of its pins."""

    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.CAPABILITY_QUERY))


@dataclass(frozen=True)
class ReportFirmwareQuery:
    """Requests the board to report the name and version of its firmware."""

    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.REPORT_FIRMWARE))


@dataclass(frozen=True)
class I2cConfig:
    """Configures the delay the board waits between writing the register address and reading the I2C data."""

    delay: int
    """The delay, in microseconds, as an unsigned 16-bit value."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("I2cConfig", "delay", self.delay, 0xFFFF)
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.I2C_CONFIG, *_little_endian(self.delay)))


@dataclass(frozen=True)
class I2cRead:
    """Requests the board to read the specified number of bytes from the addressed I2C device."""

    address: int
    """The 7-bit address of the I2C device."""
    size: int
    """The number of bytes to read, as an unsigned 16-bit value."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("I2cRead", "address", self.address, 0x7F)
        _validate_range("I2cRead", "size", self.size, 0xFFFF)
        packed = _sysex(SysexCommands.I2C_REQUEST, self.address, I2C_MODE_READ << 3, *_little_endian(self.size))
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class I2cWrite:
    """Requests the board to write the data to the addressed I2C device.

    Notes:
        Each data value is transmitted as two 7-bit bytes (the lower 7 bits first), so values up to 14 bits wide are
        supported.
    """

    address: int
    """The 7-bit address of the I2C device."""
    data: tuple[int, ...] = ()
    """The values to write to the device."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("I2cWrite", "address", self.address, 0x7F)
        object.__setattr__(self, "data", tuple(self.data))
        payload = [self.address, I2C_MODE_WRITE << 3]
        for value in self.data:
            _validate_range("I2cWrite", "data", value, 0x3FFF)
            payload.extend((value & 0x7F, (value >> 7) & 0x7F))
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.I2C_REQUEST, *payload))


@dataclass(frozen=True)
class ReportDigital:
    """Enables or disables the automatic reporting of the digital port that contains the specified pin."""

    pin: int
    """The physical number of the pin (port) to report. Has to fit into the lower nibble of the header."""
    enable: bool
    """Determines whether reporting is enabled or disabled."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("ReportDigital", "pin", self.pin, 0x0F)
        packed = np.array([MessageHeaders.REPORT_DIGITAL | self.pin, int(bool(self.enable))], dtype=np.uint8)
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class ReportAnalog:
    """Enables or disables the automatic reporting of the specified analog pin.

    Notes:
        The header nibble transmitted to the board is the pin number incremented by one.
    """

    pin: int
    """The physical number of the analog pin to report."""
    enable: bool
    """Determines whether reporting is enabled or disabled."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("ReportAnalog", "pin", self.pin, 0x0E)
        packed = np.array([MessageHeaders.REPORT_ANALOG | (self.pin + 1), int(bool(self.enable))], dtype=np.uint8)
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class AnalogWrite:
    """Sets the output value of the specified analog-capable (PWM, servo) pin."""

    pin: int
    """The physical number of the pin. Has to fit into the lower nibble of the header (0 to 15)."""
    value: int
    """The unsigned 16-bit value to write. Transmitted as two little-endian bytes."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("AnalogWrite", "pin", self.pin, 0x0F)
        _validate_range("AnalogWrite", "value", self.value, 0xFFFF)
        packed = np.array(
            [MessageHeaders.ANALOG_MESSAGE | self.pin, *_little_endian(self.value)],
            dtype=np.uint8,
        )
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class DigitalWrite:
    """Sets the output level of a single digital pin."""

    pin: int
    """The physical number of the pin."""
    level: bool
    """The logic level to set."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("DigitalWrite", "pin", self.pin, 0x7F)
        packed = np.array([MessageHeaders.DIGITAL_PIN_WRITE, self.pin, int(bool(self.level))], dtype=np.uint8)
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class DigitalPort:
    """Sets the output levels of all 8 pins of a digital port at the same time."""

    port: int
    """The port number. The port N contains pins 8*N to 8*N+7."""
    bitmask: int
    """The pin levels, with the lowest bit addressing the first pin of the port."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("DigitalPort", "port", self.port, 0x0F)
        _validate_range("DigitalPort", "bitmask", self.bitmask, 0xFFFF)
        packed = np.array(
            [MessageHeaders.DIGITAL_MESSAGE | self.port, *_little_endian(self.bitmask)],
            dtype=np.uint8,
        )
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class StringWrite:
    """Sends a text string to the board.

    Notes:
        Each byte of the UTF-8 encoded text is transmitted as an unsigned 16-bit little-endian value. Incoming firmware
        names are decoded as plain UTF-8, so this encoding is not the inverse of the one used for received text.
    """

    text: str
    """The text to send."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        payload: list[int] = []
        for byte in self.text.encode("utf-8"):
            payload.extend(_little_endian(byte))
        object.__setattr__(self, "packed_data", _sysex(SysexCommands.STRING_DATA, *payload))


@dataclass(frozen=True)
class SetPinMode:
    """Sets the operating mode of the specified pin."""

    pin: int
    """The physical number of the pin."""
    mode: PinMode
    """The mode to set."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        _validate_range("SetPinMode", "pin", self.pin, 0x7F)
        object.__setattr__(self, "mode", PinMode(self.mode))
        packed = np.array([MessageHeaders.PIN_MODE, self.pin, self.mode], dtype=np.uint8)
        object.__setattr__(self, "packed_data", packed)


@dataclass(frozen=True)
class SamplingInterval:
    """Sets the interval at which the board samples its pins and reports the changes."""

    interval: timedelta | int
    """The sampling interval, either as a timedelta or as an integer number of milliseconds."""
    milliseconds: int = field(init=False, default=0)
    """Stores the interval converted to whole milliseconds."""
    packed_data: NDArray[np.uint8] | None = field(init=False, default=None, repr=False, compare=False)
    """Stores serialized message data."""

    def __post_init__(self) -> None:
        """Packs the data into the numpy array to optimize future transmission speed."""
        if isinstance(self.interval, timedelta):
            milliseconds = int(self.interval / timedelta(milliseconds=1))
        else:
            milliseconds = self.interval
        _validate_range("SamplingInterval", "interval", milliseconds, 0xFFFF)
        object.__setattr__(self, "milliseconds", milliseconds)
        packed = _sysex(SysexCommands.SAMPLING_INTERVAL, *_little_endian(milliseconds))
        object.__setattr__(self, "packed_data", packed)


OutgoingCommand = Union[
    AnalogMappingQuery,
    CapabilityQuery,
    ReportFirmwareQuery,
    I2cConfig,
    I2cRead,
    I2cWrite,
    ReportDigital,
    ReportAnalog,
    AnalogWrite,
    DigitalWrite,
    DigitalPort,
    StringWrite,
    SetPinMode,
    SamplingInterval,
]


def encode_command(command: OutgoingCommand) -> bytes:
    """Returns the serialized bytes of the input command."""
    return command.packed_data.tobytes()  # type: ignore[union-attr]


@dataclass(frozen=True)
class AnalogMessage:
    """Stores the value of an analog channel reported by the board."""

    pin: PinId
    """The analog channel that reported the value."""
    value: int
    """The reported 16-bit value."""


@dataclass(frozen=True)
class DigitalMessage:
    """Stores the levels of a digital port reported by the board."""

    port: int
    """The reported port. The port N contains pins 8*N to 8*N+7."""
    value: int
    """The port bitmask, with the lowest bit addressing the first pin of the port."""


@dataclass(frozen=True)
class AnalogMappingResponse:
    """Stores the physical pins that are mapped to analog channels."""

    supported_analog_pins: tuple[int, ...]
    """The physical numbers of analog-capable pins, in ascending order."""

    @classmethod
    def from_payload(cls, payload: bytes) -> "AnalogMappingResponse":
        """Parses the response data. Every byte other than 0x7F marks the pin with the matching index as analog."""
        return cls(tuple(index for index, value in enumerate(payload) if value != SYSEX_SEPARATOR))


@dataclass(frozen=True)
class CapabilityResponse:
    """Stores the modes supported by each board pin."""

    pins: tuple[Pin, ...]
    """The board pins, in the order of their physical numbers. All pins are initialized as non-analog inputs."""

    @classmethod
    def from_payload(cls, payload: bytes) -> "CapabilityResponse":
        """Parses the response data into Pin records.

        The data is a sequence of per-pin records terminated by the 0x7F separator. Each record is a sequence of
        (mode code, resolution) byte pairs. Bytes that follow the last separator are ignored.

        Raises:
            ConversionFailure: If any record contains an odd number of bytes.
            ParseError: If any record contains an unsupported mode code.
        """
        pins: list[Pin] = []
        start = 0
        for index, value in enumerate(payload):
            if value != SYSEX_SEPARATOR:
                continue
            record = payload[start:index]
            start = index + 1
            if len(record) % 2 != 0:
                message = (
                    f"Unable to parse the capability record of pin {len(pins)}. Expected an even number of "
                    f"(mode, resolution) bytes, but encountered {len(record)} bytes: {list(record)}."
                )
                console.error(message=message, error=ConversionFailure)
                # Fallback to appease mypy
                raise ConversionFailure(message)  # pragma: no cover
            modes = tuple(
                Mode(mode=PinMode.from_code(record[position]), resolution=record[position + 1])
                for position in range(0, len(record), 2)
            )
            pins.append(Pin(modes=modes))
        return cls(tuple(pins))


@dataclass(frozen=True)
class ReportFirmware:
    """Stores the name and version of the board firmware."""

    version: str
    """The firmware version, formatted as 'major.minor' with both numbers written in base 8."""
    name: str
    """The firmware name, with all null characters removed."""

    @classmethod
    def from_payload(cls, payload: bytes) -> "ReportFirmware":
        """Parses the response data.

        Raises:
            ConversionFailure: If the data does not contain the two version bytes.
            Utf8Error: If the firmware name is not valid UTF-8 text.
        """
        if len(payload) < 2:
            message = (
                f"Unable to parse the firmware report. Expected at least 2 version bytes, but encountered "
                f"{len(payload)} bytes."
            )
            console.error(message=message, error=ConversionFailure)
            # Fallback to appease mypy
            raise ConversionFailure(message)  # pragma: no cover
        version = f"{payload[0]:o}.{payload[1]:o}"
        try:
            name = bytes(payload[2:]).decode("utf-8")
        except UnicodeDecodeError:
            message = (
                f"Unable to parse the firmware report. Expected the firmware name to be valid UTF-8 text, but "
                f"encountered bytes {list(payload[2:])}."
            )
            console.error(message=message, error=Utf8Error)
            # Fallback to appease mypy
            raise Utf8Error(message)  # pragma: no cover
        return cls(version=version, name=name.replace("\0", ""))


@dataclass(frozen=True)
class ProtocolVersion:
    """Stores the version of the Firmata protocol used by the board."""

    version: str
    """The protocol version, formatted as 'major.minor' with both numbers written in base 8."""


def parse_i2c_reply(payload: bytes) -> I2CReply:
    """Parses the data of an I2C reply message into an I2CReply record.

    The address and register are stored as two 7-bit bytes each. Data values follow as 7-bit byte pairs and are
    processed until an END_SYSEX byte is encountered or fewer than 2 bytes remain.

    Raises:
        ConversionFailure: If the data does not contain the address and register bytes.
    """
    if len(payload) < 4:
        message = (
            f"Unable to parse the I2C reply. Expected at least 4 address and register bytes, but encountered "
            f"{len(payload)} bytes."
        )
        console.error(message=message, error=ConversionFailure)
        # Fallback to appease mypy
        raise ConversionFailure(message)  # pragma: no cover

    data: list[int] = []
    index = 4
    while index + 2 <= len(payload) and payload[index] != MessageHeaders.END_SYSEX:
        data.append(payload[index] | (payload[index + 1] << 7))
        index += 2
    return I2CReply(
        address=payload[0] | (payload[1] << 7),
        register=payload[2] | (payload[3] << 7),
        data=tuple(data),
    )


IncomingMessage = Union[
    AnalogMessage,
    DigitalMessage,
    AnalogMappingResponse,
    CapabilityResponse,
    ReportFirmware,
    I2CReply,
    ProtocolVersion,
]

_MESSAGE_KINDS: dict[type, MessageKind] = {
    AnalogMessage: MessageKind.ANALOG,
    DigitalMessage: MessageKind.DIGITAL,
    AnalogMappingResponse: MessageKind.ANALOG_MAPPING_RESPONSE,
    CapabilityResponse: MessageKind.CAPABILITY_RESPONSE,
    ReportFirmware: MessageKind.REPORT_FIRMWARE,
    I2CReply: MessageKind.I2C_REPLY,
    ProtocolVersion: MessageKind.PROTOCOL_VERSION,
}


def message_kind(message: IncomingMessage) -> MessageKind:
    """Returns the MessageKind that identifies the type of the input message."""
    return _MESSAGE_KINDS[type(message)]


def parse_sysex(payload: bytes) -> IncomingMessage:
    """Parses the payload of a sysex frame (without the START_SYSEX and END_SYSEX bytes).

    The first payload byte is the sysex command code, which determines how the rest of the payload is parsed.

    Raises:
        OutOfRangeError: If the payload is empty.
        ParseError: If the sysex command code is not one of the supported response codes.
    """
    if len(payload) == 0:
        message = (
            "Unable to parse the sysex message. Expected at least the sysex command byte, but the message is empty."
        )
        console.error(message=message, error=OutOfRangeError)
        # Fallback to appease mypy
        raise OutOfRangeError(message)  # pragma: no cover

    command, data = payload[0], bytes(payload[1:])
    if command == SysexCommands.ANALOG_MAPPING_RESPONSE:
        return AnalogMappingResponse.from_payload(data)
    if command == SysexCommands.CAPABILITY_RESPONSE:
        return CapabilityResponse.from_payload(data)
    if command == SysexCommands.REPORT_FIRMWARE:
        return ReportFirmware.from_payload(data)
    if command == SysexCommands.I2C_REPLY:
        return parse_i2c_reply(data)

    # ParseError carries the offending bytes, so it is raised directly.
    message = (
        f"Unable to parse the sysex message. Expected one of the supported response codes (106, 108, 119 or 121), "
        f"but encountered {command}."
    )
    raise ParseError(message, raw=bytes(payload))


def parse_frame(frame: bytes | bytearray) -> IncomingMessage:
    """Parses a complete frame into the matching incoming message structure.

    Args:
        frame: The frame bytes, starting with the header byte. Sysex frames have to include both the START_SYSEX and
            the END_SYSEX bytes.

    Returns:
        The parsed message structure.

    Raises:
        ParseError: If the header byte is not a recognized frame start or the sysex frame is not terminated.
        ConversionFailure: If a fixed-size frame does not contain exactly 3 bytes.
        OutOfRangeError: If the sysex frame is empty.
    """
    frame = bytes(frame)
    header = frame[0] if frame else -1

    if header == MessageHeaders.START_SYSEX:
        if frame[-1] != MessageHeaders.END_SYSEX:
            message = (
                f"Unable to parse the sysex frame. Expected the frame to end with {int(MessageHeaders.END_SYSEX)}, "
                f"but encountered {frame[-1]}."
            )
            raise ParseError(message, raw=frame)
        return parse_sysex(frame[1:-1])

    if not is_frame_start(header):
        message = f"Unable to parse the frame. Expected a valid frame header byte, but encountered {header}."
        raise ParseError(message, raw=frame)

    if len(frame) != 3:
        message = f"Unable to parse the frame. Expected the frame to contain 3 bytes, but encountered {len(frame)}."
        console.error(message=message, error=ConversionFailure)
        # Fallback to appease mypy
        raise ConversionFailure(message)  # pragma: no cover

    if header == MessageHeaders.PROTOCOL_VERSION:
        return ProtocolVersion(f"{frame[1]:o}.{frame[2]:o}")
    value = frame[1] | (frame[2] << 8)
    if header & 0xF0 == MessageHeaders.ANALOG_MESSAGE:
        return AnalogMessage(pin=PinId.analog(header & 0x0F), value=value)
    return DigitalMessage(port=header & 0x0F, value=value)
