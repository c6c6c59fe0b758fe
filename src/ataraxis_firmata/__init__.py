"""This library provides classes and methods that enable communication with microcontroller boards running Firmata
firmware.

The library exposes two interfaces to the board: the synchronous FirmataBoard class for single-threaded scripts and
the asyncio BoardIO driver, which shares one board between multiple tasks via cloneable BoardHandle instances.
"""

from .board import FirmataBoard
from .board_io import BoardIO, BoardHandle, StateSubscriber, open_serial
from .exceptions import (
    ParseError,
    StateError,
    Utf8Error,
    FirmataError,
    NotFoundError,
    WrongTypeError,
    OutOfRangeError,
    TransportIOError,
    ConversionFailure,
    ChannelClosedError,
    UninitializedError,
    FirmataTimeoutError,
)
from .board_state import Pin, Mode, PinId, PinMode, I2CReply, PinStates, BoardState
from .communication import (
    I2cRead,
    I2cWrite,
    I2cConfig,
    AnalogWrite,
    DigitalPort,
    MessageKind,
    SetPinMode,
    StringWrite,
    DigitalWrite,
    ReportAnalog,
    ReportDigital,
    CapabilityQuery,
    SamplingInterval,
    AnalogMappingQuery,
    ReportFirmwareQuery,
    parse_frame,
    encode_command,
)
from .frame_decoder import FrameDecoder

__all__ = [
    "AnalogMappingQuery",
    "AnalogWrite",
    "BoardHandle",
    "BoardIO",
    "BoardState",
    "CapabilityQuery",
    "ChannelClosedError",
    "ConversionFailure",
    "DigitalPort",
    "DigitalWrite",
    "FirmataBoard",
    "FirmataError",
    "FirmataTimeoutError",
    "FrameDecoder",
    "I2CReply",
    "I2cConfig",
    "I2cRead",
    "I2cWrite",
    "MessageKind",
    "Mode",
    "NotFoundError",
    "OutOfRangeError",
    "ParseError",
    "Pin",
    "PinId",
    "PinMode",
    "PinStates",
    "ReportAnalog",
    "ReportDigital",
    "ReportFirmwareQuery",
    "SamplingInterval",
    "SetPinMode",
    "StateError",
    "StateSubscriber",
    "StringWrite",
    "TransportIOError",
    "UninitializedError",
    "Utf8Error",
    "WrongTypeError",
    "encode_command",
    "open_serial",
    "parse_frame",
]
