"""This file contains the test functions that verify the functionality and error-handling of the message structures
and the codec functions available from the communication module.
"""

from datetime import timedelta

import numpy as np
import pytest
from ataraxis_base_utilities import error_format

from ataraxis_firmata.exceptions import ParseError, Utf8Error, OutOfRangeError, ConversionFailure
from ataraxis_firmata.board_state import Pin, Mode, PinId, PinMode, I2CReply
from ataraxis_firmata.communication import (
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
    AnalogMessage,
    ReportDigital,
    DigitalMessage,
    MessageHeaders,
    ReportFirmware,
    SysexCommands,
    CapabilityQuery,
    ProtocolVersion,
    SamplingInterval,
    CapabilityResponse,
    AnalogMappingQuery,
    ReportFirmwareQuery,
    AnalogMappingResponse,
    parse_frame,
    message_kind,
    encode_command,
    is_frame_start,
    parse_i2c_reply,
)


def test_message_headers_as_uint8():
    """Verifies the functioning of the MessageHeaders and SysexCommands enum as_uint8() methods."""
    result = MessageHeaders.START_SYSEX.as_uint8()
    assert isinstance(result, np.uint8)
    assert result == 0xF0
    assert SysexCommands.REPORT_FIRMWARE.as_uint8() == 0x79


@pytest.mark.parametrize(
    "command,expected",
    [
        (AnalogWrite(pin=3, value=512), [0xE3, 0x00, 0x02]),
        (SetPinMode(pin=9, mode=PinMode.OUTPUT), [0xF4, 0x09, 0x01]),
        (AnalogMappingQuery(), [0xF0, 0x69, 0xF7]),
        (CapabilityQuery(), [0xF0, 0x6B, 0xF7]),
        (ReportFirmwareQuery(), [0xF0, 0x79, 0xF7]),
        (ReportDigital(pin=2, enable=True), [0xD2, 0x01]),
        (ReportAnalog(pin=2, enable=False), [0xC3, 0x00]),
        (DigitalPort(port=1, bitmask=0x0105), [0x91, 0x05, 0x01]),
        (DigitalWrite(pin=13, level=True), [0xF5, 0x0D, 0x01]),
        (StringWrite(text="Hi"), [0xF0, 0x71, 0x48, 0x00, 0x69, 0x00, 0xF7]),
        (SamplingInterval(interval=timedelta(milliseconds=300)), [0xF0, 0x7A, 0x2C, 0x01, 0xF7]),
        (SamplingInterval(interval=19), [0xF0, 0x7A, 0x13, 0x00, 0xF7]),
        (I2cConfig(delay=0x0203), [0xF0, 0x78, 0x03, 0x02, 0xF7]),
        (I2cRead(address=0x48, size=6), [0xF0, 0x76, 0x48, 0x08, 0x06, 0x00, 0xF7]),
        (I2cWrite(address=0x48, data=(0x01, 0xFF)), [0xF0, 0x76, 0x48, 0x00, 0x01, 0x00, 0x7F, 0x01, 0xF7]),
    ],
)
def test_command_encoding(command, expected):
    """Verifies that each outgoing command is serialized into the expected bytes."""
    assert isinstance(command.packed_data, np.ndarray)
    assert command.packed_data.dtype == np.uint8
    assert encode_command(command) == bytes(expected)


def test_command_equality():
    """Verifies that commands with the same arguments compare equal regardless of their packed data arrays."""
    assert AnalogWrite(pin=3, value=512) == AnalogWrite(pin=3, value=512)
    assert AnalogWrite(pin=3, value=512) != AnalogWrite(pin=3, value=513)
    assert SamplingInterval(interval=timedelta(seconds=1)).milliseconds == 1000


@pytest.mark.parametrize(
    "factory,command,name,value,maximum",
    [
        (lambda: AnalogWrite(pin=16, value=0), "AnalogWrite", "pin", 16, 15),
        (lambda: AnalogWrite(pin=3, value=70000), "AnalogWrite", "value", 70000, 65535),
        (lambda: SetPinMode(pin=128, mode=PinMode.INPUT), "SetPinMode", "pin", 128, 127),
        (lambda: ReportAnalog(pin=15, enable=True), "ReportAnalog", "pin", 15, 14),
        (lambda: SamplingInterval(interval=timedelta(seconds=70)), "SamplingInterval", "interval", 70000, 65535),
        (lambda: DigitalPort(port=16, bitmask=0), "DigitalPort", "port", 16, 15),
    ],
)
def test_command_range_errors(factory, command, name, value, maximum):
    """Verifies that commands reject arguments that do not fit into their wire slots."""
    message = (
        f"Unable to initialize {command} message. Expected an integer '{name}' argument value between 0 and "
        f"{maximum}, but encountered {value} of type int."
    )
    with pytest.raises(OutOfRangeError, match=error_format(message)):
        factory()


def test_is_frame_start():
    """Verifies that is_frame_start() recognizes all frame headers the board can send."""
    for byte in (0xF0, 0xF9, 0xE0, 0xEF, 0x90, 0x9F):
        assert is_frame_start(byte)
    for byte in (0x00, 0x7F, 0xF7, 0xF4, 0xC0, 0xD0, 0x8F, 0xA0):
        assert not is_frame_start(byte)


def test_capability_response_parsing():
    """Verifies that the capability payload is split into per-pin records of (mode, resolution) pairs."""
    response = CapabilityResponse.from_payload(bytes([0, 1, 1, 1, 0x7F, 2, 10, 0x7F]))

    assert len(response.pins) == 2
    assert response.pins[0].modes == (Mode(PinMode.INPUT, 1), Mode(PinMode.OUTPUT, 1))
    assert response.pins[1].modes == (Mode(PinMode.ANALOG, 10),)
    for pin in response.pins:
        assert not pin.analog
        assert pin.value == 0
        assert pin.mode == PinMode.INPUT


def test_capability_response_empty_record():
    """Verifies that two consecutive separators produce a pin with no supported modes."""
    response = CapabilityResponse.from_payload(bytes([0, 1, 0x7F, 0x7F, 3, 8, 0x7F]))
    assert response.pins == (Pin(modes=(Mode(PinMode.INPUT, 1),)), Pin(), Pin(modes=(Mode(PinMode.PWM, 8),)))


def test_capability_response_errors():
    """Verifies the error-handling of the capability payload parser."""
    message = (
        "Unable to parse the capability record of pin 1. Expected an even number of (mode, resolution) bytes, but "
        "encountered 3 bytes: [1, 1, 2]."
    )
    with pytest.raises(ConversionFailure, match=error_format(message)):
        CapabilityResponse.from_payload(bytes([0, 1, 0x7F, 1, 1, 2, 0x7F]))

    with pytest.raises(ParseError):
        CapabilityResponse.from_payload(bytes([5, 1, 0x7F]))


def test_analog_mapping_response_parsing():
    """Verifies that every byte other than 0x7F marks the pin with the matching index as analog."""
    response = AnalogMappingResponse.from_payload(bytes([0x7F, 0x7F, 0, 1, 0x7F, 2]))
    assert response.supported_analog_pins == (2, 3, 5)
    assert AnalogMappingResponse.from_payload(b"").supported_analog_pins == ()


def test_report_firmware_parsing():
    """Verifies that the firmware version is formatted in base 8 and null characters are removed from the name."""
    response = ReportFirmware.from_payload(bytes([2, 9]) + b"Std\x00Firmata\x00")
    assert response.version == "2.11"
    assert response.name == "StdFirmata"


def test_report_firmware_errors():
    """Verifies the error-handling of the firmware report parser."""
    message = "Unable to parse the firmware report. Expected at least 2 version bytes, but encountered 1 bytes."
    with pytest.raises(ConversionFailure, match=error_format(message)):
        ReportFirmware.from_payload(bytes([2]))

    with pytest.raises(Utf8Error):
        ReportFirmware.from_payload(bytes([2, 5, 0xFF, 0xFE]))


def test_i2c_reply_parsing():
    """Verifies that the I2C reply address, register, and data values are combined from 7-bit byte pairs."""
    reply = parse_i2c_reply(bytes([0x48, 0x00, 0x01, 0x01, 0x7F, 0x01, 0x05, 0x00, 0x03]))
    assert reply == I2CReply(address=0x48, register=0x81, data=(0xFF, 0x05))

    # Data processing stops at the END_SYSEX byte.
    reply = parse_i2c_reply(bytes([0x01, 0x00, 0x00, 0x00, 0x02, 0x00, 0xF7, 0x00]))
    assert reply.data == (0x02,)

    with pytest.raises(ConversionFailure):
        parse_i2c_reply(bytes([0x01, 0x00, 0x00]))


def test_parse_frame_fixed_size_messages():
    """Verifies parsing of analog, digital, and protocol version frames."""
    assert parse_frame(bytes([0xE2, 0x00, 0x02])) == AnalogMessage(pin=PinId.analog(2), value=512)
    assert parse_frame(bytes([0x91, 0x05, 0x00])) == DigitalMessage(port=1, value=5)
    assert parse_frame(bytes([0xF9, 0x02, 0x0A])) == ProtocolVersion("2.12")


def test_parse_frame_sysex_messages():
    """Verifies that sysex frames are dispatched on their command byte."""
    message = parse_frame(bytes([0xF0, 0x6A, 0x7F, 0x00, 0xF7]))
    assert message == AnalogMappingResponse((1,))
    assert message_kind(message) == MessageKind.ANALOG_MAPPING_RESPONSE

    message = parse_frame(bytes([0xF0, 0x77, 0x10, 0x00, 0x00, 0x00, 0xF7]))
    assert message == I2CReply(address=0x10, register=0, data=())
    assert message_kind(message) == MessageKind.I2C_REPLY


def test_parse_frame_errors():
    """Verifies the error-handling of the parse_frame() function."""
    with pytest.raises(ParseError) as error:
        parse_frame(bytes([0xF0, 0x55, 0x01, 0xF7]))
    assert error.value.raw == bytes([0x55, 0x01])

    message = "Unable to parse the sysex message. Expected at least the sysex command byte, but the message is empty."
    with pytest.raises(OutOfRangeError, match=error_format(message)):
        parse_frame(bytes([0xF0, 0xF7]))

    with pytest.raises(ParseError):
        parse_frame(bytes([0x10, 0x00, 0x00]))

    with pytest.raises(ConversionFailure):
        parse_frame(bytes([0xE0, 0x00]))
