"""This file contains the test functions that verify the functionality and error-handling of the BoardIO driver and
its BoardHandle and StateSubscriber helpers.

Each test runs its scenario via asyncio.run(). The reader half of the byte-stream is an asyncio.StreamReader fed
manually, and the writer half is the StreamMock class.
"""

import asyncio

import pytest
from ataraxis_base_utilities import error_format

from ataraxis_firmata.board_io import COMMAND_QUEUE_SIZE, BoardIO, open_serial
from ataraxis_firmata.exceptions import StateError, WrongTypeError, TransportIOError, ChannelClosedError
from ataraxis_firmata.board_state import PinId, PinMode, I2CReply, BoardState
from ataraxis_firmata.communication import AnalogWrite, DigitalWrite
from ataraxis_firmata.helper_modules import StreamMock

# Capability response for a board with 4 pins. Pins 0 and 1 are digital, pins 2 and 3 support the analog mode.
CAPABILITY = bytes([0xF0, 0x6C, 0, 1, 1, 1, 0x7F, 0, 1, 1, 1, 3, 8, 0x7F, 2, 10, 0x7F, 2, 10, 0x7F, 0xF7])
MAPPING = bytes([0xF0, 0x6A, 0x7F, 0x7F, 0x00, 0x01, 0xF7])
FIRMWARE = bytes([0xF0, 0x79, 0x02, 0x05, ord("S"), 0x00, ord("t"), 0x00, ord("d"), 0x00, 0xF7])
HANDSHAKE = bytes([0xF0, 0x79, 0xF7, 0xF0, 0x6B, 0xF7, 0xF0, 0x69, 0xF7])


async def _bootstrapped_driver() -> tuple[BoardIO, asyncio.StreamReader, StreamMock]:
    """Creates a driver connected to the mock byte-stream and bootstraps its board state."""
    reader = asyncio.StreamReader()
    writer = StreamMock()
    driver = BoardIO(reader, writer)
    reader.feed_data(FIRMWARE + CAPABILITY + MAPPING)
    await driver.generate_board_state()
    writer.tx_buffer = b""
    writer.drain_count = 0
    return driver, reader, writer


def test_generate_board_state():
    """Verifies that the handshake sends all queries in one write and publishes the bootstrapped state."""

    async def scenario():
        reader = asyncio.StreamReader()
        writer = StreamMock()
        driver = BoardIO(reader, writer)
        subscriber = driver.subscribe()
        assert not subscriber.has_changed()

        # Responses are accepted in any order and split across reads. Unrelated messages are ignored.
        reader.feed_data(MAPPING + bytes([0xE0, 0x01]))
        reader.feed_data(bytes([0x00]) + CAPABILITY + FIRMWARE[:5])
        reader.feed_data(FIRMWARE[5:])
        state = await asyncio.wait_for(driver.generate_board_state(), timeout=1)

        assert writer.tx_buffer == HANDSHAKE
        assert writer.drain_count == 1
        assert len(state.pins) == 4
        assert state.pin_states.analog_pin_start == 2
        assert state.firmware_name == "Std"
        assert state.firmware_version == "2.5"
        assert subscriber.has_changed()
        assert subscriber.borrow() == state
        assert await subscriber.changed() == state
        assert not subscriber.has_changed()

    asyncio.run(scenario())


def test_generate_board_state_errors():
    """Verifies that a failed handshake leaves the published board state unchanged."""

    async def scenario():
        reader = asyncio.StreamReader()
        driver = BoardIO(reader, StreamMock())
        reader.feed_data(FIRMWARE + CAPABILITY + bytes([0xF0, 0x6A, 0x7F, 0x7F, 0x7F, 0x7F, 0x7F, 0x00, 0xF7]))
        with pytest.raises(StateError):
            await driver.generate_board_state()
        assert driver.subscribe().borrow() == BoardState()

        reader = asyncio.StreamReader()
        driver = BoardIO(reader, StreamMock())
        reader.feed_data(FIRMWARE)
        reader.feed_eof()
        message = "Unable to read data from the board. The byte-stream reached the end of the stream."
        with pytest.raises(TransportIOError, match=error_format(message)):
            await driver.generate_board_state()

    asyncio.run(scenario())


def test_run_applies_messages():
    """Verifies that the driver applies the received messages in order and publishes a snapshot after each one."""

    async def scenario():
        driver, reader, writer = await _bootstrapped_driver()
        handle = driver.get_board()
        subscriber = handle.subscribe()
        task = asyncio.create_task(driver.run())

        reader.feed_data(bytes([0xE0, 0x10, 0x00]))
        state = await asyncio.wait_for(subscriber.changed(), timeout=1)
        assert state.pins[2].value == 0x10
        assert handle.state == state

        reader.feed_data(bytes([0xF0, 0x77, 0x48, 0x00, 0x01, 0x00, 0x05, 0x00, 0xF7]))
        state = await asyncio.wait_for(subscriber.changed(), timeout=1)
        assert state.last_i2c_reply == I2CReply(address=0x48, register=1, data=(5,))

        await handle.close()
        await asyncio.wait_for(task, timeout=1)

        # The driver stopped publishing, so waiting for further changes fails.
        with pytest.raises(ChannelClosedError):
            await subscriber.changed()

    asyncio.run(scenario())


def test_run_writes_commands_in_order():
    """Verifies that commands from all handles are written in queue order and mirrored into the published state."""

    async def scenario():
        driver, reader, writer = await _bootstrapped_driver()
        subscriber = driver.subscribe()

        async with driver.get_board() as handle:
            other = handle.clone()
            await handle.set_pin_mode(PinId.digital(1), PinMode.OUTPUT)
            await other.digital_write(PinId.digital(1), True)
            await handle.analog_write(PinId.analog(0), 300)
            await other.close()
            task = asyncio.create_task(driver.run())

        await asyncio.wait_for(task, timeout=1)

        assert writer.tx_buffer == bytes([0xF4, 0x01, 0x01, 0xF5, 0x01, 0x01, 0xE2, 0x2C, 0x01])
        assert writer.drain_count == 3

        # The final snapshot remains available after the driver stops.
        state = await subscriber.changed()
        assert state.pins[1].mode == PinMode.OUTPUT
        assert state.pins[1].value == 1
        assert state.pins[2].value == 300

    asyncio.run(scenario())


def test_handle_commands():
    """Verifies the bytes written for the remaining BoardHandle command methods."""

    async def scenario():
        driver, reader, writer = await _bootstrapped_driver()
        task = asyncio.create_task(driver.run())
        async with driver.get_board() as handle:
            await handle.report_digital(PinId.digital(1), True)
            await handle.report_analog(PinId.analog(1), True)
            await handle.sampling_interval(100)
            await handle.query_firmware()
            await handle.query_capabilities()
            await handle.query_analog_mapping()
            await handle.string_write("ok")
            await handle.i2c_config(0)
            await handle.i2c_read(0x48, 2)
            await handle.i2c_write(0x48, [1])
            await handle.send(AnalogWrite(pin=3, value=1))
        await asyncio.wait_for(task, timeout=1)

        expected = [0xD1, 0x01, 0xC4, 0x01, 0xF0, 0x7A, 0x64, 0x00, 0xF7]
        expected += HANDSHAKE
        expected += [0xF0, 0x71, 0x6F, 0x00, 0x6B, 0x00, 0xF7]
        expected += [0xF0, 0x78, 0x00, 0x00, 0xF7]
        expected += [0xF0, 0x76, 0x48, 0x08, 0x02, 0x00, 0xF7]
        expected += [0xF0, 0x76, 0x48, 0x00, 0x01, 0x00, 0xF7]
        expected += [0xE3, 0x01, 0x00]
        assert writer.tx_buffer == bytes(expected)

    asyncio.run(scenario())


def test_handle_errors():
    """Verifies that handles reject pin identifiers of the wrong kind and commands sent after closing."""

    async def scenario():
        driver, reader, writer = await _bootstrapped_driver()
        handle = driver.get_board()

        with pytest.raises(WrongTypeError):
            await handle.report_digital(PinId.analog(0), True)
        with pytest.raises(WrongTypeError):
            await handle.report_analog(PinId.digital(0), True)

        clone = handle.clone()
        await handle.close()
        # Closing a handle twice has no effect.
        await handle.close()

        message = "Unable to send the command to the board. The board handle is closed."
        with pytest.raises(ChannelClosedError, match=error_format(message)):
            await handle.send(DigitalWrite(pin=1, level=True))

        # The clone keeps the driver running.
        task = asyncio.create_task(driver.run())
        await asyncio.sleep(0.01)
        assert not task.done()

        await clone.close()
        await asyncio.wait_for(task, timeout=1)
        assert writer.tx_buffer == b""

        with pytest.raises(ChannelClosedError):
            driver.get_board()

    asyncio.run(scenario())


def test_run_errors():
    """Verifies that transport failures stop the driver and close the command and state channels."""

    async def scenario():
        driver, reader, writer = await _bootstrapped_driver()
        handle = driver.get_board()
        subscriber = driver.subscribe()

        reader.feed_data(bytes([0x90, 0x01, 0x00]))
        reader.feed_eof()
        with pytest.raises(TransportIOError):
            await asyncio.wait_for(driver.run(), timeout=1)

        # The message received before the end of the stream is applied and published.
        state = await subscriber.changed()
        assert state.pins[0].value == 1

        with pytest.raises(ChannelClosedError):
            await subscriber.changed()
        with pytest.raises(ChannelClosedError):
            await handle.digital_write(PinId.digital(0), True)

    asyncio.run(scenario())


def test_command_queue_backpressure():
    """Verifies that senders are suspended while the command queue is full and resume as the driver drains it."""

    async def scenario():
        reader = asyncio.StreamReader()
        writer = StreamMock()
        driver = BoardIO(reader, writer)
        handle = driver.get_board()

        for value in range(COMMAND_QUEUE_SIZE):
            await handle.send(AnalogWrite(pin=0, value=value))
        pending = asyncio.create_task(handle.send(AnalogWrite(pin=0, value=COMMAND_QUEUE_SIZE)))
        await asyncio.sleep(0.01)
        assert not pending.done()

        task = asyncio.create_task(driver.run())
        await asyncio.wait_for(pending, timeout=1)
        await handle.close()
        await asyncio.wait_for(task, timeout=1)

        expected = b"".join(bytes([0xE0, value, 0x00]) for value in range(COMMAND_QUEUE_SIZE + 1))
        assert writer.tx_buffer == expected
        assert writer.drain_count == COMMAND_QUEUE_SIZE + 1

    asyncio.run(scenario())


def test_suspended_send_fails_when_driver_stops():
    """Verifies that a sender suspended on the full command queue receives ChannelClosedError when the driver stops."""

    async def scenario():
        reader = asyncio.StreamReader()
        writer = StreamMock()
        driver = BoardIO(reader, writer)
        handle = driver.get_board()

        for _ in range(COMMAND_QUEUE_SIZE):
            await handle.send(DigitalWrite(pin=1, level=True))
        pending = asyncio.create_task(handle.send(DigitalWrite(pin=1, level=False)))
        await asyncio.sleep(0.01)
        assert not pending.done()

        # The closed stream fails the first write, which stops the driver.
        writer.close()
        with pytest.raises(TransportIOError):
            await asyncio.wait_for(driver.run(), timeout=1)

        message = (
            "Unable to send the command to the board. The board driver stopped before the command was accepted into "
            "the command queue."
        )
        with pytest.raises(ChannelClosedError, match=error_format(message)):
            await asyncio.wait_for(pending, timeout=1)

    asyncio.run(scenario())


def test_open_serial_error():
    """Verifies that open_serial() converts the serial port errors into TransportIOError."""
    with pytest.raises(TransportIOError):
        asyncio.run(open_serial("/dev/ataraxis-firmata-missing-port"))
