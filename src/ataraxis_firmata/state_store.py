"""This module provides the functions that compute new board states from the messages exchanged with the board.

All functions in this module are pure: they never modify the input BoardState and return a new instance that reflects
the applied message. This allows the engines to publish each computed state as an independent snapshot and to discard
a failed update without leaving the live state partially modified.
"""

from dataclasses import replace

from ataraxis_base_utilities import console

from .exceptions import StateError, UninitializedError
from .board_state import PinMode, PinStates, BoardState
from .communication import (
    AnalogWrite,
    SetPinMode,
    DigitalWrite,
    AnalogMessage,
    DigitalMessage,
    ReportFirmware,
    OutgoingCommand,
    ProtocolVersion,
    IncomingMessage,
    CapabilityResponse,
    AnalogMappingResponse,
)


def map_analog_pins(pin_states: PinStates, analog_pins: tuple[int, ...]) -> PinStates:
    """Flags every listed physical pin as analog and updates the analog pin offset.

    Flagging is idempotent: pins that are already analog stay analog, and applying the same list twice produces the
    same PinStates. The analog pin offset is set to the lowest analog-flagged physical pin number.

    Args:
        pin_states: The PinStates to update.
        analog_pins: The physical numbers of the pins to flag as analog.

    Returns:
        The updated PinStates instance.

    Raises:
        StateError: If any listed pin number is not smaller than the number of known pins.
    """
    pin_count = len(pin_states.pins)
    invalid = [index for index in analog_pins if not 0 <= index < pin_count]
    if invalid:
        message = (
            f"Unable to map analog pins. Expected all analog pin numbers to be smaller than the number of board "
            f"pins ({pin_count}), but encountered {invalid}."
        )
        console.error(message=message, error=StateError)
        # Fallback to appease mypy
        raise StateError(message)  # pragma: no cover

    flagged = set(analog_pins)
    pins = tuple(replace(pin, analog=True) if index in flagged else pin for index, pin in enumerate(pin_states.pins))
    updated = PinStates(pins=pins)
    return replace(updated, analog_pin_start=min(updated.analog_indices(), default=0))


def _require_pins(state: BoardState, message_name: str) -> None:
    """Raises UninitializedError if the board pins have not been initialized yet."""
    if state.pins:
        return
    message = (
        f"Unable to apply the {message_name} message. Expected the board pins to be initialized via the capability "
        f"query, but the board state contains no pins."
    )
    console.error(message=message, error=UninitializedError)
    # Fallback to appease mypy
    raise UninitializedError(message)  # pragma: no cover


def apply_message(state: BoardState, message: IncomingMessage) -> BoardState:
    """Computes the board state that results from applying the input message to the input state.

    Args:
        state: The current board state.
        message: The message received from the board.

    Returns:
        The new board state. If the message does not change the state, the input state may be returned as-is.

    Raises:
        UninitializedError: If an analog, digital, or analog mapping message arrives before the board pins are known,
            or if an analog message addresses a pin that is not analog.
        StateError: If an analog mapping message references pins that do not exist.
    """
    pin_states = state.pin_states

    if isinstance(message, AnalogMessage):
        _require_pins(state, "analog")
        index = pin_states.resolve(message.pin)
        if not (0 <= index < len(pin_states.pins) and pin_states.pins[index].analog):
            text = (
                f"Unable to apply the analog message. Expected {message.pin!r} to resolve to an analog pin, but it "
                f"resolved to pin {index}, which is not mapped to an analog channel."
            )
            console.error(message=text, error=UninitializedError)
            # Fallback to appease mypy
            raise UninitializedError(text)  # pragma: no cover
        pin = replace(pin_states.pins[index], value=message.value)
        return replace(state, pin_states=pin_states.with_pin(index, pin))

    if isinstance(message, DigitalMessage):
        _require_pins(state, "digital")
        pins = list(pin_states.pins)
        for bit in range(8):
            index = 8 * message.port + bit
            if index < len(pins) and pins[index].mode == PinMode.INPUT:
                pins[index] = replace(pins[index], value=(message.value >> bit) & 0x01)
        return replace(state, pin_states=replace(pin_states, pins=tuple(pins)))

    if isinstance(message, AnalogMappingResponse):
        _require_pins(state, "analog mapping")
        return replace(state, pin_states=map_analog_pins(pin_states, message.supported_analog_pins))

    if isinstance(message, CapabilityResponse):
        return replace(state, pin_states=PinStates(pins=message.pins))

    if isinstance(message, ReportFirmware):
        return replace(state, firmware_name=message.name, firmware_version=message.version)

    if isinstance(message, ProtocolVersion):
        return replace(state, protocol_version=message.version)

    # The only remaining message type is the I2C reply.
    return replace(state, last_i2c_reply=message)


def apply_command(state: BoardState, command: OutgoingCommand) -> BoardState:
    """Mirrors the effect of the input command in the input state before the board confirms it.

    Only AnalogWrite, DigitalWrite, and SetPinMode commands change the state, and only when they address a known pin.
    All other commands return the input state unchanged.
    """
    pin_states = state.pin_states
    pin_count = len(pin_states.pins)

    if isinstance(command, AnalogWrite) and command.pin < pin_count:
        pin = replace(pin_states.pins[command.pin], value=command.value)
    elif isinstance(command, DigitalWrite) and command.pin < pin_count:
        pin = replace(pin_states.pins[command.pin], value=int(bool(command.level)))
    elif isinstance(command, SetPinMode) and command.pin < pin_count:
        pin = replace(pin_states.pins[command.pin], mode=command.mode)
    else:
        return state

    return replace(state, pin_states=pin_states.with_pin(command.pin, pin))


def bootstrap_state(
    state: BoardState,
    capability: CapabilityResponse,
    mapping: AnalogMappingResponse,
    firmware: ReportFirmware,
) -> BoardState:
    """Builds the board state produced by the bootstrap handshake.

    The pins reported by the capability response are flagged using the analog mapping response, and the result
    replaces the pins and the firmware identity of the input state in a single step.

    Args:
        state: The state that precedes the handshake. Its protocol version is carried over.
        capability: The capability response received during the handshake.
        mapping: The analog mapping response received during the handshake.
        firmware: The firmware report received during the handshake.

    Returns:
        The post-handshake board state.

    Raises:
        StateError: If the analog mapping references pins that the capability response does not report. The input
            state is not affected.
    """
    pin_states = map_analog_pins(PinStates(pins=capability.pins), mapping.supported_analog_pins)
    return replace(
        state,
        pin_states=pin_states,
        firmware_name=firmware.name,
        firmware_version=firmware.version,
    )
