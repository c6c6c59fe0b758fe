"""This module provides the immutable data structures used to describe the state of a Firmata-compatible board.

The board state is a tree of frozen dataclasses: BoardState stores the PinStates record and the firmware and protocol
identity strings, PinStates stores the ordered tuple of Pin records, and each Pin stores the ordered tuple of Mode
records it supports. Every change to the board state produces a new BoardState instance, so the instances exposed to
the callers of this library can never be modified in-place by the engine that tracks the live board state.
"""

from enum import Enum, IntEnum
from dataclasses import field, replace, dataclass

from ataraxis_base_utilities import console

from .exceptions import ParseError, OutOfRangeError


class PinMode(IntEnum):
    """Stores the pin mode (capability) codes used by the Firmata protocol.

    Each code is transmitted as a single byte when setting the pin mode and is received as part of the capability
    response records. The values of this enumeration have to match the codes used by the board firmware.
    """

    INPUT = 0
    """The pin acts as a digital input."""

    OUTPUT = 1
    """The pin acts as a digital output."""

    ANALOG = 2
    """The pin acts as an analog input (ADC)."""

    PWM = 3
    """The pin outputs a pulse-width-modulated signal."""

    SERVO = 4
    """The pin drives a hobby servo motor."""

    I2C = 6
    """The pin is used as an I2C data or clock line."""

    ONE_WIRE = 7
    """The pin is used as a OneWire bus."""

    STEPPER = 8
    """The pin drives a stepper motor."""

    ENCODER = 9
    """The pin reads a quadrature encoder channel."""

    SERIAL = 10
    """The pin is used as a hardware or software serial line."""

    PULLUP = 11
    """The pin acts as a digital input with the internal pull-up resistor enabled."""

    @classmethod
    def from_code(cls, code: int) -> "PinMode":
        """Returns the PinMode member that matches the input wire code.

        Args:
            code: The byte-code received from the board.

        Raises:
            ParseError: If the input code does not match any supported pin mode.
        """
        try:
            return cls(code)
        except ValueError:
            message = (
                f"Unable to resolve the pin mode code received from the board. Expected one of the supported "
                f"codes {[int(member) for member in cls]}, but encountered {code}."
            )
            console.error(message=message, error=ParseError)
            # Fallback to appease mypy
            raise ParseError(message, raw=bytes([code & 0xFF]))  # pragma: no cover


class PinKind(Enum):
    """Stores the supported pin addressing schemes."""

    ANALOG = "analog"
    """The index is an analog channel number that is offset by the analog pin start to get the physical pin."""

    DIGITAL = "digital"
    """The index is a digital pin number that is used as the physical pin number without changes."""

    RAW = "raw"
    """The index is the physical pin number."""


@dataclass(frozen=True)
class PinId:
    """Identifies a board pin by its addressing scheme and index.

    Use the analog(), digital() and raw() constructors to create instances of this class. PinId objects are resolved
    to physical pin numbers by the PinStates.resolve() method.
    """

    kind: PinKind
    """The addressing scheme used by the pin identifier."""
    index: int
    """The index of the pin within its addressing scheme."""

    @classmethod
    def analog(cls, index: int) -> "PinId":
        """Creates an identifier for the analog channel with the input index."""
        return cls(PinKind.ANALOG, index)

    @classmethod
    def digital(cls, index: int) -> "PinId":
        """Creates an identifier for the digital pin with the input index."""
        return cls(PinKind.DIGITAL, index)

    @classmethod
    def raw(cls, index: int) -> "PinId":
        """Creates an identifier for the physical pin with the input index."""
        return cls(PinKind.RAW, index)

    def __repr__(self) -> str:
        """Returns a string representation of the PinId object."""
        return f"PinId.{self.kind.value}({self.index})"


@dataclass(frozen=True)
class Mode:
    """Describes a single capability supported by a physical pin."""

    mode: PinMode
    """The supported pin mode."""
    resolution: int
    """The resolution, in bits, the pin offers when operating in this mode."""


@dataclass(frozen=True)
class Pin:
    """Stores the capabilities and the current state of a single physical pin."""

    modes: tuple[Mode, ...] = ()
    """The modes supported by the pin, in the order they were reported by the board."""
    analog: bool = False
    """Determines whether the pin is mapped to an analog channel."""
    value: int = 0
    """The last known 16-bit value of the pin."""
    mode: PinMode = PinMode.INPUT
    """The mode the pin currently operates in."""


@dataclass(frozen=True)
class PinStates:
    """Stores the ordered sequence of board pins and the offset used to resolve analog channel numbers.

    Notes:
        The position of each Pin inside the 'pins' tuple is the physical pin number. Every analog-flagged index has to
        be smaller than the number of pins.
    """

    pins: tuple[Pin, ...] = ()
    """The board pins, indexed by their physical number."""
    analog_pin_start: int = 0
    """The physical number of the first analog-mapped pin."""

    def resolve(self, pin_id: PinId) -> int:
        """Converts the input pin identifier into the physical pin number.

        Analog identifiers are offset by the analog_pin_start value; digital and raw identifiers are returned as-is.
        """
        if pin_id.kind is PinKind.ANALOG:
            return pin_id.index + self.analog_pin_start
        return pin_id.index

    def get(self, index: int) -> Pin:
        """Returns the Pin stored under the input physical number.

        Raises:
            OutOfRangeError: If the board does not have a pin with the input number.
        """
        if not 0 <= index < len(self.pins):
            message = (
                f"Unable to access pin {index}. Expected a physical pin number between 0 and {len(self.pins) - 1}, "
                f"but the board has {len(self.pins)} known pins."
            )
            console.error(message=message, error=OutOfRangeError)
            # Fallback to appease mypy
            raise OutOfRangeError(message)  # pragma: no cover
        return self.pins[index]

    def with_pin(self, index: int, pin: Pin) -> "PinStates":
        """Returns a new PinStates instance with the pin under the input physical number replaced by the input Pin."""
        pins = list(self.pins)
        pins[index] = pin
        return replace(self, pins=tuple(pins))

    def analog_indices(self) -> tuple[int, ...]:
        """Returns the physical numbers of all analog-flagged pins in ascending order."""
        return tuple(index for index, pin in enumerate(self.pins) if pin.analog)


@dataclass(frozen=True)
class I2CReply:
    """Stores the data received from an I2C device in response to a read request."""

    address: int
    """The 14-bit address of the I2C device that sent the reply."""
    register: int
    """The device register the data was read from."""
    data: tuple[int, ...] = ()
    """The received data values."""


@dataclass(frozen=True)
class BoardState:
    """Stores a snapshot of the board state.

    Instances of this class are never modified. The engines that track the board state replace their snapshot with a
    new instance every time they apply a received message.
    """

    pin_states: PinStates = field(default_factory=PinStates)
    """The board pins and the analog pin offset."""
    firmware_name: str = ""
    """The name of the firmware reported by the board."""
    firmware_version: str = ""
    """The version of the firmware reported by the board."""
    protocol_version: str = ""
    """The version of the Firmata protocol reported by the board."""
    last_i2c_reply: I2CReply | None = None
    """The most recent I2C reply received from the board."""

    @property
    def pins(self) -> tuple[Pin, ...]:
        """Returns the board pins, indexed by their physical number."""
        return self.pin_states.pins
