"""
Register map of the heat pump controller and the decoders for its values.

    HR addresses polled on every scrape, in table order
    Convention that temperatures are 0.1 degC per LSB (pseudo float16)
    decode: u16 register value -> int16 register value -> float
    pressures: scaled reading -> bar via a fixed linear transfer function
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Tuple

INT16_MAX = 0x7FFF
SCALE_DIVISOR = 10.0  # 0.1 unit / LSB


class DecodeKind(Enum):
    SIGNED_INT16 = "signed_int16"
    PSEUDO_FLOAT16 = "pseudo_float16"
    LOW_PRESSURE = "low_pressure"
    HIGH_PRESSURE = "high_pressure"


@dataclass(frozen=True)
class RegisterDefinition:
    address: int
    name: str
    description: str
    kind: DecodeKind
    precision: int


# https://dimplex.atlassian.net/wiki/spaces/DW/pages/2873393288/NWPM+Modbus+TCP
REGISTER_MAP: Tuple[RegisterDefinition, ...] = (
    RegisterDefinition(1, "temperature_outdoors", "temperature, outdoor sensor",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(2, "temperature_return_heating", "temperature, heating return",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(53, "temperature_heating_return_desired", "desired temperature, heating return",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(3, "temperature_domestic_hot_water", "temperature, domestic hot water",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(58, "temperature_domestic_hot_water_desired", "desired temperature, domestic hot water",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(5, "temperature_flow", "temperature, flow",
                       DecodeKind.PSEUDO_FLOAT16, 2),
    RegisterDefinition(6, "pressure_low", "pressure, low",
                       DecodeKind.LOW_PRESSURE, 1),
    RegisterDefinition(8, "pressure_high", "pressure, high",
                       DecodeKind.HIGH_PRESSURE, 1),
    RegisterDefinition(103, "operating_status", "status message code: 2=heating 4=hot_water 10=defrost",
                       DecodeKind.SIGNED_INT16, 0),
)


def u16_to_int16(x: int) -> int:
    x &= 0xFFFF
    return x - 0x10000 if x >= 0x8000 else x


def low_pressure(nd: float) -> float:
    """Scaled low pressure sensor reading -> bar."""
    return ((((nd * 10) - 100) * 173) / 800) / 10


def high_pressure(hd: float) -> float:
    """Scaled high pressure sensor reading -> bar."""
    return ((((hd * 10) - 100) * 345) / 800) / 10


def _round(num: Decimal) -> int:
    # ties go away from zero
    return int(num + Decimal(math.copysign(0.5, num)))


def fixed(num: float, precision: int) -> float:
    """Round ``num`` to ``precision`` decimal digits, half away from zero.

    The value is taken at its shortest decimal representation, so
    ``fixed(1.005, 2)`` is ``1.01`` even though the binary double sits
    just below the tie.
    """
    output = Decimal(10) ** precision
    return float(_round(Decimal(repr(float(num))) * output) / output)
