"""
Millimetre to device-pixel conversion.

OFD coordinates are millimetres. A UnitConverter carries the display scale
explicitly; there is no module-level "current scale" and every conversion
goes through the converter the caller passes in.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_SCALE_LIMIT = 10.0
MIN_SCALE = 1.0


class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float

    model_config = ConfigDict(frozen=True)


class UnitConverter(BaseModel):
    """
    Immutable conversion context.

    scale is the number of device pixels per millimetre.
    """

    scale: float = Field(MIN_SCALE, description="Pixels per millimetre")
    max_scale: float = Field(MAX_SCALE_LIMIT, description="Upper zoom bound")

    model_config = ConfigDict(frozen=True)

    @field_validator("max_scale")
    @classmethod
    def cap_max_scale(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"max_scale must be positive, got {v}")
        return min(v, MAX_SCALE_LIMIT)

    @field_validator("scale")
    @classmethod
    def scale_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"scale must be positive, got {v}")
        return v

    def with_scale(self, scale: float) -> "UnitConverter":
        """Return a converter with scale clamped to [1, max_scale]."""
        clamped = max(scale, MIN_SCALE)
        clamped = min(clamped, self.max_scale)
        return UnitConverter(scale=clamped, max_scale=self.max_scale)

    def to_pixels(self, millimetres: float) -> float:
        return millimetres * self.scale

    def box(self, text: str) -> Box:
        """Convert an OFD box attribute ("x y width height") to pixels."""
        values = [float(v) for v in text.split()]
        if len(values) != 4:
            raise ValueError(f"Box needs 4 values, got {text!r}")
        x, y, width, height = (self.to_pixels(v) for v in values)
        return Box(x=x, y=y, width=width, height=height)


def parse_delta(text: str) -> List[float]:
    """
    Expand a DeltaX/DeltaY attribute.

    "g N v" repeats v N times; plain numbers are taken as is:
        "g 3 1.5 2" -> [1.5, 1.5, 1.5, 2.0]
    """
    tokens = (text or "").split()
    values: List[float] = []

    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token == "g":
            if index + 2 >= len(tokens):
                raise ValueError(f"Truncated g-run in delta {text!r}")
            count = int(float(tokens[index + 1]))
            value = float(tokens[index + 2])
            values.extend([value] * count)
            index += 3
            continue
        values.append(float(token))
        index += 1

    return values
