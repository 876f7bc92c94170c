"""
Path mini-language decoder.

OFD AbbreviatedData is a sequence of command letters each followed by a
fixed number of numeric operands. Upper-case letters are absolute and
lower-case letters are relative. Operands are kept exactly as declared:
relative coordinates are not resolved and arcs are not flattened, both
are rendering-time concerns.

Legacy producers emit an older command set that overlaps the modern one:
    S x y            start of a subpath (a move)
    B x1 y1 ... y3   cubic Bezier
    C                close (no operands)
These are disambiguated by the operand count that follows the letter, so
"M 0 0 L 100 100 B" decodes to move, line, close. B or C followed by a
full run of six operands is a cubic Bezier; with one to five operands it
is still a close and the operands are dropped.

Unknown command letters are skipped together with the numbers that follow
them; the scan resynchronizes at the next command letter. Commands whose
operands overflow to infinity are skipped as well.
"""

from __future__ import annotations

import logging
import math
import re
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    MOVE_TO = "move_to"
    LINE_TO = "line_to"
    HORIZONTAL_LINE_TO = "horizontal_line_to"
    VERTICAL_LINE_TO = "vertical_line_to"
    CUBIC_BEZIER = "cubic_bezier"
    SMOOTH_CUBIC_BEZIER = "smooth_cubic_bezier"
    QUADRATIC_BEZIER = "quadratic_bezier"
    SMOOTH_QUADRATIC = "smooth_quadratic"
    ARC = "arc"
    CLOSE = "close"


OPERAND_COUNT: Dict[OperationKind, int] = {
    OperationKind.MOVE_TO: 2,
    OperationKind.LINE_TO: 2,
    OperationKind.HORIZONTAL_LINE_TO: 1,
    OperationKind.VERTICAL_LINE_TO: 1,
    OperationKind.CUBIC_BEZIER: 6,
    OperationKind.SMOOTH_CUBIC_BEZIER: 4,
    OperationKind.QUADRATIC_BEZIER: 4,
    OperationKind.SMOOTH_QUADRATIC: 2,
    OperationKind.ARC: 7,
    OperationKind.CLOSE: 0,
}

# Letters whose meaning does not depend on operand count.
_SIMPLE_COMMANDS: Dict[str, OperationKind] = {
    "M": OperationKind.MOVE_TO,
    "L": OperationKind.LINE_TO,
    "H": OperationKind.HORIZONTAL_LINE_TO,
    "V": OperationKind.VERTICAL_LINE_TO,
    "Q": OperationKind.QUADRATIC_BEZIER,
    "T": OperationKind.SMOOTH_QUADRATIC,
    "A": OperationKind.ARC,
    "Z": OperationKind.CLOSE,
}

# Canonical letter per kind, used when encoding.
_CANONICAL_LETTER: Dict[OperationKind, str] = {
    OperationKind.MOVE_TO: "M",
    OperationKind.LINE_TO: "L",
    OperationKind.HORIZONTAL_LINE_TO: "H",
    OperationKind.VERTICAL_LINE_TO: "V",
    OperationKind.CUBIC_BEZIER: "C",
    OperationKind.SMOOTH_CUBIC_BEZIER: "S",
    OperationKind.QUADRATIC_BEZIER: "Q",
    OperationKind.SMOOTH_QUADRATIC: "T",
    OperationKind.ARC: "A",
    OperationKind.CLOSE: "Z",
}

_TOKEN = re.compile(r"[A-Za-z]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class DrawingOperation(BaseModel):
    """One decoded path command with its operands as declared."""

    kind: OperationKind
    relative: bool = False
    operands: Tuple[float, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def operand_count_matches_kind(self):
        expected = OPERAND_COUNT[self.kind]
        if len(self.operands) != expected:
            raise ValueError(
                f"{self.kind.value} takes {expected} operands, "
                f"got {len(self.operands)}"
            )
        if not all(math.isfinite(v) for v in self.operands):
            raise ValueError(f"{self.kind.value} operands must be finite")
        return self

    @property
    def points(self) -> List[Tuple[float, float]]:
        """Operands as (x, y) pairs. Not meaningful for H, V and arcs."""
        ops = self.operands
        return [(ops[i], ops[i + 1]) for i in range(0, len(ops) - 1, 2)]


def _tokenize(command: str) -> List[str]:
    return _TOKEN.findall(command)


def _classify(
    letter: str, operands: Sequence[float]
) -> Tuple[OperationKind, Tuple[float, ...]] | None:
    """Pick the operation for a command letter given its available operands."""
    upper = letter.upper()

    if upper in _SIMPLE_COMMANDS:
        kind = _SIMPLE_COMMANDS[upper]
        needed = OPERAND_COUNT[kind]
        if len(operands) < needed:
            return None
        return kind, tuple(operands[:needed])

    if upper == "S":
        if len(operands) >= 4:
            return OperationKind.SMOOTH_CUBIC_BEZIER, tuple(operands[:4])
        if len(operands) >= 2:
            return OperationKind.MOVE_TO, tuple(operands[:2])
        return None

    if upper in ("B", "C"):
        if len(operands) >= 6:
            return OperationKind.CUBIC_BEZIER, tuple(operands[:6])
        return OperationKind.CLOSE, ()

    return None


def decode_path(command: str) -> List[DrawingOperation]:
    """Decode an AbbreviatedData string into drawing operations."""
    tokens = _tokenize(command or "")
    operations: List[DrawingOperation] = []

    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1

        if not token.isalpha():
            logger.debug("Skipping stray operand %s in path data", token)
            continue

        operands: List[float] = []
        while index < len(tokens) and not tokens[index].isalpha():
            operands.append(float(tokens[index]))
            index += 1

        decoded = _classify(token, operands)
        if decoded is None:
            logger.debug(
                "Skipping path command %s with %d operands",
                token,
                len(operands),
            )
            continue

        kind, values = decoded
        if not all(math.isfinite(v) for v in values):
            logger.debug(
                "Skipping path command %s with non-finite operands", token
            )
            continue

        legacy_close = kind is OperationKind.CLOSE and token.upper() in "BC"
        if legacy_close and operands:
            logger.debug(
                "Legacy %s read as close; dropping %d operands",
                token,
                len(operands),
            )
        elif len(values) < len(operands):
            logger.debug(
                "Ignoring %d surplus operands after %s",
                len(operands) - len(values),
                token,
            )

        operations.append(
            DrawingOperation(
                kind=kind,
                relative=token.islower(),
                operands=values,
            )
        )

    return operations


def _format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return repr(value)


def encode_path(operations: Sequence[DrawingOperation]) -> str:
    """
    Serialize operations back to AbbreviatedData.

    The output uses the modern command set (close is "Z", cubic is "C" with
    six operands) so it decodes back to the same operation sequence.
    """
    parts: List[str] = []
    for op in operations:
        letter = _CANONICAL_LETTER[op.kind]
        parts.append(letter.lower() if op.relative else letter)
        parts.extend(_format_number(v) for v in op.operands)
    return " ".join(parts)
