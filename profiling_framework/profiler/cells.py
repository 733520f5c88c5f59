"""
Typed cell values for row snapshots.

Rows read from arbitrary tables have arbitrary shapes. Instead of passing
opaque driver objects around, every value is wrapped in a Cell tagged with
one of a closed set of kinds so statistics and serialization code can match
on the kind instead of probing types.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping

import numpy as np
import pandas as pd


class CellKind(Enum):
    """Kinds of values a row snapshot can hold."""
    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Cell:
    """A single tagged value."""
    kind: CellKind
    value: Any = None

    @classmethod
    def from_value(cls, value: Any) -> "Cell":
        """
        Wrap a driver value.

        bool is checked before int (bool is an int subclass); NaN and NaT
        become NULL; bytes and unknown objects fall back to TEXT.
        """
        if value is None:
            return NULL_CELL
        if isinstance(value, (bool, np.bool_)):
            return cls(CellKind.BOOLEAN, bool(value))
        if isinstance(value, (int, np.integer)):
            return cls(CellKind.INTEGER, int(value))
        if isinstance(value, (float, np.floating, Decimal)):
            number = float(value)
            if math.isnan(number):
                return NULL_CELL
            return cls(CellKind.FLOAT, number)
        if value is pd.NaT:
            return NULL_CELL
        if isinstance(value, (datetime, date, time)):
            return cls(CellKind.DATE, value)
        if isinstance(value, str):
            return cls(CellKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(CellKind.TEXT, bytes(value).hex())
        return cls(CellKind.TEXT, str(value))

    @property
    def is_null(self) -> bool:
        return self.kind is CellKind.NULL

    def as_float(self) -> float:
        """Numeric view of INTEGER, FLOAT and BOOLEAN cells."""
        if self.kind in (CellKind.INTEGER, CellKind.FLOAT, CellKind.BOOLEAN):
            return float(self.value)
        raise TypeError(f"Cell of kind {self.kind.value} has no numeric value")

    def to_text(self) -> str:
        """Display form used for top values and pattern samples."""
        if self.kind is CellKind.NULL:
            return ""
        if self.kind is CellKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind is CellKind.DATE:
            return self.value.isoformat()
        if self.kind is CellKind.FLOAT and float(self.value).is_integer():
            return str(int(self.value))
        return str(self.value)

    def to_json(self) -> Any:
        """JSON-friendly value (dates as ISO strings)."""
        if self.kind is CellKind.DATE:
            return self.value.isoformat()
        return self.value


NULL_CELL = Cell(CellKind.NULL)


def row_to_cells(row: Mapping[str, Any]) -> Dict[str, Cell]:
    """Convert a driver row mapping into an ordered snapshot of cells."""
    return {str(name): Cell.from_value(value) for name, value in row.items()}


def cells_to_json(cells: Mapping[str, Cell]) -> Dict[str, Any]:
    return {name: cell.to_json() for name, cell in cells.items()}
