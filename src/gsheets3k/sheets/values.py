"""
Reshaping of the 2-D cell data a values.get() hands back.

The service returns rows as lists of untyped scalars.  Rows are ragged,
trailing empty cells are simply missing rather than present as "" or None,
so nothing here assumes the block is rectangular.
"""
from enum import Enum
from collections.abc import Iterable, Sequence

from ..exceptions import TypeMismatch, IndexOutOfRange

CellValue = str|int|float|bool|None
Rows = Sequence[Sequence[CellValue]]

class CellType(Enum):
    """The kinds of scalar a cell can hold."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    EMPTY = "empty"

def cell_type(value: CellValue) -> CellType:
    """
    Classify a cell value.
    bool is checked before number as it is an int subclass.
    """
    if value is None:
        return CellType.EMPTY
    if isinstance(value, bool):
        return CellType.BOOLEAN
    if isinstance(value, str):
        return CellType.STRING
    if isinstance(value, (int, float)):
        return CellType.NUMBER
    raise TypeMismatch(f"Unsupported cell value type: {type(value).__name__}")

def validate_rows(rows: Iterable[Iterable[CellValue]]) -> list[list[CellValue]]:
    """
    Copy rows into lists, checking every cell is a supported scalar.
    Use before writing so a bad value fails here rather than at the service.
    """
    checked = []
    for r, row in enumerate(rows):
        if isinstance(row, (str, bytes)) or not isinstance(row, Iterable):
            raise TypeMismatch(f"Row {r} is not a sequence of cells")
        out = []
        for c, cell in enumerate(row):
            try:
                cell_type(cell)
            except TypeMismatch as e:
                raise TypeMismatch(f"Row {r}, column {c}: {e}") from None
            out.append(cell)
        checked.append(out)
    return checked

def flatten_to_column_sequence(rows: Rows) -> list[CellValue]:
    """
    All values of the range in a single list.
    Despite the name this is a row-major flatten, not a transpose:
    [[a, b], [c]] -> [a, b, c].  Request the range with majorDimension
    COLUMNS for column ordering.
    """
    return [cell for row in rows for cell in row]

def flatten_to_string_sequence(rows: Rows, lowercase: bool = False) -> list[str]:
    """
    Row-major flatten where every cell must be a string.
    """
    values = []
    for r, row in enumerate(rows):
        for c, cell in enumerate(row):
            if not isinstance(cell, str):
                raise TypeMismatch(f"Row {r}, column {c} is {cell_type(cell).value}, not a string")
            values.append(cell)
    if lowercase:
        values = [v.lower() for v in values]
    return values

def group_by_column(rows: Rows, key_column: int) -> dict[CellValue, list[list[CellValue]]]:
    """
    Group rows by the value in key_column.  The key cell is taken out of
    each row and the rest of the row, in order, is added to the list for
    that key.  Keys need not be unique, groups keep the order rows arrived in.

    [["a",1,2],["b",3,4],["a",5,6]], 0 -> {"a": [[1,2],[5,6]], "b": [[3,4]]}

    Python hashes True like 1, so a key column holding both a boolean and
    an equal number raises TypeMismatch instead of silently merging the two
    groups.  1 and 1.0 are both numbers and share a group.
    """
    if key_column < 0:
        raise IndexOutOfRange(f"Key column {key_column} must not be negative")
    groups: dict[CellValue, list[list[CellValue]]] = {}
    kinds: dict[CellValue, CellType] = {}
    for r, row in enumerate(rows):
        if key_column >= len(row):
            raise IndexOutOfRange(f"Key column {key_column} out of range for row {r} of length {len(row)}")
        key = row[key_column]
        kind = cell_type(key)
        seen = kinds.setdefault(key, kind)
        if seen is not kind:
            raise TypeMismatch(f"Row {r}, column {key_column}: {kind.value} key {key!r} "
                               f"collides with an equal {seen.value} key")
        cells = [cell for i, cell in enumerate(row) if i != key_column]
        groups.setdefault(key, []).append(cells)
    return groups
