"""
Dataclass shapes for the Sheets v4 resources this client sends and receives.

Each class mirrors a REST resource, field names kept in the API's camelCase
so asdict() produces a body the discovery client accepts as is.  Responses
come back as nested dicts, so a nested field holds either its dataclass or
the raw dict and fixup() turns the dict into the dataclass.
"""
from dataclasses import dataclass, field, asdict
from typing import List

from ..resources import GoogleWorkSpaceResourceBase

class GoogleSheetsEnum():
    """
    Sheets enums travel as plain strings, these lookups accept the
    short spellings callers use and return the canonical value or "".
    """
    _VALID_DIMENSION_OPTIONS = {
        "ROWS": "ROWS",
        "R": "ROWS",
        "C": "COLUMNS",
        "COLS": "COLUMNS",
        "COLUMNS": "COLUMNS"
    }
    _VALID_VALUE_INPUT_OPTIONS = {
        "RAW": "RAW",
        "USER": "USER_ENTERED",
        "USER_ENTERED": "USER_ENTERED"
    }
    _VALID_INSERT_DATA_OPTIONS = {
        "OVERWRITE": "OVERWRITE",
        "INSERT": "INSERT_ROWS",
        "INSERT_ROWS": "INSERT_ROWS"
    }

    @classmethod
    def dimension(cls, dim: str) -> str:
        """https://developers.google.com/sheets/api/reference/rest/v4/Dimension"""
        return cls._VALID_DIMENSION_OPTIONS.get(str(dim).strip().upper(), "")

    @classmethod
    def valueInputOption(cls, option: str) -> str:
        """https://developers.google.com/sheets/api/reference/rest/v4/ValueInputOption"""
        return cls._VALID_VALUE_INPUT_OPTIONS.get(str(option).upper(), "")

    @classmethod
    def insertDataOption(cls, option: str) -> str:
        """https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/append#InsertDataOption"""
        return cls._VALID_INSERT_DATA_OPTIONS.get(str(option).upper(), "")

@dataclass
class SpreadsheetProperties(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets#SpreadsheetProperties
    """
    title: str = field(default="")
    locale: str = field(default="")
    autoRecalc: str = field(default="")
    timeZone: str = field(default="")

    def __bool__(self) -> bool:
        return bool(self.title)

@dataclass
class GridProperties(GoogleWorkSpaceResourceBase):
    """https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/sheets#gridproperties"""
    rowCount: int = field(default=-1)
    columnCount: int = field(default=-1)
    frozenRowCount: int = field(default=0)
    frozenColumnCount: int = field(default=0)

    def __bool__(self) -> bool:
        return self.rowCount >= 0 and self.columnCount >= 0

@dataclass
class SheetProperties(GoogleWorkSpaceResourceBase):
    """https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/sheets#sheetproperties"""
    sheetId: int = field(default=-1)
    title: str = field(default="")
    index: int = field(default=-1)
    sheetType: str = field(default="")
    gridProperties: GridProperties|dict = field(default_factory=dict)
    hidden: bool = field(default=False)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.gridProperties = (self.gridProperties if isinstance(self.gridProperties,GridProperties)
                               else GridProperties.from_base(self.gridProperties))

    def to_base(self) -> dict:
        self.fixup()
        b = asdict(self)
        b['gridProperties'] = self.gridProperties.to_base()
        return b

    def __bool__(self) -> bool:
        """
        True if it is valid, which is the ID and index are 0 or positive
        as negative index is not possible
        """
        return self.sheetId >= 0 and self.index >= 0 and bool(self.title)

    def __str__(self) -> str:
        if self:
            return f"{str(self.title)}({str(self.sheetId)}[{str(self.index)}])"
        return "<invalid sheet>"

@dataclass
class Sheet(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/sheets#sheet
    Representation of a sheet (tab) within a spreadsheet.
    """
    properties: SheetProperties|dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.properties = (self.properties if isinstance(self.properties,SheetProperties)
                           else SheetProperties.from_base(self.properties))

    def to_base(self) -> dict:
        self.fixup()
        return {'properties': self.properties.to_base()}

    def __bool__(self) -> bool:
        return bool(self.properties)

    def __str__(self) -> str:
        return str(self.properties)

    @property
    def sheet_id(self) -> int:
        return self.properties.sheetId

    @property
    def title(self) -> str:
        return self.properties.title

    @property
    def index(self) -> int:
        """Position of the tab, unlike sheetId this shifts as tabs move."""
        return self.properties.index

@dataclass
class Spreadsheet(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets#resource:-spreadsheet
    The representation of a spreadsheet.
    """
    spreadsheetId: str = field(default="")
    properties: SpreadsheetProperties|dict = field(default_factory=dict)
    sheets: List[Sheet|dict] = field(default_factory=list)
    spreadsheetUrl: str = field(default="")

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.properties = (self.properties if isinstance(self.properties,SpreadsheetProperties)
                           else SpreadsheetProperties.from_base(self.properties))
        self.sheets = [s if isinstance(s,Sheet) else Sheet.from_base(s) for s in self.sheets]

    def to_base(self) -> dict:
        self.fixup()
        b = asdict(self)
        b['properties'] = self.properties.to_base()
        b['sheets'] = [s.to_base() for s in self.sheets]
        return b

    def __bool__(self) -> bool:
        return bool(self.spreadsheetId)

    def __str__(self) -> str:
        val = 'unconnected'
        if self.spreadsheetId:
            val = f"{self.properties.title}[{','.join(str(s) for s in self.sheets)}]"
        return val

    @property
    def title(self) -> str:
        return self.properties.title

@dataclass
class ValueRange(GoogleWorkSpaceResourceBase):
    """https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values#resource:-valuerange"""
    range: str = field(default="")
    majorDimension: str = field(default="")
    values: list[list[bool|str|int|float|None]] = field(default_factory=list)

    def __post_init__(self):
        self.fixup()

    def fixup(self) -> None:
        if self.majorDimension:
            d = str(self.majorDimension)
            self.majorDimension = GoogleSheetsEnum.dimension(d)
            if not self.majorDimension:
                raise ValueError(f"Invalid majorDimension value: {d}")
        self.values = [list(row) for row in self.values]

    def __bool__(self) -> bool:
        """
        A ValueRange is valid if the range string is not empty
        and the majorDimension has a valid value.
        """
        return bool(self.range) and bool(self.majorDimension)

    def __len__(self) -> int:
        """Number of rows (or columns for COLUMNS) returned"""
        return len(self.values)

@dataclass
class UpdateValuesResponse(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/UpdateValuesResponse
    """
    spreadsheetId: str = field(default="")
    updatedRange: str = field(default="")
    updatedRows: int = field(default=0)
    updatedColumns: int = field(default=0)
    updatedCells: int = field(default=0)
    updatedData: ValueRange|dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.updatedData = (self.updatedData if isinstance(self.updatedData,ValueRange)
                            else ValueRange.from_base(self.updatedData))

    def __bool__(self) -> bool:
        return bool(self.spreadsheetId) and bool(self.updatedRange)

    def to_base(self) -> dict:
        self.fixup()
        b = asdict(self)
        b['updatedData'] = self.updatedData.to_base()
        return b

@dataclass
class AppendValuesResponse(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/append#response-body
    tableRange is the range of the existing table the values were appended after.
    """
    spreadsheetId: str = field(default="")
    tableRange: str = field(default="")
    updates: UpdateValuesResponse|dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.updates = (self.updates if isinstance(self.updates,UpdateValuesResponse)
                        else UpdateValuesResponse.from_base(self.updates))

    def __bool__(self) -> bool:
        return bool(self.spreadsheetId)

    def to_base(self) -> dict:
        self.fixup()
        return {'spreadsheetId': self.spreadsheetId, 'tableRange': self.tableRange,
                'updates': self.updates.to_base()}

@dataclass
class ClearValuesResponse(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/clear#response-body
    """
    spreadsheetId: str = field(default="")
    clearedRange: str = field(default="")

    def __bool__(self) -> bool:
        return bool(self.spreadsheetId)
