from dataclasses import dataclass, asdict, field
from typing import List
import re

from ..resources import GoogleWorkSpaceResourceBase
from .resources import Spreadsheet, SpreadsheetProperties, SheetProperties

class GoogleSheetsUpdateRequestBase(GoogleWorkSpaceResourceBase):
    """
    Base class for sheet batchUpdate requests to get the actual
    request dict into the right format.  A batchUpdate request entry is
    a union, keyed by the request type, so the key is derived from the
    class name.
    """
    _NAME_RE = re.compile("^([a-zA-Z])([a-zA-Z]+)Request$")

    def to_request(self) -> dict[str,dict]:
        # need to strip off the trailing 'Request' class name and
        # set the first letter to lower case
        m = self._NAME_RE.match(self.__class__.__name__)
        if not m:
            raise RuntimeError("Invalid Google Sheets request format for class name")
        return {m.group(1).lower() + m.group(2): self.to_base()}


@dataclass
class UpdateSpreadsheetPropertiesRequest(GoogleSheetsUpdateRequestBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/request#updatespreadsheetpropertiesrequest
    Only the properties that are set are sent.
    """
    properties: SpreadsheetProperties|dict = field(default_factory=dict)
    fields: str = field(default="*")

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.properties = (self.properties if isinstance(self.properties, SpreadsheetProperties)
                           else SpreadsheetProperties.from_base(self.properties))

    def to_base(self) -> dict:
        self.fixup()
        return {'properties': self.properties.trim(), 'fields': self.fields}

@dataclass
class AddSheetRequest(GoogleSheetsUpdateRequestBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/request#addsheetrequest
    The sheetId is left for the service to assign.
    """
    title: str

    def to_base(self) -> dict:
        return {'properties': {'title': self.title}}

@dataclass
class UpdateSheetPropertiesRequest(GoogleSheetsUpdateRequestBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/request#updatesheetpropertiesrequest
    fields is a mask of what changes, anything outside it is left alone
    on the service side whatever we send.
    Only named fields are sent, so a "*" mask would reset every property
    left out and is refused.
    """
    properties: SheetProperties|dict = field(default_factory=dict)
    fields: str = field(default="title")

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.properties = (self.properties if isinstance(self.properties, SheetProperties)
                           else SheetProperties.from_base(self.properties))
        if "*" in self.fields:
            raise ValueError("UpdateSheetPropertiesRequest needs explicit fields, not \"*\"")

    def to_base(self) -> dict:
        self.fixup()
        props = {'sheetId': self.properties.sheetId}
        for name in self.fields.split(','):
            name = name.strip()
            if name and name != 'sheetId' and hasattr(self.properties, name):
                v = getattr(self.properties, name)
                props[name] = v.to_base() if isinstance(v, GoogleWorkSpaceResourceBase) else v
        return {'properties': props, 'fields': self.fields}

@dataclass
class DeleteSheetRequest(GoogleSheetsUpdateRequestBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/request#deletesheetrequest
    """
    sheetId: int


def rename_spreadsheet(new_title: str) -> UpdateSpreadsheetPropertiesRequest:
    """Rename the spreadsheet itself, returning all fields"""
    return UpdateSpreadsheetPropertiesRequest(SpreadsheetProperties(title=new_title), "*")

def add_tab(title: str) -> AddSheetRequest:
    return AddSheetRequest(title)

def rename_tab_by_id(tab_id: int, new_title: str) -> UpdateSheetPropertiesRequest:
    """Rename a tab, only the title is in the update mask"""
    return UpdateSheetPropertiesRequest(SheetProperties(sheetId=tab_id, title=new_title), "title")

def delete_tab_by_id(tab_id: int) -> DeleteSheetRequest:
    return DeleteSheetRequest(tab_id)


@dataclass
class GoogleSheetsUpdateRequest(GoogleWorkSpaceResourceBase):
    """
    Generate a GSheet Batch Update request body.
    The requests are applied in order and atomically, if one fails
    the service applies none of them.
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/batchUpdate#request-body
    """
    requests: List[GoogleSheetsUpdateRequestBase|dict]
    includeSpreadsheetInResponse: bool = field(default=False)
    responseRanges: List[str] = field(default_factory=list)
    responseIncludeGridData: bool = field(default=False)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        self.requests = list(self.requests)
        if not self.requests:
            raise ValueError("A batch update needs at least one request")

    def to_base(self) -> dict:
        self.fixup()
        b = asdict(self)
        b['requests'] = [r.to_request() if isinstance(r, GoogleSheetsUpdateRequestBase) else dict(r)
                         for r in self.requests]
        return b

def make_request(requests: list[GoogleSheetsUpdateRequestBase|dict],
                 includeSpreadsheetInResponse: bool = False,
                 responseRanges: list[str]|None = None,
                 responseIncludeGridData: bool = False) -> dict:
    """
    Convenience function to assemble the request body with the usual parameters.
    """
    return GoogleSheetsUpdateRequest(requests=requests,
                                     includeSpreadsheetInResponse=includeSpreadsheetInResponse,
                                     responseRanges=list(responseRanges or []),
                                     responseIncludeGridData=responseIncludeGridData).to_base()


@dataclass
class GoogleSheetsUpdateRequestResponse(GoogleWorkSpaceResourceBase):
    """
    https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/batchUpdate#response-body
    replies are in the same order as the requests, empty dicts for
    requests that have nothing to say.
    """
    spreadsheetId: str = field(default="")
    replies: List[dict] = field(default_factory=list)
    updatedSpreadsheet: Spreadsheet|dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.fixup()

    def __bool__(self) -> bool:
        return bool(self.spreadsheetId)

    def fixup(self) -> None:
        self.updatedSpreadsheet = (self.updatedSpreadsheet if isinstance(self.updatedSpreadsheet,Spreadsheet)
                                   else Spreadsheet.from_base(self.updatedSpreadsheet))

    def to_base(self) -> dict:
        self.fixup()
        b = asdict(self)
        b['updatedSpreadsheet'] = self.updatedSpreadsheet.to_base()
        return b
