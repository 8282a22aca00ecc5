"""
Thin wrappers, one per Sheets API call.  Each executes the call, turns the
reply into the resource dataclass and turns client errors into ours.
The service is passed as service=, the decorator builds one from the
module access object when the caller doesn't.
"""
from functools import wraps

import google.auth.exceptions
import httplib2
from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from ..access import service
from ..exceptions import TransportFailure, classify_http_error
from .resources import (Spreadsheet, SpreadsheetProperties, GoogleSheetsEnum, ValueRange,
                        UpdateValuesResponse, AppendValuesResponse, ClearValuesResponse)
from .requests import (GoogleSheetsUpdateRequest, GoogleSheetsUpdateRequestBase,
                       GoogleSheetsUpdateRequestResponse)

def _translate_errors(f):
    """Everything the client library raises leaves here as a TransportFailure"""
    @wraps(f)
    def wrapped(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except HttpError as e:
            raise classify_http_error(e, f.__name__) from e
        except google.auth.exceptions.GoogleAuthError as e:
            raise TransportFailure(f"{f.__name__} failed to authenticate: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise TransportFailure(f"{f.__name__} failed to reach the service: {e}") from e
    return wrapped

def _value_input(option: str) -> str:
    value_input = GoogleSheetsEnum.valueInputOption(option)
    if not value_input:
        raise ValueError(f"Invalid valueInputOption value: {option}")
    return value_input

@service("sheets", "v4")
@_translate_errors
def get(spreadsheetId: str, *, service: Resource) -> Spreadsheet:
    """
    Wrapper for calling the get() spreadsheet method, properties and tabs only.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/get
    """
    response = service.spreadsheets().get(spreadsheetId=spreadsheetId,
                                          includeGridData=False).execute()
    return Spreadsheet.from_base(response)

@service("sheets", "v4")
@_translate_errors
def create(spreadsheet: Spreadsheet|dict|str, *, service: Resource) -> Spreadsheet:
    """
    Wrapper for calling the create() spreadsheet method, all fields come back.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/create
    This is for creating a whole new spreadsheet, not a tab within one.
    A plain string is taken as the title.
    """
    if isinstance(spreadsheet, str):
        body = {'properties': SpreadsheetProperties(title=spreadsheet).trim()}
    elif isinstance(spreadsheet, Spreadsheet):
        body = {'properties': spreadsheet.properties.trim()}
        if spreadsheet.sheets:
            body['sheets'] = [{'properties': {'title': s.title}} for s in spreadsheet.sheets]
    else:
        body = dict(spreadsheet)
    response = service.spreadsheets().create(body=body, fields="*").execute()
    return Spreadsheet.from_base(response)

@service("sheets", "v4")
@_translate_errors
def batchUpdate(spreadsheetId: str,
                request: GoogleSheetsUpdateRequest|list[GoogleSheetsUpdateRequestBase]|dict,
                *, service: Resource) -> GoogleSheetsUpdateRequestResponse:
    """
    Wrapper for calling the batchUpdate() spreadsheet method.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/batchUpdate
    This is for altering spreadsheet structure, not the cell values
    which is done from the values() resource.
    """
    if isinstance(request, list):
        request = GoogleSheetsUpdateRequest(request)
    body = request.to_base() if isinstance(request, GoogleSheetsUpdateRequest) else dict(request)
    response = service.spreadsheets().batchUpdate(spreadsheetId=spreadsheetId,
                                                  body=body, fields="*").execute()
    return GoogleSheetsUpdateRequestResponse.from_base(response)

@service("sheets", "v4")
@_translate_errors
def getValues(spreadsheetId: str, range: str, *,
              dimension: str = "ROWS",
              service: Resource) -> ValueRange:
    """
    Wrapper for calling the get() method on the values resource.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/get
    Trailing empty rows and columns are not returned, and an entirely
    empty range has no values at all.
    """
    dim = GoogleSheetsEnum.dimension(dimension)
    if not dim:
        raise ValueError(f"Invalid majorDimension value: {dimension}")
    response = service.spreadsheets().values().get(spreadsheetId=spreadsheetId,
                                                   range=range,
                                                   majorDimension=dim).execute()
    vr = ValueRange.from_base(response)
    if not vr.range:
        vr.range = range
    return vr

@service("sheets", "v4")
@_translate_errors
def updateValues(spreadsheetId: str, data: ValueRange, *,
                 valueInputOption: str = "RAW",
                 service: Resource) -> UpdateValuesResponse:
    """
    Wrapper for calling the update() method on the values resource,
    overwriting the cells addressed by data.range.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/update
    """
    response = service.spreadsheets().values().update(spreadsheetId=spreadsheetId,
                                                      range=data.range,
                                                      valueInputOption=_value_input(valueInputOption),
                                                      body=data.trim()).execute()
    return UpdateValuesResponse.from_base(response)

@service("sheets", "v4")
@_translate_errors
def appendValues(spreadsheetId: str, data: ValueRange, *,
                 valueInputOption: str = "USER_ENTERED",
                 insertDataOption: str|None = None,
                 service: Resource) -> AppendValuesResponse:
    """
    Wrapper for calling the append() method on the values resource.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/append
    The service finds the table in data.range and writes after its last row.
    """
    kwargs = {}
    if insertDataOption is not None:
        insert = GoogleSheetsEnum.insertDataOption(insertDataOption)
        if not insert:
            raise ValueError(f"Invalid insertDataOption value: {insertDataOption}")
        kwargs['insertDataOption'] = insert
    response = service.spreadsheets().values().append(spreadsheetId=spreadsheetId,
                                                      range=data.range,
                                                      valueInputOption=_value_input(valueInputOption),
                                                      body=data.trim(),
                                                      fields="*",
                                                      **kwargs).execute()
    return AppendValuesResponse.from_base(response)

@service("sheets", "v4")
@_translate_errors
def clearValues(spreadsheetId: str, range: str, *, service: Resource) -> ClearValuesResponse:
    """
    Wrapper for calling the clear() method on the values resource.
    See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/clear
    Values only, formatting is kept.
    """
    response = service.spreadsheets().values().clear(spreadsheetId=spreadsheetId,
                                                     range=range, body={},
                                                     fields="*").execute()
    return ClearValuesResponse.from_base(response)
