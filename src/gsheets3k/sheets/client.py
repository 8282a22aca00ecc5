from collections.abc import Iterable
from pathlib import Path
from typing import Callable, Self
import logging
import time

from googleapiclient.discovery import Resource

from ..access import gws, build_service, credentials_from_oauth2, credentials_from_service_account
from ..exceptions import TabNotFound
from . import ops
from .requests import (GoogleSheetsUpdateRequest, GoogleSheetsUpdateRequestBase,
                       GoogleSheetsUpdateRequestResponse,
                       rename_spreadsheet, add_tab, rename_tab_by_id, delete_tab_by_id)
from .resources import (Spreadsheet, Sheet, ValueRange, GoogleSheetsEnum,
                        UpdateValuesResponse, AppendValuesResponse, ClearValuesResponse)
from .retry import RetryPolicy
from .values import (CellValue, validate_rows, flatten_to_column_sequence,
                     flatten_to_string_sequence, group_by_column)

log = logging.getLogger(__name__)

class GoogleSheets3k():
    """
    Convenience client over the Sheets v4 service.

    Holds no spreadsheet state of its own, every call builds fresh requests.
    Operations that work on a tab by name take a Spreadsheet snapshot
    (see get_spreadsheet()) and look the tab up in it each time, so pass
    a fresh one after structural changes.

    service: a built sheets v4 Resource.  Left as None the module access
             object builds one on first use.
    retry:   how appends that hit the quota are retried.
    logger:  where request/response lines go, the module logger by default.
    sleep:   called with the back-off in seconds, swap it out in tests.
    """
    def __init__(self, service: Resource|None = None,
                 retry: RetryPolicy|None = None,
                 logger: logging.Logger|None = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self._service = service
        self.retry = retry if retry is not None else RetryPolicy()
        self.log = logger or log
        self._sleep = sleep

    @classmethod
    def from_oauth2(cls, client_secret: bytes|str|dict|Path,
                    token: bytes|str|dict|Path,
                    scopes: None|str|Iterable[str] = None,
                    **kwargs) -> Self:
        """Client for a user with a stored refresh token."""
        creds = credentials_from_oauth2(client_secret, token, scopes)
        return cls(build_service(creds), **kwargs)

    @classmethod
    def from_impersonation(cls, service_account_key: bytes|str|dict|Path,
                           subject: str,
                           scopes: None|str|Iterable[str] = None,
                           **kwargs) -> Self:
        """Client for a service account acting as subject."""
        creds = credentials_from_service_account(service_account_key, subject, scopes)
        return cls(build_service(creds), **kwargs)

    @property
    def service(self) -> Resource:
        if self._service is None:
            self._service = gws.get_service("sheets", "v4")
        return self._service

    def write_range(self, spreadsheet_id: str, range: str, major_dimension: str,
                    values: Iterable[Iterable[CellValue]],
                    overwrite: bool = False) -> UpdateValuesResponse|AppendValuesResponse:
        """
        Write values at range.
        overwrite replaces the addressed cells, values taken literally (RAW).
        Otherwise the values are appended after the table found in range and
        parsed as if typed in (USER_ENTERED), retrying on quota errors as the
        retry policy allows.
        """
        dim = GoogleSheetsEnum.dimension(major_dimension)
        if not dim:
            raise ValueError(f"Invalid majorDimension value: {major_dimension}")
        data = ValueRange(range, dim, validate_rows(values))
        self.log.info("Spreadsheet Write Request --> SpreadsheetID:[%s], A1Notation:[%s], "
                      "TotalInserts[%d], overwrite[%s]", spreadsheet_id, range, len(data), overwrite)
        try:
            if overwrite:
                response = ops.updateValues(spreadsheet_id, data, valueInputOption="RAW",
                                            service=self.service)
            else:
                response = self.retry.call(
                    lambda: ops.appendValues(spreadsheet_id, data, valueInputOption="USER_ENTERED",
                                             service=self.service),
                    sleep=self._sleep, logger=self.log, operation="append")
        except Exception as e:
            self.log.error("Spreadsheet write request to %s [%s] failed: %s", spreadsheet_id, range, e)
            raise
        self.log.info("Spreadsheet write request was successful...")
        return response

    def create_spreadsheet(self, title: str) -> Spreadsheet:
        """Create a new spreadsheet, which comes with one default tab."""
        spreadsheet = ops.create(title, service=self.service)
        self.log.info("Created spreadsheet -> %s [%s] @ %s", title,
                      spreadsheet.spreadsheetId, spreadsheet.spreadsheetUrl)
        return spreadsheet

    def create_and_write_new_spreadsheet(self, spreadsheet_title: str, tab_title: str,
                                         values: Iterable[Iterable[CellValue]]) -> AppendValuesResponse:
        """
        Create a spreadsheet, rename its first tab to tab_title and append
        values to it.
        """
        self.log.info("Creating spreadsheet: %s", spreadsheet_title)
        spreadsheet = self.create_spreadsheet(spreadsheet_title)
        sheets = spreadsheet.sheets
        first = next((s for s in sheets if s.index == 0), sheets[0] if sheets else None)
        if first is None:
            raise TabNotFound("<index 0>", spreadsheet.spreadsheetId)
        self.rename_tab(spreadsheet, first.title, tab_title)
        return self.write_range(spreadsheet.spreadsheetId, tab_title, "ROWS", values, False)

    def get_spreadsheet(self, spreadsheet_id: str) -> Spreadsheet:
        """Current properties and tabs of a spreadsheet."""
        return ops.get(spreadsheet_id, service=self.service)

    def execute_batch_update(self, spreadsheet_id: str,
                             requests: list[GoogleSheetsUpdateRequestBase]) -> GoogleSheetsUpdateRequestResponse:
        """
        Send requests as one batch.  The service applies all of them or
        none, in order.
        """
        return ops.batchUpdate(spreadsheet_id, list(requests), service=self.service)

    def rename_spreadsheet(self, spreadsheet_id: str, new_title: str) -> Spreadsheet:
        """Returns the spreadsheet as it is after the rename."""
        request = GoogleSheetsUpdateRequest([rename_spreadsheet(new_title)], includeSpreadsheetInResponse=True)
        response = ops.batchUpdate(spreadsheet_id, request, service=self.service)
        self.log.info('Renamed SpreadsheetID: [%s] is now "%s"', spreadsheet_id, new_title)
        return response.updatedSpreadsheet

    def insert_tab(self, spreadsheet_id: str, title: str) -> GoogleSheetsUpdateRequestResponse:
        """Add a tab, the new tab's properties are in replies[0]['addSheet']."""
        response = self.execute_batch_update(spreadsheet_id, [add_tab(title)])
        self.log.info("Inserted tab %s into %s", title, spreadsheet_id)
        return response

    def rename_tab_by_id(self, spreadsheet_id: str, tab_id: int,
                         new_title: str) -> GoogleSheetsUpdateRequestResponse:
        return self.execute_batch_update(spreadsheet_id, [rename_tab_by_id(tab_id, new_title)])

    def delete_tab_by_id(self, spreadsheet_id: str, tab_id: int) -> GoogleSheetsUpdateRequestResponse:
        return self.execute_batch_update(spreadsheet_id, [delete_tab_by_id(tab_id)])

    def get_by_tab_name(self, spreadsheet: Spreadsheet, tab_name: str) -> Sheet|None:
        """
        First tab whose title is exactly tab_name, None (and a warning)
        if there isn't one.
        """
        for sheet in spreadsheet.sheets:
            if sheet.title == tab_name:
                return sheet
        self.log.warning("Sheet %s not found in SpreadsheetID: %s", tab_name, spreadsheet.spreadsheetId)
        return None

    def resolve_tab_by_name(self, spreadsheet: Spreadsheet, tab_name: str) -> Sheet:
        """As get_by_tab_name() but a miss raises TabNotFound"""
        sheet = self.get_by_tab_name(spreadsheet, tab_name)
        if sheet is None:
            raise TabNotFound(tab_name, spreadsheet.spreadsheetId)
        return sheet

    def rename_tab(self, spreadsheet: Spreadsheet, old_tab_name: str,
                   new_tab_name: str) -> GoogleSheetsUpdateRequestResponse:
        tab = self.resolve_tab_by_name(spreadsheet, old_tab_name)
        return self.rename_tab_by_id(spreadsheet.spreadsheetId, tab.sheet_id, new_tab_name)

    def delete_tab_by_name(self, spreadsheet: Spreadsheet, tab_name: str) -> GoogleSheetsUpdateRequestResponse:
        tab = self.resolve_tab_by_name(spreadsheet, tab_name)
        return self.delete_tab_by_id(spreadsheet.spreadsheetId, tab.sheet_id)

    def read_range(self, spreadsheet_id: str, range: str) -> list[list[CellValue]]:
        """
        Rows of values in range.  One request, whatever the service returns
        is what you get.
        """
        return ops.getValues(spreadsheet_id, range, service=self.service).values

    def get_column_values(self, spreadsheet_id: str, range: str) -> list[CellValue]:
        """Every value in range, row by row"""
        return flatten_to_column_sequence(self.read_range(spreadsheet_id, range))

    def get_column_values_as_string(self, spreadsheet_id: str, range: str,
                                    lowercase: bool = False) -> list[str]:
        return flatten_to_string_sequence(self.read_range(spreadsheet_id, range), lowercase)

    def get_sheet_values_mapped(self, spreadsheet_id: str, range: str,
                                key_column: int) -> dict[CellValue, list[list[CellValue]]]:
        """Rows in range grouped by the value in key_column"""
        return group_by_column(self.read_range(spreadsheet_id, range), key_column)

    def clear_range(self, spreadsheet_id: str, range: str) -> ClearValuesResponse:
        response = ops.clearValues(spreadsheet_id, range, service=self.service)
        self.log.info("Cleared %s [%s]", spreadsheet_id, range)
        return response
