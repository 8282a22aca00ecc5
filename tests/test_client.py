import logging
from unittest.mock import MagicMock

import httplib2
import pytest

from gsheets3k import GoogleSheets3k, RetryPolicy
from gsheets3k.exceptions import QuotaExceeded, TabNotFound, TransportFailure, TypeMismatch, IndexOutOfRange
from gsheets3k.sheets.resources import Spreadsheet, UpdateValuesResponse, AppendValuesResponse

from conftest import SPREADSHEET_API_RESPONSE, make_http_error, quota_error

APPEND_API_RESPONSE = {
    "spreadsheetId": "abc123",
    "tableRange": "Data!A1:C2",
    "updates": {"spreadsheetId": "abc123", "updatedRange": "Data!A3:C4",
                "updatedRows": 2, "updatedColumns": 3, "updatedCells": 6},
}

VALUES_API_RESPONSE = {
    "range": "Data!A1:C3",
    "majorDimension": "ROWS",
    "values": [["a", 1, 2], ["b", 3, 4], ["a", 5, 6]],
}


@pytest.fixture
def sleep():
    return MagicMock()

@pytest.fixture
def client(sheets_service, sleep):
    return GoogleSheets3k(sheets_service, sleep=sleep)

@pytest.fixture
def snapshot():
    return Spreadsheet.from_base(SPREADSHEET_API_RESPONSE)


def test_write_append_user_entered(client, sheets_service, sleep):
    append = sheets_service.spreadsheets().values().append
    append().execute.return_value = APPEND_API_RESPONSE
    r = client.write_range("abc123", "Data", "rows", [["x", 1, True], ["y"]])
    assert(isinstance(r, AppendValuesResponse))
    assert(r.updates.updatedRows == 2)
    kwargs = append.call_args.kwargs
    assert(kwargs["valueInputOption"] == "USER_ENTERED")
    assert(kwargs["range"] == "Data")
    assert(kwargs["body"]["majorDimension"] == "ROWS")
    assert(kwargs["body"]["values"] == [["x", 1, True], ["y"]])
    sleep.assert_not_called()

def test_write_overwrite_raw(client, sheets_service):
    update = sheets_service.spreadsheets().values().update
    update().execute.return_value = {"spreadsheetId": "abc123", "updatedRange": "Data!A1:B1"}
    r = client.write_range("abc123", "Data!A1", "ROWS", [[1, 2]], overwrite=True)
    assert(isinstance(r, UpdateValuesResponse))
    assert(update.call_args.kwargs["valueInputOption"] == "RAW")

def test_write_quota_once_then_success(client, sheets_service, sleep):
    execute = sheets_service.spreadsheets().values().append().execute
    execute.side_effect = [quota_error(), APPEND_API_RESPONSE]
    r = client.write_range("abc123", "Data", "ROWS", [["x"]])
    assert(r.tableRange == "Data!A1:C2")
    assert(execute.call_count == 2)
    sleep.assert_called_once_with(2.5)

def test_write_quota_forever_is_bounded(sheets_service, sleep):
    client = GoogleSheets3k(sheets_service, retry=RetryPolicy(max_retries=4), sleep=sleep)
    execute = sheets_service.spreadsheets().values().append().execute
    execute.side_effect = quota_error()
    with pytest.raises(QuotaExceeded) as info:
        client.write_range("abc123", "Data", "ROWS", [["x"]])
    assert(info.value.attempts == 5)
    assert(execute.call_count == 5)
    assert(sleep.call_count == 4)

def test_write_overwrite_not_retried(client, sheets_service, sleep):
    execute = sheets_service.spreadsheets().values().update().execute
    execute.side_effect = quota_error()
    with pytest.raises(QuotaExceeded):
        client.write_range("abc123", "Data!A1", "ROWS", [["x"]], overwrite=True)
    assert(execute.call_count == 1)
    sleep.assert_not_called()

def test_write_other_failure_not_retried(client, sheets_service, sleep):
    execute = sheets_service.spreadsheets().values().append().execute
    execute.side_effect = make_http_error(400, "Unable to parse range: Nope")
    with pytest.raises(TransportFailure) as info:
        client.write_range("abc123", "Nope", "ROWS", [["x"]])
    assert(not isinstance(info.value, QuotaExceeded))
    assert(execute.call_count == 1)
    sleep.assert_not_called()

def test_write_network_failure_not_retried(client, sheets_service, sleep):
    execute = sheets_service.spreadsheets().values().append().execute
    execute.side_effect = ConnectionResetError("reset by peer")
    with pytest.raises(TransportFailure):
        client.write_range("abc123", "Data", "ROWS", [["x"]])
    assert(execute.call_count == 1)
    sleep.assert_not_called()

def test_write_bad_input(client, sheets_service):
    with pytest.raises(ValueError):
        client.write_range("abc123", "Data", "diagonal", [["x"]])
    with pytest.raises(TypeMismatch):
        client.write_range("abc123", "Data", "ROWS", [[{"nested": 1}]])
    assert(not sheets_service.spreadsheets.return_value.values.return_value.append.called)

def test_write_logs_request_and_result(sheets_service, caplog):
    logger = logging.getLogger("test.gsheets3k")
    client = GoogleSheets3k(sheets_service, logger=logger, sleep=MagicMock())
    sheets_service.spreadsheets().values().append().execute.return_value = APPEND_API_RESPONSE
    with caplog.at_level(logging.INFO, logger="test.gsheets3k"):
        client.write_range("abc123", "Data", "ROWS", [["x"], ["y"]])
    messages = [r.getMessage() for r in caplog.records if r.name == "test.gsheets3k"]
    assert(messages[0] == ("Spreadsheet Write Request --> SpreadsheetID:[abc123], A1Notation:[Data], "
                           "TotalInserts[2], overwrite[False]"))
    assert(messages[-1] == "Spreadsheet write request was successful...")


def test_resolve_tab_exact_match(client, snapshot):
    assert(client.resolve_tab_by_name(snapshot, "Data").sheet_id == 7)

def test_resolve_tab_is_case_sensitive(client, snapshot):
    with pytest.raises(TabNotFound) as info:
        client.resolve_tab_by_name(snapshot, "data")
    assert(info.value.tab_name == "data")
    assert(info.value.spreadsheet_id == "abc123")

def test_get_by_tab_name_miss_logs(client, snapshot, caplog):
    with caplog.at_level(logging.WARNING):
        assert(client.get_by_tab_name(snapshot, "Missing") is None)
    assert("Sheet Missing not found in SpreadsheetID: abc123" in caplog.text)

def test_resolve_tab_first_match_wins(client):
    ss = Spreadsheet.from_base({"spreadsheetId": "dup", "sheets": [
        {"properties": {"sheetId": 1, "title": "Same", "index": 0}},
        {"properties": {"sheetId": 2, "title": "Same", "index": 1}},
    ]})
    assert(client.resolve_tab_by_name(ss, "Same").sheet_id == 1)

def test_rename_tab(client, sheets_service, snapshot):
    batch = sheets_service.spreadsheets().batchUpdate
    batch().execute.return_value = {"spreadsheetId": "abc123", "replies": [{}]}
    client.rename_tab(snapshot, "Data", "Archive")
    body = batch.call_args.kwargs["body"]
    assert(body["requests"] == [{"updateSheetProperties": {"properties": {"sheetId": 7, "title": "Archive"},
                                                           "fields": "title"}}])

def test_rename_missing_tab_makes_no_calls(client, sheets_service, snapshot):
    with pytest.raises(TabNotFound):
        client.rename_tab(snapshot, "Nope", "Archive")
    assert(not sheets_service.spreadsheets.return_value.batchUpdate.called)

def test_delete_tab_by_name(client, sheets_service, snapshot):
    batch = sheets_service.spreadsheets().batchUpdate
    batch().execute.return_value = {"spreadsheetId": "abc123", "replies": [{}]}
    client.delete_tab_by_name(snapshot, "Sheet1")
    assert(batch.call_args.kwargs["body"]["requests"] == [{"deleteSheet": {"sheetId": 0}}])

def test_delete_missing_tab(client, sheets_service, snapshot):
    with pytest.raises(TabNotFound):
        client.delete_tab_by_name(snapshot, "Nope")
    assert(not sheets_service.spreadsheets.return_value.batchUpdate.called)

def test_insert_tab(client, sheets_service):
    batch = sheets_service.spreadsheets().batchUpdate
    batch().execute.return_value = {"spreadsheetId": "abc123",
                                    "replies": [{"addSheet": {"properties": {"sheetId": 9, "title": "New"}}}]}
    r = client.insert_tab("abc123", "New")
    assert(r.replies[0]["addSheet"]["properties"]["sheetId"] == 9)
    assert(batch.call_args.kwargs["body"]["requests"] == [{"addSheet": {"properties": {"title": "New"}}}])

def test_rename_spreadsheet(client, sheets_service):
    renamed = dict(SPREADSHEET_API_RESPONSE, properties={"title": "Renamed"})
    batch = sheets_service.spreadsheets().batchUpdate
    batch().execute.return_value = {"spreadsheetId": "abc123", "replies": [{}],
                                    "updatedSpreadsheet": renamed}
    ss = client.rename_spreadsheet("abc123", "Renamed")
    assert(ss.title == "Renamed")
    body = batch.call_args.kwargs["body"]
    assert(body["includeSpreadsheetInResponse"] is True)
    assert(body["requests"] == [{"updateSpreadsheetProperties": {"properties": {"title": "Renamed"},
                                                                 "fields": "*"}}])


def test_create_spreadsheet(client, sheets_service):
    sheets_service.spreadsheets().create().execute.return_value = SPREADSHEET_API_RESPONSE
    ss = client.create_spreadsheet("My Sheet")
    assert(ss.spreadsheetUrl.endswith("/abc123/edit"))

def test_create_and_write(client, sheets_service):
    spreadsheets = sheets_service.spreadsheets()
    spreadsheets.create().execute.return_value = SPREADSHEET_API_RESPONSE
    spreadsheets.batchUpdate().execute.return_value = {"spreadsheetId": "abc123", "replies": [{}]}
    spreadsheets.values().append().execute.return_value = APPEND_API_RESPONSE
    r = client.create_and_write_new_spreadsheet("My Sheet", "Results", [["h1", "h2"], [1, 2]])
    assert(r.spreadsheetId == "abc123")
    rename = spreadsheets.batchUpdate.call_args.kwargs["body"]["requests"][0]
    assert(rename["updateSheetProperties"]["properties"] == {"sheetId": 0, "title": "Results"})
    append = spreadsheets.values().append.call_args.kwargs
    assert(append["range"] == "Results")
    assert(append["body"]["majorDimension"] == "ROWS")

def test_create_failure_stops(client, sheets_service):
    spreadsheets = sheets_service.spreadsheets()
    spreadsheets.create().execute.side_effect = make_http_error(500, "Internal error encountered.")
    with pytest.raises(TransportFailure):
        client.create_and_write_new_spreadsheet("My Sheet", "Results", [["x"]])
    assert(not spreadsheets.batchUpdate.called)


def test_read_range(client, sheets_service):
    sheets_service.spreadsheets().values().get().execute.return_value = VALUES_API_RESPONSE
    assert(client.read_range("abc123", "Data!A1:C3") == VALUES_API_RESPONSE["values"])

def test_read_range_unreachable(client, sheets_service):
    sheets_service.spreadsheets().values().get().execute.side_effect = httplib2.ServerNotFoundError("no dns")
    with pytest.raises(TransportFailure):
        client.read_range("abc123", "Data!A1:C3")

def test_column_values(client, sheets_service):
    sheets_service.spreadsheets().values().get().execute.return_value = VALUES_API_RESPONSE
    assert(client.get_column_values("abc123", "Data!A1:C3") == ["a", 1, 2, "b", 3, 4, "a", 5, 6])

def test_column_values_as_string(client, sheets_service):
    sheets_service.spreadsheets().values().get().execute.return_value = {
        "range": "Data!A1:A3", "values": [["Alice"], ["BOB"]]}
    assert(client.get_column_values_as_string("abc123", "Data!A1:A3", True) == ["alice", "bob"])

    sheets_service.spreadsheets().values().get().execute.return_value = VALUES_API_RESPONSE
    with pytest.raises(TypeMismatch):
        client.get_column_values_as_string("abc123", "Data!A1:C3")

def test_sheet_values_mapped(client, sheets_service):
    sheets_service.spreadsheets().values().get().execute.return_value = VALUES_API_RESPONSE
    assert(client.get_sheet_values_mapped("abc123", "Data!A1:C3", 0) == {"a": [[1, 2], [5, 6]],
                                                                          "b": [[3, 4]]})
    with pytest.raises(IndexOutOfRange):
        client.get_sheet_values_mapped("abc123", "Data!A1:C3", 3)


def test_clear_range(client, sheets_service):
    sheets_service.spreadsheets().values().clear().execute.return_value = {
        "spreadsheetId": "abc123", "clearedRange": "Data!A1:C3"}
    assert(client.clear_range("abc123", "Data!A1:C3").clearedRange == "Data!A1:C3")

def test_clear_failure_propagates(client, sheets_service):
    sheets_service.spreadsheets().values().clear().execute.side_effect = make_http_error(404, "Not found")
    with pytest.raises(TransportFailure):
        client.clear_range("abc123", "Data!A1:C3")

def test_clear_timeout_propagates(client, sheets_service):
    sheets_service.spreadsheets().values().clear().execute.side_effect = TimeoutError("timed out")
    with pytest.raises(TransportFailure):
        client.clear_range("abc123", "Data!A1:C3")


def test_lazy_service_from_access(mocker, sheets_service):
    get_service = mocker.patch("gsheets3k.access.gws.get_service", return_value=sheets_service)
    client = GoogleSheets3k()
    get_service.assert_not_called()
    sheets_service.spreadsheets().get().execute.return_value = SPREADSHEET_API_RESPONSE
    assert(client.get_spreadsheet("abc123").title == "My Sheet")
    client.get_spreadsheet("abc123")
    get_service.assert_called_once_with("sheets", "v4")
