import json
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from gsheets3k.access import gws

SPREADSHEET_API_RESPONSE = {
    "spreadsheetId": "abc123",
    "properties": {"title": "My Sheet", "locale": "en_US", "timeZone": "Etc/GMT"},
    "sheets": [
        {"properties": {"sheetId": 0, "title": "Sheet1", "index": 0, "sheetType": "GRID",
                        "gridProperties": {"rowCount": 1000, "columnCount": 26}}},
        {"properties": {"sheetId": 7, "title": "Data", "index": 1, "sheetType": "GRID",
                        "gridProperties": {"rowCount": 100, "columnCount": 5}},
         "protectedRanges": []},
    ],
    "spreadsheetUrl": "https://docs.google.com/spreadsheets/d/abc123/edit",
    "namedRanges": [],
}


def make_http_error(status, message="error", errors=None):
    """HttpError the way the client raises it, with a JSON error body"""
    resp = MagicMock()
    resp.status = status
    resp.reason = "Error"
    error = {"code": status, "message": message}
    if errors is not None:
        error["errors"] = errors
    return HttpError(resp=resp, content=json.dumps({"error": error}).encode("utf-8"))


def quota_error():
    return make_http_error(429, "Quota exceeded for quota metric 'Write requests' and limit "
                                "'Write requests per minute per user'")


@pytest.fixture
def sheets_service():
    """Stand in for a built sheets v4 Resource"""
    return MagicMock()


@pytest.fixture(autouse=True)
def reset_access():
    yield
    gws.reset()
