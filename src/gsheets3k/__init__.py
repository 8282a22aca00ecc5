"""
A convenience wrapper around the Google Sheets v4 Python client.
The goal is to simplify the common jobs: authenticating, creating a
spreadsheet, shuffling its tabs and reading/writing/clearing cell ranges.

Python dataclasses are used for the resource structs and most of the logic is
translating between those and the raw dicts the client deals in.
"""
import logging

from .access import gws, service, credentials_from_oauth2, credentials_from_service_account, build_service
from .exceptions import (GoogleSheets3kError, TransportFailure, QuotaExceeded,
                         TabNotFound, TypeMismatch, IndexOutOfRange)
from .sheets import GoogleSheets3k, RetryPolicy

logging.getLogger(__name__).addHandler(logging.NullHandler())
