"""
Classes to facilitate working with Google Sheets
"""
from .client import GoogleSheets3k
from .retry import RetryPolicy
