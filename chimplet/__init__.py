"""
Chimplet - MailChimp List Service Facade - Core Package

This package wraps a single MailChimp API connection behind a facade that
normalizes every vendor failure into booleans, plain data or a Result, and
keeps the "current list" context with its groupings and merge fields cached
for the duration of a session.

Core modules:
- config: Environment/.env configuration, option store and logging setup
- connection: MailChimp 3.0 REST client (one requests.Session per connection)
- facade: ListServiceFacade - list, grouping, merge field, folder, segment and campaign operations
- results: Uniform Result type returned by the error-returning facade operations
- errors: Vendor and domain error classes
- overview: Account overview report (API key badge, list summary)
- main: Control center entry point
"""

__version__ = "0.1.0"

from .connection import MailchimpConnection
from .errors import (
    MailchimpError, EmptySegmentError, SegmentTestError, UnsupportedOperationError
)
from .facade import ListServiceFacade, ReconcileReport
from .results import Result, ResultError

__all__ = [
    'MailchimpConnection',
    'ListServiceFacade',
    'ReconcileReport',
    'Result',
    'ResultError',
    'MailchimpError',
    'EmptySegmentError',
    'SegmentTestError',
    'UnsupportedOperationError',
]
