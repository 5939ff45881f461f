"""
Error types raised by the stock import pipeline.

Workbook-level errors (FormatError, NoDataError) abort the whole import.
Product-level errors (ValidationError, PersistenceError) are recorded
against one product and the batch carries on with the next.
"""


class StockImportError(Exception):
    """Base class for every error raised while importing stock."""


class FormatError(StockImportError):
    """Workbook cannot be read or does not follow the two-sheet layout."""


class NoDataError(StockImportError):
    """Workbook was read but no product table could be extracted."""


class ValidationError(StockImportError):
    """A parsed product has nothing worth saving."""


class PersistenceError(StockImportError):
    """The stock store rejected a read or write."""


class AuthorizationError(StockImportError):
    """Caller is not allowed to import stock."""
