"""
Ingestion Exceptions

Run-level and queue-level failures raised by the ingestion subsystem.
Row-level problems are not exceptions; see ``row_parser.RowSkip``.
"""


class IngestionError(Exception):
    """Base class for ingestion errors"""


class JobCancelledError(IngestionError):
    """A blocking wait observed the cancellation signal"""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class IngestionBusyError(IngestionError):
    """Another ingestion run holds the ingestion lock"""

    def __init__(self, message: str = "An ingestion run is already in progress"):
        super().__init__(message)


class StoreError(IngestionError):
    """The record store rejected or failed a write"""


class DuplicateKeyError(StoreError):
    """A write violated a uniqueness constraint"""
