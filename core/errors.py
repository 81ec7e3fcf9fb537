"""
Error classes for the retention engine.

Two families:
- Fatal errors abort the whole run (CatalogError, StoreResolutionError).
- Everything else raised inside one job is caught at the job boundary,
  written to the execution log as an ERROR entry, and the run moves on.
"""


class RetentionError(Exception):
    """Base exception for the retention engine."""
    pass


class IdentifierError(RetentionError, ValueError):
    """A schema/table/column/alias name failed the identifier allow-list."""
    pass


class JobConfigurationError(RetentionError):
    """
    A catalog row cannot be executed as written.

    Examples:
    - ARCHIVE job without a target table
    - Source table or retention column does not exist
    - Retention column is not a date/time column
    - Table has no primary key to identify batch rows
    """
    pass


class CatalogError(RetentionError):
    """Job catalog unreadable or execution log unwritable. Fatal."""
    pass


class StoreResolutionError(RetentionError):
    """A remote store alias cannot be resolved to connection details. Fatal."""
    pass


class TransactionCoordinationError(RetentionError):
    """A unit of work spanning several stores could not be prepared or committed."""
    pass


class ConservationError(RetentionError):
    """A copy batch deleted a different number of rows than it inserted."""
    pass
