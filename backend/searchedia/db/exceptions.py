"""Database-specific exceptions for the remote store."""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class DuplicateRecordError(DatabaseError):
    """Raised when attempting to create a duplicate record."""

    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    pass
