# medbill/database/errors.py
"""
Domain-level errors the UI boundary can surface directly (toast / message box).

  DomainError
    ├── ValidationError   bad input or a business rule refused the operation
    ├── NotFoundError     a referenced bill/batch/customer/... does not exist
    └── PersistenceError  the underlying SQLite operation failed
"""


class DomainError(Exception):
    """Base class for errors that carry a user-presentable message."""
    pass


class ValidationError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


class PersistenceError(DomainError):
    pass
