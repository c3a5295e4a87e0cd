# crm/core/exceptions.py


class AccessControlError(Exception):
    """Base class for errors raised by the permission core."""


class InputError(AccessControlError, ValueError):
    """
    A save request named a module outside the catalog or a level outside
    the nine access levels. Every rejected entry is listed so the caller
    can surface all of them at once.
    """

    def __init__(self, message: str, rejected: list[str] | None = None):
        super().__init__(message)
        self.rejected = rejected or []


class StoreError(AccessControlError):
    """The persisted store was unreachable or rejected the write."""
