"""
Error kinds raised by the EDO client and the document lifecycle.

BackendNotConfigured and BackendError are separate branches:
the first switches the console into offline/demo behaviour, the second is a
real failure that must reach the user and leave state untouched.
"""
from typing import Optional


class EdoError(Exception):
    """Base class for everything the console reports to the user."""


class BackendNotConfigured(EdoError):
    """The backend route does not exist (feature not configured)."""

    def __init__(self, path: str, status_code: Optional[int] = None):
        self.path = path
        self.status_code = status_code
        super().__init__("Not found" if status_code != 405 else "Method not allowed")


class BackendError(EdoError):
    """Validation error, server error or transport failure."""

    def __init__(self, message: str, path: Optional[str] = None, status_code: Optional[int] = None):
        self.path = path
        self.status_code = status_code
        super().__init__(message)


class InvalidTransition(EdoError):
    def __init__(self, action: str, status: str):
        self.action = action
        self.status = status
        super().__init__(f"Действие '{action}' недоступно в статусе '{status}'")


class ReceiptNotReady(EdoError):
    def __init__(self, unmatched: int):
        self.unmatched = unmatched
        super().__init__(
            "Не все строки сопоставлены. Завершите сопоставление перед созданием прихода."
        )


class MissingReason(EdoError):
    def __init__(self):
        super().__init__("Укажите причину отказа")
