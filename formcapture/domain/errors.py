"""
Error taxonomy for formcapture.

"Nothing matched" on delete is an expected outcome and is reported through a
``False`` return value rather than an exception.
"""

from __future__ import annotations


class FormCaptureError(Exception):
    """Base class for all formcapture errors."""


class StorageUnavailable(FormCaptureError):
    """
    The backing medium cannot be opened, written, or read.

    The message is safe to surface to API clients; the underlying driver
    error (with paths and details) is kept as ``__cause__`` for logs.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"record storage unavailable during {operation}")


class InvalidInput(FormCaptureError):
    """A caller-supplied argument cannot be interpreted."""


__all__ = ["FormCaptureError", "StorageUnavailable", "InvalidInput"]
