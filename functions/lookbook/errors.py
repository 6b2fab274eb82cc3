"""
Error taxonomy shared by the store adapters and the route handlers.
"""

from __future__ import annotations


class LookbookError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LookbookError):
    """A required field is missing or a request body is malformed."""

    status_code = 400


class NotFoundError(LookbookError):
    """The referenced document or group item does not exist."""

    status_code = 404


class StoreError(LookbookError):
    """Any failure reported by the document store."""

    status_code = 500
