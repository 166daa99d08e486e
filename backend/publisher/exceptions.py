# backend/publisher/exceptions.py
"""
🚨 SCHEDULED PUBLISHER - Error Taxonomy
Centralized exceptions shared by the dispatcher, adapters and API layer.
"""

import asyncio
from typing import Optional


class PublisherError(Exception):
    """
    Base error for the publishing pipeline.

    Attributes:
        message: Human-readable message, stored verbatim on failed content
        details: Optional additional context
        retryable: Whether the failure is transient
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.details = details or {}
        self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class AuthError(PublisherError):
    """Missing or invalid shared secret / session"""
    status_code = 401


class AuthorizationError(PublisherError):
    """Caller is authenticated but does not own the resource"""
    status_code = 403


class NotFoundError(PublisherError):
    status_code = 404


class InvalidStateError(PublisherError):
    """Operation not allowed in the content's current status"""
    status_code = 409


class ValidationError(PublisherError):
    """Missing required fields or malformed media, raised before any remote call"""
    status_code = 400


class CredentialError(PublisherError):
    """Platform account not connected, or token expired and refresh failed"""
    status_code = 400


class PublishError(PublisherError):
    """The remote platform rejected or failed the publish call"""
    status_code = 502

    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        details: Optional[dict] = None,
        retryable: bool = False,
    ):
        self.platform = platform
        super().__init__(message, details=details, retryable=retryable)


class StorageError(PublisherError):
    status_code = 502


class StorageCleanupError(StorageError):
    """Non-fatal: temporary blob could not be deleted"""


def error_from_exception(e: Exception) -> PublisherError:
    """Convert a generic exception to a PublisherError"""
    if isinstance(e, PublisherError):
        return e

    if isinstance(e, asyncio.TimeoutError):
        return PublishError("Platform request timed out", retryable=True)

    message = str(e) or e.__class__.__name__
    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return PublishError(message, retryable=True)
    if "connection" in lowered or "network" in lowered:
        return PublishError(message, retryable=True)

    return PublisherError(message)
