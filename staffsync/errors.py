"""
Error Types Module
Exception taxonomy shared by the synchronization and alerting engines.
"""

from typing import List, Optional, Tuple


class StaffsyncError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationMissing(StaffsyncError):
    """Required configuration (base URL, credential, centres) is absent."""


class NoCredentialAvailable(ConfigurationMissing):
    """Neither a tenant credential nor a legacy session is configured."""


class RemoteAPIError(StaffsyncError):
    """Error returned by (or while reaching) the remote API."""

    def __init__(self, message: str, status_code: int = None, response=None):
        self.status_code = status_code
        self.response = response
        super().__init__(message)


class AuthenticationFailed(RemoteAPIError):
    """The remote API refused the credentials (401/403). Never retried."""


class RemoteUnavailable(RemoteAPIError):
    """The remote API stayed unavailable (5xx or network) after all retries."""


class RemoteRejected(RemoteAPIError):
    """The remote API rejected the request for a business reason."""


class StorageWriteFailed(StaffsyncError):
    """A chunk of an upsert could not be written."""

    def __init__(self, message: str, inserted: int = 0, updated: int = 0,
                 chunk_index: Optional[int] = None, duplicate_keys: List[Tuple] = None):
        self.inserted = inserted
        self.updated = updated
        self.chunk_index = chunk_index
        self.duplicate_keys = duplicate_keys or []
        super().__init__(message)


class RunInProgress(StaffsyncError):
    """Another run holds the lease for the same run kind."""


class RunCancelled(StaffsyncError):
    """The run was cancelled cooperatively."""


class EmailDeliveryFailed(StaffsyncError):
    """The e-mail provider did not accept a message."""
