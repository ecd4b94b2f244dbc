"""
Remote Module
Authenticated, retrying access to the remote workforce-management API.
"""

from .auth import AUTH_BEARER, AUTH_SESSION, AuthDescriptor, ProxyAuthResolver
from .client import RemoteClient, RemoteResponse
from .transport import RetryingTransport

__all__ = [
    'AUTH_BEARER',
    'AUTH_SESSION',
    'AuthDescriptor',
    'ProxyAuthResolver',
    'RemoteClient',
    'RemoteResponse',
    'RetryingTransport'
]
