"""
Remote Authentication Module
Chooses the credential attached to each remote API call.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from staffsync.config_manager import RemoteConfig
from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import Franchisee
from staffsync.errors import NoCredentialAvailable
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

AUTH_BEARER = 'bearer'
AUTH_SESSION = 'session'


@dataclass(frozen=True)
class AuthDescriptor:
    """Authentication method and secret for one outbound request."""
    method: str
    secret: str
    tenant_id: Optional[int] = None
    business_id: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        """Headers carrying the credential."""
        if self.method == AUTH_BEARER:
            return {'Authorization': f'Bearer {self.secret}'}
        return {'Cookie': f'JSESSIONID={self.secret}'}


class ProxyAuthResolver:
    """
    Resolves credentials in migration order:

    1. the tenant's bearer key, when a tenant id is given and it has one
    2. the process-wide legacy session
    3. otherwise NoCredentialAvailable
    """

    def __init__(self, config: RemoteConfig, db: Optional[DatabaseConnection] = None):
        self.config = config
        self.db = db

    def resolve(self, tenant_id: Optional[int] = None) -> AuthDescriptor:
        business_id = None

        if tenant_id is not None and self.db is not None:
            with self.db.session_scope() as session:
                tenant = session.get(Franchisee, tenant_id)
                if tenant is not None:
                    business_id = tenant.remote_business_id or None
                    if tenant.remote_api_key:
                        return AuthDescriptor(
                            method=AUTH_BEARER,
                            secret=tenant.remote_api_key,
                            tenant_id=tenant.id,
                            business_id=business_id
                        )
                else:
                    logger.warning(f"Tenant {tenant_id} not found, falling back to legacy session")

        if self.config.session_id:
            return AuthDescriptor(
                method=AUTH_SESSION,
                secret=self.config.session_id,
                tenant_id=tenant_id,
                business_id=business_id
            )

        raise NoCredentialAvailable(
            f"No remote credential available (tenant={tenant_id}, legacy session not configured)"
        )
