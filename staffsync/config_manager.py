"""
Configuration Manager Module
Handles loading and accessing application configuration from YAML files and environment variables.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_CHUNK_SIZE = 500


@dataclass
class RemoteConfig:
    """Connection settings for the remote workforce-management API."""
    base_url: str = ''
    session_id: Optional[str] = None
    default_business_id: Optional[str] = None
    timeout: int = 30
    max_attempts: int = 3
    requests_per_second: float = 0


@dataclass
class SyncConfig:
    """Settings for synchronization runs."""
    chunk_size: int = DEFAULT_CHUNK_SIZE
    lease_ttl_seconds: int = 3600
    default_days_back: int = 7


@dataclass
class EmailConfig:
    """Settings for outbound alert e-mail."""
    api_key: Optional[str] = None
    api_url: str = 'https://api.resend.com/emails'
    sender: str = 'Staffsync Alerts <alerts@staffsync.local>'
    timeout: int = 15

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class CorsConfig:
    """Cross-origin allow-list."""
    allowed_origins: List[str] = field(default_factory=lambda: ['*'])

    @property
    def allow_all(self) -> bool:
        return '*' in self.allowed_origins


def _split_origins(value) -> List[str]:
    if not value:
        return ['*']
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(',') if part.strip()]


def _optional(value) -> Optional[str]:
    """Treat empty strings (unset env substitutions) as missing."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class ConfigManager:
    """Manages application configuration from YAML files and environment variables."""

    _instance = None
    _config: Dict = None

    def __new__(cls):
        """Singleton pattern for configuration."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize configuration if not already loaded."""
        if self._config is None:
            self._load_configuration()

    def _load_configuration(self) -> None:
        """Load all configuration files."""
        # Load environment variables from .env file
        load_dotenv()

        self._config_dir = self._find_config_dir()

        config_path = self._config_dir / 'config.yaml'
        self._config = self._load_yaml_with_env(config_path)

    def _find_config_dir(self) -> Path:
        """Find the configuration directory."""
        env_config_dir = os.getenv('CONFIG_DIR')
        if env_config_dir:
            return Path(env_config_dir)

        possible_paths = [
            Path(__file__).parent.parent / 'config',  # Relative to the package
            Path.cwd() / 'config',
            Path('/app/config'),  # Docker container
        ]

        for path in possible_paths:
            if path.exists():
                return path

        raise FileNotFoundError("Configuration directory not found")

    def _load_yaml_with_env(self, file_path: Path) -> Dict:
        """
        Load YAML file with environment variable substitution.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
        """
        if not file_path.exists():
            return {}

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        content = self._substitute_env_vars(content)

        return yaml.safe_load(content) or {}

    def _substitute_env_vars(self, content: str) -> str:
        """
        Substitute environment variables in string.

        Supports:
        - ${VAR_NAME} - Required variable
        - ${VAR_NAME:-default} - Variable with default value
        """
        pattern = r'\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2)

            value = os.getenv(var_name)
            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                return ''

        return re.sub(pattern, replacer, content)

    # ========================================
    # Configuration Getters
    # ========================================

    def get_remote_config(self) -> Dict:
        """Get remote API configuration."""
        return self._config.get('remote', {}) or {}

    def get_sync_config(self) -> Dict:
        """Get synchronization configuration."""
        return self._config.get('sync', {}) or {}

    def get_database_config(self) -> Dict:
        """Get database configuration."""
        return self._config.get('database', {}) or {}

    def get_cors_config(self) -> Dict:
        """Get cross-origin configuration."""
        return self._config.get('cors', {}) or {}

    def get_email_config(self) -> Dict:
        """Get alert e-mail configuration."""
        return self._config.get('email', {}) or {}

    def get_logging_config(self) -> Dict:
        """Get logging configuration."""
        return self._config.get('logging', {}) or {}

    def get_scheduler_config(self) -> Dict:
        """Get scheduler configuration."""
        return self._config.get('scheduler', {}) or {}

    # ========================================
    # Typed settings
    # ========================================

    def build_remote_config(self) -> RemoteConfig:
        """Build the remote API settings injected into the client."""
        remote = self.get_remote_config()
        return RemoteConfig(
            base_url=(remote.get('base_url') or '').rstrip('/'),
            session_id=_optional(remote.get('session_id')),
            default_business_id=_optional(remote.get('default_business_id')),
            timeout=int(remote.get('timeout', 30)),
            max_attempts=int(remote.get('max_attempts', 3)),
            requests_per_second=float(remote.get('requests_per_second', 0) or 0)
        )

    def build_sync_config(self) -> SyncConfig:
        """Build the synchronization settings."""
        sync = self.get_sync_config()
        return SyncConfig(
            chunk_size=int(sync.get('chunk_size') or DEFAULT_CHUNK_SIZE),
            lease_ttl_seconds=int(sync.get('lease_ttl_seconds', 3600)),
            default_days_back=int(sync.get('default_days_back', 7))
        )

    def build_email_config(self) -> EmailConfig:
        """Build the e-mail delivery settings."""
        email = self.get_email_config()
        defaults = EmailConfig()
        return EmailConfig(
            api_key=_optional(email.get('api_key')),
            api_url=email.get('api_url') or defaults.api_url,
            sender=email.get('sender') or defaults.sender,
            timeout=int(email.get('timeout', defaults.timeout))
        )

    def build_cors_config(self) -> CorsConfig:
        """Build the cross-origin allow-list."""
        return CorsConfig(
            allowed_origins=_split_origins(self.get_cors_config().get('allowed_origins'))
        )
