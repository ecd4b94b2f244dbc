"""
Unit Tests for the Configuration Manager
"""

import os
import unittest
from unittest.mock import patch

from staffsync.config_manager import DEFAULT_CHUNK_SIZE, ConfigManager


def manager_with(config):
    """ConfigManager bypassing the singleton and file loading."""
    manager = object.__new__(ConfigManager)
    manager._config = config
    return manager


class TestEnvSubstitution(unittest.TestCase):
    """Test ${VAR} and ${VAR:-default} handling."""

    def setUp(self):
        self.manager = manager_with({})

    def test_value_from_environment(self):
        with patch.dict(os.environ, {'REMOTE_BASE_URL': 'https://remote.test'}):
            result = self.manager._substitute_env_vars('base_url: ${REMOTE_BASE_URL:-http://x}')

        self.assertEqual(result, 'base_url: https://remote.test')

    def test_default_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            result = self.manager._substitute_env_vars('chunk: ${UPSERT_CHUNK_SIZE:-500}')

        self.assertEqual(result, 'chunk: 500')

    def test_required_variable_unset_is_empty(self):
        with patch.dict(os.environ, {}, clear=True):
            result = self.manager._substitute_env_vars('key: ${RESEND_API_KEY}')

        self.assertEqual(result, 'key: ')


class TestTypedSettings(unittest.TestCase):
    """Test construction of the typed settings objects."""

    def test_remote_config(self):
        manager = manager_with({'remote': {
            'base_url': 'https://remote.test/',
            'session_id': '  ',
            'default_business_id': 'B1',
            'max_attempts': '4'
        }})

        remote = manager.build_remote_config()

        self.assertEqual(remote.base_url, 'https://remote.test')
        self.assertIsNone(remote.session_id)
        self.assertEqual(remote.default_business_id, 'B1')
        self.assertEqual(remote.max_attempts, 4)

    def test_sync_config_defaults(self):
        sync = manager_with({}).build_sync_config()

        self.assertEqual(sync.chunk_size, DEFAULT_CHUNK_SIZE)
        self.assertEqual(sync.lease_ttl_seconds, 3600)

    def test_sync_config_chunk_size(self):
        sync = manager_with({'sync': {'chunk_size': 250}}).build_sync_config()

        self.assertEqual(sync.chunk_size, 250)

    def test_email_disabled_without_key(self):
        email = manager_with({'email': {'api_key': ''}}).build_email_config()

        self.assertFalse(email.enabled)
        self.assertEqual(email.api_url, 'https://api.resend.com/emails')

    def test_cors_allow_list(self):
        cors = manager_with({'cors': {
            'allowed_origins': 'https://a.example.com, https://b.example.com'
        }}).build_cors_config()

        self.assertEqual(cors.allowed_origins, ['https://a.example.com', 'https://b.example.com'])
        self.assertFalse(cors.allow_all)

    def test_cors_defaults_to_all(self):
        cors = manager_with({}).build_cors_config()

        self.assertTrue(cors.allow_all)


if __name__ == '__main__':
    unittest.main()
