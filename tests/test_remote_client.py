"""
Unit Tests for Remote Authentication and the Remote Client
"""

import unittest
from unittest.mock import Mock

import requests

from staffsync.config_manager import RemoteConfig
from staffsync.errors import (
    AuthenticationFailed, ConfigurationMissing, NoCredentialAvailable,
    RemoteRejected, RemoteUnavailable
)
from staffsync.remote.auth import AUTH_BEARER, AUTH_SESSION, AuthDescriptor, ProxyAuthResolver
from staffsync.remote.client import RemoteClient
from db_support import add_franchisee, http_response, make_db


class TestProxyAuthResolver(unittest.TestCase):
    """Credential priority: tenant key, then legacy session, then failure."""

    def setUp(self):
        self.db = make_db()
        self.keyed_tenant = add_franchisee(self.db, 'Keyed', api_key='tenant-key', business_id='B9')
        self.plain_tenant = add_franchisee(self.db, 'Plain', business_id='B7')

    def test_tenant_key_wins_over_session(self):
        resolver = ProxyAuthResolver(RemoteConfig(session_id='legacy'), self.db)

        auth = resolver.resolve(self.keyed_tenant)

        self.assertEqual(auth.method, AUTH_BEARER)
        self.assertEqual(auth.secret, 'tenant-key')
        self.assertEqual(auth.business_id, 'B9')

    def test_session_used_without_tenant_key(self):
        resolver = ProxyAuthResolver(RemoteConfig(session_id='legacy'), self.db)

        auth = resolver.resolve(self.plain_tenant)

        self.assertEqual(auth.method, AUTH_SESSION)
        self.assertEqual(auth.secret, 'legacy')
        self.assertEqual(auth.business_id, 'B7')

    def test_session_used_without_tenant(self):
        resolver = ProxyAuthResolver(RemoteConfig(session_id='legacy'), self.db)

        self.assertEqual(resolver.resolve().method, AUTH_SESSION)

    def test_no_credential_fails(self):
        resolver = ProxyAuthResolver(RemoteConfig(), self.db)

        with self.assertRaises(NoCredentialAvailable):
            resolver.resolve(self.plain_tenant)

        with self.assertRaises(ConfigurationMissing):
            resolver.resolve()

    def test_headers(self):
        bearer = AuthDescriptor(AUTH_BEARER, 'k')
        session = AuthDescriptor(AUTH_SESSION, 's')

        self.assertEqual(bearer.headers(), {'Authorization': 'Bearer k'})
        self.assertEqual(session.headers(), {'Cookie': 'JSESSIONID=s'})


class TestRemoteClient(unittest.TestCase):
    """Test error mapping and query scoping with a mocked transport."""

    def setUp(self):
        self.config = RemoteConfig(
            base_url='https://remote.test', session_id='legacy', default_business_id='B1'
        )
        self.transport = Mock()
        self.recorder = Mock()
        self.client = RemoteClient(
            self.config,
            ProxyAuthResolver(self.config),
            transport=self.transport,
            latency_recorder=self.recorder
        )

    def test_success_returns_payload_and_metadata(self):
        self.transport.request.return_value = http_response(200, [{'id': 1}])

        response = self.client.request('/api/employees')

        self.assertEqual(response.data, [{'id': 1}])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.auth_method, AUTH_SESSION)
        self.recorder.assert_called_once()
        self.assertTrue(self.recorder.call_args.args[4])

    def test_default_business_id_is_added(self):
        self.transport.request.return_value = http_response(200, [])

        self.client.list_employees(service_id='S1')

        params = self.transport.request.call_args.kwargs['params']
        self.assertEqual(params, {'serviceId': 'S1', 'businessId': 'B1'})

    def test_business_scoped_path_is_left_alone(self):
        self.transport.request.return_value = http_response(200, [])

        self.client.list_services(business_id='B5')

        args = self.transport.request.call_args
        self.assertEqual(args.args[1], 'https://remote.test/importer/api/v2/businesses/B5/services')
        self.assertNotIn('businessId', args.kwargs['params'])

    def test_authentication_failure(self):
        self.transport.request.return_value = http_response(401, {'message': 'expired'})

        with self.assertRaises(AuthenticationFailed) as ctx:
            self.client.request('/api/employees')

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertFalse(self.recorder.call_args.args[4])

    def test_server_error_is_unavailable(self):
        self.transport.request.return_value = http_response(503, {})

        with self.assertRaises(RemoteUnavailable) as ctx:
            self.client.request('/api/employees')

        self.assertEqual(ctx.exception.status_code, 503)

    def test_business_error_is_rejected_with_message(self):
        self.transport.request.return_value = http_response(422, {'message': 'Invalid shift'})

        with self.assertRaises(RemoteRejected) as ctx:
            self.client.upsert_assignment({'id': 'a1'})

        self.assertEqual(ctx.exception.message, 'Invalid shift')
        self.assertEqual(ctx.exception.status_code, 422)

    def test_network_failure_is_unavailable(self):
        self.transport.request.side_effect = requests.exceptions.ConnectionError('refused')

        with self.assertRaises(RemoteUnavailable) as ctx:
            self.client.request('/api/employees')

        self.assertIsNone(ctx.exception.status_code)

    def test_missing_base_url_fails_before_network(self):
        config = RemoteConfig(base_url='', session_id='legacy')
        client = RemoteClient(config, ProxyAuthResolver(config), transport=self.transport)

        with self.assertRaises(ConfigurationMissing):
            client.list_employees()

        self.transport.request.assert_not_called()

    def test_get_sends_no_body(self):
        self.transport.request.return_value = http_response(200, [])

        self.client.request('/api/employees', method='get', body={'ignored': True})

        self.assertIsNone(self.transport.request.call_args.kwargs['json_data'])

    def test_connection_test_reports_failure(self):
        self.transport.request.return_value = http_response(500, {})

        self.assertFalse(self.client.test_connection(service_id='S1'))


if __name__ == '__main__':
    unittest.main()
