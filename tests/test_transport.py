#!/usr/bin/env python3
"""
Tests for the HTTP transport: request mutators, failure translation and
the 401 credential wipe.

Run with:
    python -m pytest tests/test_transport.py
"""
import os
import shutil
import socket
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from whattoeat.errors import ConnectionRefused, HostUnresolvable, OtherTransport, Timeout
from whattoeat.models import Failure
from whattoeat.repositories import ConfigStore
from whattoeat.services.gateway import RemoteGateway
from whattoeat.services.transport import Transport, translate


def _resp(status=200):
    resp = MagicMock()
    resp.status_code = status
    return resp


class TransportTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.store = ConfigStore(os.path.join(self.tmp, 'settings.json'))
        self.session = MagicMock()
        self.session.send.return_value = _resp()
        self.transport = Transport(self.store, timeout=5, session=self.session)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _sent(self, index=-1):
        """Return the PreparedRequest passed to session.send."""
        return self.session.send.call_args_list[index][0][0]


# ===========================================================================
# Mutators
# ===========================================================================

class TestBearer(TransportTestCase):

    def test_no_header_without_token(self):
        self.transport.send('GET', 'api/menus')
        self.assertNotIn('Authorization', self._sent().headers)

    def test_header_with_token(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.transport.send('GET', 'api/menus')
        self.assertEqual(self._sent().headers['Authorization'], 'Bearer t1')

    def test_unauthenticated_call_skips_token(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.transport.send('POST', 'api/auth/guest', authenticated=False)
        self.assertNotIn('Authorization', self._sent().headers)

    def test_json_body_and_accept_header(self):
        self.transport.send('POST', 'api/menus', {'dish_name': 'Ramen'})
        sent = self._sent()
        self.assertEqual(sent.headers['Accept'], 'application/json')
        self.assertIn(b'Ramen', sent.body)


class TestBaseUrl(TransportTestCase):

    def test_default_server(self):
        self.transport.send('GET', 'api/menus')
        self.assertEqual(self._sent().url, 'http://localhost:8080/api/menus')

    def test_address_change_applies_to_next_call(self):
        self.transport.send('GET', 'api/menus')
        self.store.set_server_host('https://food.example.com:9443')
        self.transport.send('GET', 'api/menus')
        self.assertEqual(self._sent(0).url, 'http://localhost:8080/api/menus')
        self.assertEqual(self._sent(1).url, 'https://food.example.com:9443/api/menus')

    def test_path_with_id_kept(self):
        self.store.set_server_host('http://10.0.0.2:8080')
        self.transport.send('DELETE', 'api/menus/12')
        self.assertEqual(self._sent().url, 'http://10.0.0.2:8080/api/menus/12')

    def test_explicit_base_url_bypasses_rewrite(self):
        self.store.set_server_host('http://10.0.0.2:8080')
        self.transport.send('GET', 'health', authenticated=False,
                            base_url='http://candidate:9000/', timeout=2)
        self.assertEqual(self._sent().url, 'http://candidate:9000/health')
        self.assertEqual(self.session.send.call_args[1]['timeout'], 2)

    def test_default_timeout_used(self):
        self.transport.send('GET', 'api/menus')
        self.assertEqual(self.session.send.call_args[1]['timeout'], 5)


# ===========================================================================
# 401 handling
# ===========================================================================

class TestUnauthorized(TransportTestCase):

    def test_401_with_token_clears_credentials(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.session.send.return_value = _resp(401)
        response = self.transport.send('GET', 'api/menus')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(self.store.is_logged_in())

    def test_401_wipe_failure_still_returns_response(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.session.send.return_value = _resp(401)
        with patch.object(self.store, '_save', side_effect=OSError('disk full')):
            response = self.transport.send('GET', 'api/menus')
        self.assertEqual(response.status_code, 401)

    def test_401_wipe_failure_is_a_gateway_failure(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.session.send.return_value = _resp(401)
        with patch.object(self.store, '_save', side_effect=OSError('disk full')):
            result = RemoteGateway(self.transport).get_menus()
        self.assertIsInstance(result, Failure)
        self.assertEqual(result.message, 'Failed to load menus')

    def test_401_on_login_keeps_credentials(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.session.send.return_value = _resp(401)
        self.transport.send('POST', 'api/auth/login', authenticated=False)
        self.assertTrue(self.store.is_logged_in())


# ===========================================================================
# Failure translation
# ===========================================================================

class TestTranslate(TransportTestCase):

    def test_gaierror_cause_is_unresolvable(self):
        exc = requests.ConnectionError('Max retries exceeded')
        exc.__cause__ = socket.gaierror(-2, 'Name or service not known')
        self.assertIsInstance(translate(exc), HostUnresolvable)

    def test_dns_text_is_unresolvable(self):
        exc = requests.ConnectionError(
            "HTTPConnectionPool(host='nope', port=80): Failed to resolve 'nope'")
        self.assertIsInstance(translate(exc), HostUnresolvable)

    def test_refused(self):
        exc = requests.ConnectionError(ConnectionRefusedError(111, 'Connection refused'))
        self.assertIsInstance(translate(exc), ConnectionRefused)

    def test_connect_timeout_is_timeout(self):
        self.assertIsInstance(translate(requests.ConnectTimeout('slow')), Timeout)
        self.assertIsInstance(translate(requests.ReadTimeout('slow')), Timeout)

    def test_ssl_is_other(self):
        self.assertIsInstance(translate(requests.exceptions.SSLError('bad cert')), OtherTransport)

    def test_address_without_host_is_other_transport(self):
        for address in ('http://', 'http://:8080'):
            with self.assertRaises(OtherTransport):
                self.transport.send('GET', 'health', authenticated=False, base_url=address)
        self.session.send.assert_not_called()

    def test_health_on_address_without_host_fails_cleanly(self):
        result = RemoteGateway(self.transport).health(base_url='http://')
        self.assertIsInstance(result, Failure)
        self.assertIsInstance(result.cause, OtherTransport)
        self.assertIn('Invalid URL', str(result.cause))

    def test_send_raises_translated_error(self):
        self.session.send.side_effect = requests.ConnectTimeout('slow')
        with self.assertRaises(Timeout):
            self.transport.send('GET', 'api/menus')


if __name__ == '__main__':
    unittest.main()
