#!/usr/bin/env python3
"""
Tests for the command-line front-end (whattoeat_cli.py).

Run with:
    python -m pytest tests/test_cli.py
"""
import io
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import whattoeat_cli
from whattoeat.models import MenuItem, Restaurant


# ===========================================================================
# load_config
# ===========================================================================

class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, 'config.json')

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _write(self, text):
        with open(self.path, 'w') as f:
            f.write(text)

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_file_gives_defaults(self):
        config = whattoeat_cli.load_config(self.path)
        self.assertEqual(config['log_level'], 'WARNING')
        self.assertEqual(config['api_timeout_seconds'], 30)
        self.assertEqual(config['health_timeout_seconds'], 10)
        self.assertEqual(config['settings_file'], '.whattoeat_settings.json')

    @patch.dict(os.environ, {}, clear=True)
    def test_file_values_used(self):
        self._write(json.dumps({'log_level': 'DEBUG', 'api_timeout_seconds': 12,
                                'server_host': 'http://ignored'}))
        config = whattoeat_cli.load_config(self.path)
        self.assertEqual(config['log_level'], 'DEBUG')
        self.assertEqual(config['api_timeout_seconds'], 12.0)
        self.assertNotIn('server_host', config)

    @patch.dict(os.environ, {'WHATTOEAT_API_TIMEOUT': '7',
                             'WHATTOEAT_SETTINGS_FILE': '/tmp/x.json'}, clear=True)
    def test_env_overrides_file(self):
        self._write(json.dumps({'api_timeout_seconds': 12}))
        config = whattoeat_cli.load_config(self.path)
        self.assertEqual(config['api_timeout_seconds'], 7.0)
        self.assertEqual(config['settings_file'], '/tmp/x.json')

    @patch.dict(os.environ, {}, clear=True)
    def test_malformed_file_exits(self):
        self._write('{broken')
        with patch('sys.stdout', new_callable=io.StringIO):
            with self.assertRaises(SystemExit) as ctx:
                whattoeat_cli.load_config(self.path)
        self.assertEqual(ctx.exception.code, 1)

    @patch.dict(os.environ, {'WHATTOEAT_API_TIMEOUT': 'soon'}, clear=True)
    def test_bad_timeout_exits(self):
        with patch('sys.stdout', new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                whattoeat_cli.load_config(self.path)


# ===========================================================================
# One-shot commands
# ===========================================================================

class TestRun(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.start.return_value = True
        self.client.store.get_server_host.return_value = 'http://localhost:8080'

    def _run(self, *argv):
        args = whattoeat_cli.build_parser().parse_args(list(argv))
        with patch('sys.stdout', new_callable=io.StringIO) as out:
            code = whattoeat_cli.run(args, self.client)
        return code, out.getvalue()

    def test_menus_listed_by_restaurant(self):
        joes = Restaurant(4, "Joe's")
        self.client.home.state.menus = (MenuItem(12, 4, 'Ramen', restaurant=joes),
                                        MenuItem(13, 4, 'Gyoza', restaurant=joes))
        code, out = self._run('--menus')
        self.assertEqual(code, 0)
        self.assertIn("Joe's", out)
        self.assertIn('[12]', out)
        self.assertIn('Gyoza', out)

    def test_decide_refused_exits_nonzero(self):
        self.client.home.decide.return_value = None
        self.client.home.state.error = 'Please add a menu first'
        code, out = self._run('--decide')
        self.assertEqual(code, 1)
        self.assertIn('Please add a menu first', out)

    def test_not_signed_in_exits_nonzero(self):
        self.client.start.return_value = False
        code, _ = self._run('--history')
        self.assertEqual(code, 1)
        self.client.home.load_data.assert_not_called()
        self.client.home.refresh_history.assert_not_called()

    def test_history_refreshes_only_history(self):
        self.client.home.state.history_records = ()
        code, out = self._run('--history')
        self.assertEqual(code, 0)
        self.client.home.refresh_history.assert_called_once_with()
        self.client.home.load_data.assert_not_called()
        self.assertIn('Nothing decided yet', out)

    def test_logout_needs_no_session(self):
        code, _ = self._run('--logout')
        self.assertEqual(code, 0)
        self.client.session.logout.assert_called_once_with()
        self.client.start.assert_not_called()

    def test_add_menu(self):
        self.client.home.state.error = None
        code, out = self._run('--add-menu', "Joe's", 'Udon')
        self.assertEqual(code, 0)
        self.client.home.add_menu.assert_called_once_with("Joe's", 'Udon')
        self.assertIn('Added Udon', out)

    def test_server_saved(self):
        self.client.settings.state.error = None
        code, _ = self._run('--server', 'http://10.0.0.2:8080')
        self.assertEqual(code, 0)
        self.client.settings.save_server_address.assert_called_once_with('http://10.0.0.2:8080')

    def test_reset_server(self):
        self.client.settings.state.error = None
        self._run('--reset-server')
        self.client.settings.reset_to_default.assert_called_once_with()
        self.client.settings.save_settings.assert_called_once_with()


if __name__ == '__main__':
    unittest.main()
