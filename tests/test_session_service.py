#!/usr/bin/env python3
"""
Tests for SessionController: launch check, guest fallback, login,
registration and logout.

Run with:
    python -m pytest tests/test_session_service.py
"""
import os
import shutil
import sys
import tempfile
import threading
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from whattoeat.models import (
    Anonymous, Authenticated, Failure, Guest, LoginInfo, Success, Unknown, User,
)
from whattoeat.repositories import ConfigStore
from whattoeat.services import RemoteGateway, SessionController
from whattoeat.services.session_service import MSG_MISSING_CREDENTIALS, MSG_SHORT_PASSWORD

WAIT = 5


def _acquire_briefly(lock) -> bool:
    if not lock.acquire(timeout=0.5):
        return False
    lock.release()
    return True


class SessionTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.store = ConfigStore(os.path.join(self.tmp, 'settings.json'))
        self.gateway = MagicMock(spec=RemoteGateway)
        self.controller = None

    def tearDown(self):
        if self.controller is not None:
            self.controller.shutdown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _make(self) -> SessionController:
        self.controller = SessionController(self.gateway, self.store)
        return self.controller


# ===========================================================================
# Launch
# ===========================================================================

class TestCheck(SessionTestCase):

    def test_initial_state_is_unknown(self):
        self.assertEqual(self._make().session, Unknown())

    def test_no_credentials_is_guest(self):
        self.assertEqual(self._make().check(), Guest())

    def test_stored_credentials_authenticate(self):
        self.store.set_credentials('t1', 3, 'alice')
        self.assertEqual(self._make().check(), Authenticated(3, 'alice'))

    def test_listeners_notified_after_lock_released(self):
        controller = self._make()
        acquired = []

        def try_lock_from_other_thread(state):
            worker = threading.Thread(
                target=lambda: acquired.append(_acquire_briefly(controller._state_lock)))
            worker.start()
            worker.join()

        controller.add_listener(try_lock_from_other_thread)
        controller.check()
        self.assertEqual(acquired, [True])

    def test_check_only_leaves_unknown(self):
        controller = self._make()
        controller.check()
        self.store.set_credentials('t1', 3, 'alice')
        self.assertEqual(controller.check(), Guest())


class TestAutoGuestLogin(SessionTestCase):

    def test_guest_login_persists_credentials(self):
        self.gateway.guest_login.return_value = Success(LoginInfo('g1', 99, 'guest_ab12'))
        controller = self._make()
        controller.check()
        state = controller.auto_guest_login().result(WAIT)
        self.assertEqual(state, Authenticated(99, 'guest_ab12'))
        self.assertEqual(self.store.get_token(), 'g1')

    def test_second_call_makes_no_request(self):
        self.gateway.guest_login.return_value = Success(LoginInfo('g1', 99, 'guest_ab12'))
        controller = self._make()
        controller.auto_guest_login().result(WAIT)
        controller.auto_guest_login().result(WAIT)
        self.assertEqual(self.gateway.guest_login.call_count, 1)

    def test_no_request_when_credentials_stored(self):
        self.store.set_credentials('t1', 3, 'alice')
        controller = self._make()
        self.assertEqual(controller.auto_guest_login().result(WAIT), Authenticated(3, 'alice'))
        self.gateway.guest_login.assert_not_called()

    def test_failure_is_anonymous_and_not_raised(self):
        self.gateway.guest_login.return_value = Failure('Network error')
        controller = self._make()
        controller.check()
        self.assertEqual(controller.auto_guest_login().result(WAIT), Anonymous())
        self.assertFalse(self.store.is_logged_in())

    def test_gateway_crash_is_anonymous(self):
        self.gateway.guest_login.side_effect = RuntimeError('boom')
        self.assertEqual(self._make().auto_guest_login().result(WAIT), Anonymous())


# ===========================================================================
# User actions
# ===========================================================================

class TestLogin(SessionTestCase):

    def test_successful_login(self):
        self.gateway.login.return_value = Success(LoginInfo('t1', 3, 'alice'))
        controller = self._make()
        self.assertTrue(controller.login('alice', 'secret1').result(WAIT))
        self.assertEqual(controller.session, Authenticated(3, 'alice'))
        self.assertTrue(controller.state.is_success)
        self.assertFalse(controller.state.is_loading)
        creds = self.store.get_credentials()
        self.assertEqual((creds.token, creds.user_id, creds.username), ('t1', 3, 'alice'))

    def test_blank_fields_make_no_request(self):
        controller = self._make()
        self.assertIsNone(controller.login('  ', 'secret1'))
        self.assertEqual(controller.state.error, MSG_MISSING_CREDENTIALS)
        self.gateway.login.assert_not_called()

    def test_rejected_login(self):
        self.gateway.login.return_value = Failure('Invalid username or password')
        controller = self._make()
        controller.check()
        self.assertFalse(controller.login('alice', 'wrong!!').result(WAIT))
        self.assertEqual(controller.state.error, 'Invalid username or password')
        self.assertEqual(controller.session, Guest())
        self.assertFalse(self.store.is_logged_in())

    def test_listener_sees_loading_then_done(self):
        self.gateway.login.return_value = Success(LoginInfo('t1', 3, 'alice'))
        controller = self._make()
        seen = []
        controller.add_listener(lambda s: seen.append(s.is_loading))
        controller.login('alice', 'secret1').result(WAIT)
        self.assertEqual(seen[0], True)
        self.assertEqual(seen[-1], False)


class TestRegister(SessionTestCase):

    def test_register_then_login(self):
        self.gateway.register.return_value = Success(User(3, 'alice'))
        self.gateway.login.return_value = Success(LoginInfo('t1', 3, 'alice'))
        controller = self._make()
        self.assertTrue(controller.register('alice', 'secret1').result(WAIT))
        self.gateway.login.assert_called_once_with('alice', 'secret1')
        self.assertEqual(controller.session, Authenticated(3, 'alice'))

    def test_short_password_makes_no_request(self):
        controller = self._make()
        self.assertIsNone(controller.register('alice', '12345'))
        self.assertEqual(controller.state.error, MSG_SHORT_PASSWORD)
        self.gateway.register.assert_not_called()

    def test_registration_failure_skips_login(self):
        self.gateway.register.return_value = Failure('Username already exists')
        controller = self._make()
        self.assertFalse(controller.register('alice', 'secret1').result(WAIT))
        self.assertEqual(controller.state.error, 'Username already exists')
        self.gateway.login.assert_not_called()


class TestLogout(SessionTestCase):

    def test_logout_clears_store_first(self):
        self.store.set_credentials('t1', 3, 'alice')
        controller = self._make()
        controller.check()
        observed = []
        controller.add_listener(lambda s: observed.append(self.store.is_logged_in()))
        controller.logout()
        self.assertEqual(controller.session, Anonymous())
        self.assertFalse(self.store.is_logged_in())
        self.assertNotIn(True, observed)

    def test_token_wiped_elsewhere_ends_session(self):
        self.store.set_credentials('t1', 3, 'alice')
        controller = self._make()
        controller.check()
        self.store.clear_credentials()
        self.assertEqual(controller.session, Anonymous())


if __name__ == '__main__':
    unittest.main()
