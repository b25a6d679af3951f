import json
import unittest
from unittest import mock

from xplat.auth.errors import StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache import KeyringTokenStorage
from xplat.auth.internal.token_cache._base import SERVICE_NAME
from xplat.auth.internal.token_cache._keyring import DEFAULT_USERNAME

ENTRY = {"userId": "foo@microsoft.com", "_clientId": "client-1", "accessToken": "ABCD", "isMRRT": True}
OTHER = {"userId": "bar@microsoft.com", "_clientId": "client-1", "accessToken": "EFGH"}


class FakeKeyring:
    """In-memory stand-in for the keyring module."""

    def __init__(self):
        self.passwords = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        del self.passwords[(service, username)]


def _storage_no_keyring() -> KeyringTokenStorage:
    storage = KeyringTokenStorage()
    storage._keyring = lambda: None
    return storage


def _storage_with_keyring(kr) -> KeyringTokenStorage:
    storage = KeyringTokenStorage()
    storage._keyring = lambda: kr
    return storage


class KeyringAvailableTest(unittest.TestCase):
    def test_keyring_available_when_valid_backend(self):
        storage = KeyringTokenStorage()
        mock_kr = mock.MagicMock()
        mock_kr.get_keyring.return_value = mock.MagicMock()
        with mock.patch.dict("sys.modules", {"keyring": mock_kr}):
            self.assertTrue(storage.is_available())

    def test_keyring_unavailable_when_fail_backend(self):
        storage = KeyringTokenStorage()

        class FailKeyring:
            pass

        mock_kr = mock.MagicMock()
        mock_kr.get_keyring.return_value = FailKeyring()
        with mock.patch.dict("sys.modules", {"keyring": mock_kr}):
            self.assertFalse(storage.is_available())

    def test_resolution_is_cached(self):
        storage = KeyringTokenStorage()
        mock_kr = mock.MagicMock()
        mock_kr.get_keyring.return_value = mock.MagicMock()
        with mock.patch.dict("sys.modules", {"keyring": mock_kr}):
            storage.is_available()
            storage.is_available()
        mock_kr.get_keyring.assert_called_once_with()


class LoadEntriesTest(unittest.TestCase):
    def test_nothing_stored_is_empty(self):
        self.assertEqual(_storage_with_keyring(FakeKeyring()).load_entries(), [])

    def test_reads_from_service_and_username(self):
        mock_kr = mock.MagicMock()
        mock_kr.get_password.return_value = json.dumps([ENTRY])
        self.assertEqual(_storage_with_keyring(mock_kr).load_entries(), [ENTRY])
        mock_kr.get_password.assert_called_once_with(SERVICE_NAME, DEFAULT_USERNAME)

    def test_corrupt_document_raises(self):
        mock_kr = mock.MagicMock()
        mock_kr.get_password.return_value = "not valid json!!!"
        with self.assertRaises(StorageReadError):
            _storage_with_keyring(mock_kr).load_entries()

    def test_keyring_error_raises(self):
        mock_kr = mock.MagicMock()
        mock_kr.get_password.side_effect = Exception("keyring error")
        with self.assertRaises(StorageReadError):
            _storage_with_keyring(mock_kr).load_entries()

    def test_keyring_not_available_raises(self):
        with self.assertRaises(StorageReadError):
            _storage_no_keyring().load_entries()


class WriteTest(unittest.TestCase):
    def test_add_and_load(self):
        kr = FakeKeyring()
        storage = _storage_with_keyring(kr)
        storage.add_entries([ENTRY, OTHER])
        self.assertEqual(storage.load_entries(), [ENTRY, OTHER])
        self.assertEqual(list(kr.passwords), [(SERVICE_NAME, DEFAULT_USERNAME)])

    def test_add_removes_first(self):
        storage = _storage_with_keyring(FakeKeyring())
        storage.add_entries([ENTRY])
        storage.add_entries([OTHER], [ENTRY])
        self.assertEqual(storage.load_entries(), [OTHER])

    def test_duplicate_suppressed(self):
        storage = _storage_with_keyring(FakeKeyring())
        storage.add_entries([ENTRY])
        storage.add_entries([dict(ENTRY)])
        self.assertEqual(storage.load_entries(), [ENTRY])

    def test_clear_is_idempotent(self):
        kr = FakeKeyring()
        storage = _storage_with_keyring(kr)
        storage.add_entries([ENTRY])
        storage.clear()
        self.assertEqual(storage.load_entries(), [])
        storage.clear()
        self.assertEqual(kr.passwords, {})

    def test_write_error_raises(self):
        mock_kr = mock.MagicMock()
        mock_kr.get_password.return_value = None
        mock_kr.set_password.side_effect = Exception("write failed")
        with self.assertRaises(StorageWriteError):
            _storage_with_keyring(mock_kr).add_entries([ENTRY])

    def test_keyring_not_available_raises(self):
        with self.assertRaises(StorageWriteError):
            _storage_no_keyring().clear()

    def test_is_secure(self):
        self.assertTrue(KeyringTokenStorage.is_secure)


if __name__ == "__main__":
    unittest.main()
