import unittest
from pathlib import Path
from unittest import mock

from xplat.auth.config import CacheConfig
from xplat.auth.internal.token_cache import (
    CredStoreTokenStorage,
    FileTokenStorage,
    KeychainTokenStorage,
    KeyringTokenStorage,
    make_storage,
)

PLATFORM = "xplat.auth.internal.token_cache.sys.platform"


class MakeStorageTest(unittest.TestCase):
    def test_file_mode_uses_configured_path(self):
        storage = make_storage("file", CacheConfig(path=Path("/tmp/tokens.json")))
        self.assertIsInstance(storage, FileTokenStorage)
        self.assertEqual(storage.path, Path("/tmp/tokens.json"))
        self.assertFalse(storage.is_secure)

    def test_keyring_mode(self):
        storage = make_storage("keyring", CacheConfig(service_name="svc", keyring_username="me"))
        self.assertIsInstance(storage, KeyringTokenStorage)
        self.assertEqual((storage.service_name, storage.username), ("svc", "me"))

    def test_keychain_mode(self):
        storage = make_storage("keychain", CacheConfig(description="my tokens"))
        self.assertIsInstance(storage, KeychainTokenStorage)
        self.assertEqual(storage.description, "my tokens")

    def test_credstore_mode(self):
        storage = make_storage("credstore", CacheConfig(creds_executable="C:/bin/creds.exe", target_prefix="p:"))
        self.assertIsInstance(storage, CredStoreTokenStorage)
        self.assertEqual((storage.executable, storage.prefix), ("C:/bin/creds.exe", "p:"))

    def test_mode_falls_back_to_config(self):
        self.assertIsInstance(make_storage(config=CacheConfig(mode="file")), FileTokenStorage)

    def test_unknown_mode_raises(self):
        with self.assertRaises(ValueError):
            make_storage("memory")


class AutoModeTest(unittest.TestCase):
    def test_windows(self):
        with mock.patch(PLATFORM, "win32"):
            self.assertIsInstance(make_storage("auto"), CredStoreTokenStorage)

    def test_macos(self):
        with mock.patch(PLATFORM, "darwin"):
            self.assertIsInstance(make_storage("auto"), KeychainTokenStorage)

    def test_linux_with_keyring(self):
        with mock.patch(PLATFORM, "linux"), mock.patch.object(KeyringTokenStorage, "is_available", return_value=True):
            self.assertIsInstance(make_storage("auto"), KeyringTokenStorage)

    def test_linux_without_keyring(self):
        with mock.patch(PLATFORM, "linux"), mock.patch.object(KeyringTokenStorage, "is_available", return_value=False):
            self.assertIsInstance(make_storage("auto"), FileTokenStorage)


if __name__ == "__main__":
    unittest.main()
