import json
import os
import stat
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from xplat.auth.errors import StorageReadError, StorageWriteError
from xplat.auth.internal.token_cache import FileTokenStorage

ENTRY_A = {
    "accessToken": "ABCD",
    "refreshToken": "FREFDO",
    "userId": "foo@microsoft.com",
    "tenantId": "72f988bf-86f1-45aq-91ab-2d7gd011db47",
    "_authority": "https://login.windows.net/72f988bf-86f1-45aq-91ab-2d7gd011db47",
    "expiresOn": datetime(2014, 9, 20, 4, 47, 16, 288000, tzinfo=timezone.utc),
    "expiresIn": 3599,
    "isMRRT": True,
}
ENTRY_B = {"userId": "bar@microsoft.com", "accessToken": "B"}
ENTRY_C = {"userId": "baz@microsoft.com", "accessToken": "C"}
# Stored with millisecond precision only
ENTRY_B_MICROSECONDS = dict(ENTRY_B, expiresOn=datetime(2014, 9, 20, 4, 47, 16, 123456, tzinfo=timezone.utc))


class FileStorageTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "nested" / "accessTokens.json"
        self.storage = FileTokenStorage(self.path)

    def tearDown(self):
        self._tmp.cleanup()


class LoadEntriesTest(FileStorageTestCase):
    def test_missing_file_is_empty(self):
        self.assertEqual(self.storage.load_entries(), [])

    def test_corrupt_file_raises(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("not valid json!!!")
        with self.assertRaises(StorageReadError):
            self.storage.load_entries()

    def test_document_that_is_not_a_list_raises(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"userId": "foo"}))
        with self.assertRaises(StorageReadError):
            self.storage.load_entries()

    def test_reads_dates_back_as_datetimes(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps([{"userId": "foo", "expiresOn": "2014-09-20T04:47:16.288Z"}]))
        entries = self.storage.load_entries()
        self.assertEqual(entries[0]["expiresOn"], datetime(2014, 9, 20, 4, 47, 16, 288000, tzinfo=timezone.utc))

    def test_unreadable_path_raises(self):
        self.path.mkdir(parents=True)
        with self.assertRaises(StorageReadError):
            self.storage.load_entries()


class WriteTest(FileStorageTestCase):
    def test_round_trip_keeps_types(self):
        self.storage.add_entries([ENTRY_A])
        self.assertEqual(FileTokenStorage(self.path).load_entries(), [ENTRY_A])

    def test_file_is_owner_only(self):
        self.storage.add_entries([ENTRY_A])
        if os.name == "posix":
            self.assertEqual(stat.S_IMODE(self.path.stat().st_mode), 0o600)

    def test_no_temp_files_left_behind(self):
        self.storage.add_entries([ENTRY_A])
        self.assertEqual(os.listdir(self.path.parent), [self.path.name])

    def test_clear(self):
        self.storage.add_entries([ENTRY_A])
        self.assertEqual(len(self.storage.load_entries()), 1)
        self.storage.clear()
        self.assertEqual(self.storage.load_entries(), [])
        self.storage.clear()
        self.assertEqual(self.storage.load_entries(), [])

    def test_add_removes_first_in_one_batch(self):
        self.storage.add_entries([ENTRY_B, ENTRY_C])
        self.storage.add_entries([ENTRY_A], [ENTRY_B])
        self.assertEqual(self.storage.load_entries(), [ENTRY_C, ENTRY_A])

    def test_duplicate_is_replaced_not_added(self):
        self.storage.add_entries([ENTRY_A, ENTRY_B])
        self.storage.add_entries([dict(ENTRY_A)])
        self.assertEqual(self.storage.load_entries(), [ENTRY_B, ENTRY_A])

    def test_remove_entries_keeps_exactly_the_given_set(self):
        self.storage.add_entries([ENTRY_A, ENTRY_B, ENTRY_C])
        self.storage.remove_entries([ENTRY_B], [ENTRY_A, ENTRY_C])
        self.assertEqual(self.storage.load_entries(), [ENTRY_A, ENTRY_C])

    def test_failed_write_raises_and_keeps_old_content(self):
        self.storage.add_entries([ENTRY_B])
        with mock.patch("xplat.auth.internal.token_cache._file.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(StorageWriteError):
                self.storage.add_entries([ENTRY_C])
        self.assertEqual(self.storage.load_entries(), [ENTRY_B])
        self.assertEqual(os.listdir(self.path.parent), [self.path.name])

    def test_adding_entry_twice_keeps_one_copy_despite_precision_loss(self):
        self.storage.add_entries([ENTRY_B_MICROSECONDS])
        self.storage.add_entries([ENTRY_B_MICROSECONDS])
        self.assertEqual(len(self.storage.load_entries()), 1)

    def test_remove_first_matches_the_stored_copy(self):
        self.storage.add_entries([ENTRY_B_MICROSECONDS, ENTRY_C])
        self.storage.add_entries([ENTRY_A], [ENTRY_B_MICROSECONDS])
        user_ids = [entry["userId"] for entry in self.storage.load_entries()]
        self.assertEqual(user_ids, ["baz@microsoft.com", "foo@microsoft.com"])

    def test_textual_fields_match_their_typed_copy(self):
        entry = {"userId": "foo@microsoft.com", "expiresOn": "2014-09-14T00:46:36.728Z", "expiresIn": "3599"}
        self.storage.add_entries([entry])
        self.storage.add_entries([dict(entry)])
        self.assertEqual(len(self.storage.load_entries()), 1)

    def test_bool_and_int_values_are_distinct(self):
        self.storage.add_entries([{"userId": "foo", "flag": True}])
        self.storage.add_entries([{"userId": "foo", "flag": 1}])
        self.assertEqual([type(entry["flag"]) for entry in self.storage.load_entries()], [bool, int])

    def test_unsupported_value_raises(self):
        with self.assertRaises(StorageWriteError):
            self.storage.add_entries([{"userId": "foo", "blob": object()}])


if __name__ == "__main__":
    unittest.main()
