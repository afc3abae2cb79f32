import json
import os
import stat
import tempfile
import unittest
from pathlib import Path

from agentviz.dismissed import DismissedStore


class DismissedStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.path = Path(tmpdir.name) / "dismissed.json"

    def test_missing_file_is_empty(self) -> None:
        self.assertEqual(DismissedStore(self.path).snapshot(), frozenset())

    def test_added_ids_persist_across_instances(self) -> None:
        store = DismissedStore(self.path)
        self.assertTrue(store.add("s1"))
        self.assertTrue(store.add("42"))

        reloaded = DismissedStore(self.path)

        self.assertEqual(reloaded.snapshot(), frozenset({"s1", "42"}))
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8")), ["42", "s1"])

    def test_file_is_private(self) -> None:
        DismissedStore(self.path).add("s1")
        self.assertEqual(stat.S_IMODE(os.stat(self.path).st_mode), 0o600)

    def test_blank_and_repeated_ids_are_ignored(self) -> None:
        store = DismissedStore(self.path)
        self.assertFalse(store.add(""))
        self.assertFalse(store.add("   "))
        self.assertTrue(store.add("s1"))
        self.assertFalse(store.add("s1"))
        self.assertEqual(store.snapshot(), frozenset({"s1"}))

    def test_corrupt_or_unexpected_files_are_treated_as_empty(self) -> None:
        self.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(DismissedStore(self.path).snapshot(), frozenset())

        self.path.write_text('{"ids": ["s1"]}', encoding="utf-8")
        self.assertEqual(DismissedStore(self.path).snapshot(), frozenset())

        self.path.write_text('["s1", 7, null, ""]', encoding="utf-8")
        self.assertEqual(DismissedStore(self.path).snapshot(), frozenset({"s1"}))

    def test_snapshot_is_isolated_from_later_writes(self) -> None:
        store = DismissedStore(self.path)
        store.add("s1")
        snapshot = store.snapshot()
        store.add("s2")
        self.assertEqual(snapshot, frozenset({"s1"}))


if __name__ == "__main__":
    unittest.main()
