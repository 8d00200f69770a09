import json
import tempfile
import unittest
from pathlib import Path

from doorserver.audit.service import GENESIS_HASH, AccessLog, verify_chain


class TestAccessLog(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "logs" / "door_access.log"

    def tearDown(self):
        self.tmp.cleanup()

    def read_entries(self):
        return [json.loads(line) for line in self.path.read_text().splitlines()]

    def test_entries_are_chained(self):
        log = AccessLog(self.path)
        first = log.log_access("Alice", "discord", userId="1", role=None)
        second = log.log_access("Token User", "token", date="20250602")

        entries = self.read_entries()
        self.assertEqual(len(entries), 2)
        self.assertEqual(entries[0]["previous_hash"], GENESIS_HASH)
        self.assertEqual(entries[1]["previous_hash"], first["hash"])
        self.assertEqual(entries[1]["hash"], second["hash"])
        self.assertNotIn("role", entries[0])
        self.assertTrue(verify_chain(self.path))

    def test_chain_continues_across_instances(self):
        AccessLog(self.path).log_access("Alice", "discord")
        AccessLog(self.path).log_access("Bob", "shortcut")
        self.assertTrue(verify_chain(self.path))

    def test_tampering_is_detected(self):
        log = AccessLog(self.path)
        log.log_access("Alice", "discord")
        log.log_access("Bob", "shortcut")

        lines = self.path.read_text().splitlines()
        entry = json.loads(lines[0])
        entry["name"] = "Mallory"
        lines[0] = json.dumps(entry)
        self.path.write_text("\n".join(lines) + "\n")
        self.assertFalse(verify_chain(self.path))

    def test_removed_line_is_detected(self):
        log = AccessLog(self.path)
        for name in ("Alice", "Bob", "Carol"):
            log.log_access(name, "discord")
        lines = self.path.read_text().splitlines()
        self.path.write_text(lines[0] + "\n" + lines[2] + "\n")
        self.assertFalse(verify_chain(self.path))

    def test_write_failure_is_not_raised(self):
        # the log path is a directory
        self.path.mkdir(parents=True)
        self.assertIsNone(AccessLog(self.path).log_access("Alice", "discord"))


if __name__ == '__main__':
    unittest.main()
