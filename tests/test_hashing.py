"""
Tests for content fingerprints and project identifiers.

Tests:
  - hash_content: SHA-256 hex, deterministic, any string
  - short_project_hash: base58 alphabet, fixed length, idempotent on short ids
  - port_from_hash: inside 3847-4096, same port for full and short id
  - projects_match: full and short ids compare equal
"""
import hashlib
import unittest


FULL_ID = "a1b2c3d4e5f60718293a4b5c6d7e8f90"


class TestHashContent(unittest.TestCase):

    def test_matches_sha256_hex(self):
        from canvassync.utils.hashing import hash_content
        expected = hashlib.sha256("local content".encode("utf-8")).hexdigest()
        self.assertEqual(hash_content("local content"), expected)

    def test_deterministic_and_content_sensitive(self):
        from canvassync.utils.hashing import hash_content
        self.assertEqual(hash_content("x"), hash_content("x"))
        self.assertNotEqual(hash_content("x"), hash_content("x "))

    def test_accepts_empty_and_unicode(self):
        from canvassync.utils.hashing import hash_content
        self.assertEqual(len(hash_content("")), 64)
        self.assertEqual(len(hash_content("ünïcödé ✓")), 64)


class TestShortProjectHash(unittest.TestCase):

    def test_length_and_alphabet(self):
        from canvassync.utils.hashing import BASE58, short_project_hash
        short = short_project_hash(FULL_ID)
        self.assertEqual(len(short), 8)
        self.assertTrue(all(c in BASE58 for c in short))

    def test_deterministic(self):
        from canvassync.utils.hashing import short_project_hash
        self.assertEqual(short_project_hash(FULL_ID), short_project_hash(FULL_ID))
        self.assertNotEqual(short_project_hash(FULL_ID), short_project_hash(FULL_ID + "0"))

    def test_short_id_is_returned_unchanged(self):
        from canvassync.utils.hashing import short_project_hash
        short = short_project_hash(FULL_ID)
        self.assertEqual(short_project_hash(short), short)


class TestPortFromHash(unittest.TestCase):

    def test_port_in_range(self):
        from canvassync.utils.hashing import port_from_hash
        for i in range(50):
            port = port_from_hash(f"project-{i}")
            self.assertGreaterEqual(port, 3847)
            self.assertLessEqual(port, 4096)

    def test_full_and_short_id_share_a_port(self):
        from canvassync.utils.hashing import port_from_hash, short_project_hash
        self.assertEqual(port_from_hash(FULL_ID), port_from_hash(short_project_hash(FULL_ID)))

    def test_projects_match(self):
        from canvassync.utils.hashing import projects_match, short_project_hash
        self.assertTrue(projects_match(FULL_ID, short_project_hash(FULL_ID)))
        self.assertFalse(projects_match(FULL_ID, "something-else"))


if __name__ == "__main__":
    unittest.main()
