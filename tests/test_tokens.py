import unittest
from datetime import date, datetime, timezone

from doorserver.tokens.service import (
    day_stamp,
    secret_matches,
    token_for_principal,
    token_for_today,
    tokens_match,
)


class TestTokens(unittest.TestCase):

    def test_token_of_the_day_is_deterministic(self):
        morning = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)
        evening = datetime(2025, 6, 2, 23, 59, tzinfo=timezone.utc)
        token = token_for_today("guild", "s3cret", morning)
        self.assertEqual(len(token), 32)
        self.assertEqual(token, token_for_today("guild", "s3cret", evening))
        self.assertEqual(token, token_for_today("guild", "s3cret", date(2025, 6, 2)))

    def test_token_changes_with_day_tenant_and_secret(self):
        today = token_for_today("guild", "s3cret", date(2025, 6, 2))
        self.assertNotEqual(today, token_for_today("guild", "s3cret", date(2025, 6, 3)))
        self.assertNotEqual(today, token_for_today("other", "s3cret", date(2025, 6, 2)))
        self.assertNotEqual(today, token_for_today("guild", "other", date(2025, 6, 2)))

    def test_principal_token(self):
        token = token_for_principal("guild", "1234", "s3cret")
        self.assertEqual(token, token_for_principal("guild", "1234", "s3cret"))
        self.assertNotEqual(token, token_for_principal("guild", "5678", "s3cret"))

    def test_day_stamp(self):
        self.assertEqual(day_stamp(date(2025, 1, 9)), "20250109")

    def test_tokens_match(self):
        self.assertTrue(tokens_match("abc", "abc"))
        self.assertFalse(tokens_match("abc", "abd"))
        self.assertFalse(tokens_match("abc", None))
        self.assertFalse(tokens_match("abc", "ü"))

    def test_secret_matches_requires_configured_secret(self):
        self.assertTrue(secret_matches("s3cret", "s3cret"))
        self.assertFalse(secret_matches("", ""))
        self.assertFalse(secret_matches("s3cret", None))


if __name__ == '__main__':
    unittest.main()
