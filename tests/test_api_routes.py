import json
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from doorserver.capability.service import sign_capability, to_query
from doorserver.tokens.service import token_for_principal
from doorserver.wallet.service import WalletSession

from door_fixtures import MONDAY_10AM, TEST_ACCOUNT, FakeWallet, make_app, make_context, make_role

NOW = int(MONDAY_10AM.timestamp())


class DoorApiTestCase(unittest.TestCase):
    roles = None
    members_by_role = None
    settings_overrides = {}

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.ctx = make_context(self.tmp.name, roles=self.roles, members_by_role=self.members_by_role,
                                wallet=self.make_wallet(), **self.settings_overrides)
        self.state = self.ctx.state
        self.discord = self.ctx.discord
        self.client = TestClient(make_app(self.ctx))

    def tearDown(self):
        self.tmp.cleanup()

    def make_wallet(self):
        return FakeWallet()

    def audit_entries(self):
        path = Path(self.tmp.name) / "door_access.log"
        if not path.exists():
            return []
        return [json.loads(line) for line in path.read_text().splitlines()]


class TestDoorRoutes(DoorApiTestCase):

    def test_check_reports_door_state(self):
        response = self.client.get("/check")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.text, "closed")

        self.state.open_door("alice", "discord")
        response = self.client.get("/check")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "open")

    def test_status_tracks_door_clients(self):
        self.client.get("/check", headers={"X-Forwarded-For": "10.0.0.7, 172.16.0.1"})
        self.assertEqual(self.client.get("/status").json(), {"10.0.0.7": "testclient online"})

        self.state.scheduler.advance(60)
        status = self.client.get("/status").json()
        self.assertTrue(status["10.0.0.7"].startswith("Offline since 02/06/2025, 10:00:00"))

    def test_log(self):
        self.state.open_door("alice", "discord")
        log = self.client.get("/log").json()
        self.assertEqual(len(log), 1)
        self.assertEqual(log[0]["userid"], "alice")
        self.assertEqual(log[0]["agent"], "discord")

    def test_token_requires_secret(self):
        self.assertEqual(self.client.get("/token").status_code, 403)
        self.assertEqual(self.client.get("/token", params={"secret": "nope"}).status_code, 403)
        response = self.client.get("/token", params={"secret": "s3cret"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, self.state.token_of_the_day())

    def test_home_page(self):
        self.state.open_door("alice", "discord")
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("The door is open", response.text)


class TestTokenOpen(DoorApiTestCase):

    def test_token_of_the_day_opens(self):
        response = self.client.get("/open", params={"token": self.state.token_of_the_day()})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.state.is_open)
        self.assertEqual(len(self.state.doorlog), 1)
        self.assertEqual(self.state.doorlog[0].agent, "token")
        self.assertEqual(self.state.doorlog[0].userid, "20250602")
        self.assertEqual(self.discord.sent, ["🚪 Door opened using today's token"])
        self.assertEqual(self.audit_entries()[0]["method"], "token")

        self.state.scheduler.advance(4)
        self.assertFalse(self.state.is_open)

    def test_invalid_token(self):
        response = self.client.get("/open", params={"token": "0" * 32})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.text, "Invalid token")
        self.assertFalse(self.state.is_open)
        self.assertEqual(self.state.doorlog, [])

    def test_yesterdays_token_is_rejected(self):
        token = self.state.token_of_the_day()
        self.state.scheduler.advance(24 * 3600)
        self.assertEqual(self.client.get("/open", params={"token": token}).status_code, 403)


class TestSignedLinkOpen(DoorApiTestCase):

    def signed_query(self, start_time=NOW, duration=60, **kwargs):
        request = sign_capability(TEST_ACCOUNT, "Alice", "eventOrganiser", "Meetup", start_time, duration,
                                  timestamp=NOW - 60, **kwargs)
        return to_query(request)

    def test_valid_link_opens(self):
        response = self.client.get("/open", params=self.signed_query(event_url="https://events.example/1"))
        self.assertEqual(response.status_code, 200)
        self.assertIn("Welcome Alice", response.text)
        self.assertTrue(self.state.is_open)

        event = self.state.doorlog[0]
        self.assertEqual(event.agent, "eventOrganiser (Door Server)")
        self.assertEqual(event.userid, f"event_eventOrganiser_{NOW - 60}")
        self.assertEqual(self.discord.sent,
                         ["🚪 Alice opened the door for <https://events.example/1> hosted by eventOrganiser"])
        entry = self.audit_entries()[0]
        self.assertEqual(entry["method"], "signature")
        self.assertEqual(entry["authorizedKey"], "Door Server")

    def test_expired_link(self):
        response = self.client.get("/open", params=self.signed_query(start_time=NOW - 5 * 3600))
        self.assertEqual(response.status_code, 403)
        self.assertIn("Event access period has expired", response.text)
        self.assertIn("When is this code valid?", response.text)
        self.assertFalse(self.state.is_open)
        self.assertEqual(self.discord.sent, [])

    def test_secret_bypass(self):
        params = self.signed_query(start_time=NOW - 5 * 3600)
        params["secret"] = "s3cret"
        self.assertEqual(self.client.get("/open", params=params).status_code, 200)
        self.assertTrue(self.audit_entries()[0]["secretBypass"])

    def test_missing_parameter(self):
        params = self.signed_query()
        del params["reason"]
        response = self.client.get("/open", params=params)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Missing required parameters", response.text)


    def test_unicode_digit_start_time(self):
        params = self.signed_query()
        params["startTime"] = "\u00b2"
        response = self.client.get("/open", params=params)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid startTime or duration", response.text)
        self.assertFalse(self.state.is_open)


class TestShortcutOpen(DoorApiTestCase):
    settings_overrides = {"DISCORD_PRESENT_TODAY_ROLE_ID": "present"}

    def setUp(self):
        super().setUp()
        self.discord.guild_members["42"] = {
            "user": {"id": "42", "username": "alice", "global_name": "Alice"},
            "nick": None,
            "roles": [],
        }

    def test_shortcut_opens(self):
        token = token_for_principal("guild", "42", "s3cret")
        response = self.client.post("/open", json={"token": token, "userid": "42"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "🚪 Door opened by <@42> via shortcut 📲")
        self.assertTrue(self.state.is_open)
        self.assertEqual(self.state.doorlog[0].userid, "42")
        self.assertEqual(self.discord.added_roles, [("present", "42")])
        self.assertEqual(self.discord.sent, ["🚪 Door opened by <@42> via shortcut 📲"])

    def test_shortcut_form_body(self):
        token = token_for_principal("guild", "42", "s3cret")
        response = self.client.post("/open", data={"token": token, "userid": "42"})
        self.assertEqual(response.status_code, 200)

    def test_shortcut_bad_token(self):
        response = self.client.post("/open", json={"token": "nope", "userid": "42"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.text, "Invalid token")
        self.assertFalse(self.state.is_open)

    def test_shortcut_missing_fields(self):
        response = self.client.post("/open", json={"userid": "42"})
        self.assertEqual(response.status_code, 400)

    def test_shortcut_invalid_json(self):
        response = self.client.post("/open", content=b"{not json", headers={"Content-Type": "application/json"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.text, "Missing token or userid")
        self.assertFalse(self.state.is_open)

    def test_shortcut_unknown_member(self):
        token = token_for_principal("guild", "99", "s3cret")
        response = self.client.post("/open", json={"token": token, "userid": "99"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.text, "User not found")
        self.assertFalse(self.state.is_open)


class TestShortcutWithSchedule(DoorApiTestCase):
    settings_overrides = {"SHORTCUT_RESPECTS_SCHEDULE": True}
    roles = [make_role("evening", hours="18-22")]
    members_by_role = {"evening": ["42"]}

    def test_closed_role_denies_shortcut(self):
        token = token_for_principal("guild", "42", "s3cret")
        response = self.client.post("/open", json={"token": token, "userid": "42"})
        self.assertEqual(response.status_code, 403)
        self.assertFalse(self.state.is_open)


class TestWalletOpen(DoorApiTestCase):

    def make_wallet(self):
        return FakeWallet(
            WalletSession(profile={"account": "0x1111111111111111111111111111111111111111", "username": "alice"},
                          balance=12.5),
            community={"community": {"name": "Commons Hub"}},
        )

    def test_wallet_with_balance_opens(self):
        response = self.client.get("/open", params={"sigAuthAccount": "0x1111111111111111111111111111111111111111"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Welcome alice", response.text)
        self.assertEqual(self.state.doorlog[0].agent, "alice")
        self.assertEqual(self.audit_entries()[0]["balance"], 12.5)

    def test_wallet_without_balance(self):
        self.ctx.wallet.session = WalletSession(profile={"account": "0x1", "username": "bob"}, balance=0)
        response = self.client.get("/open", params={"sigAuthAccount": "0x1"})
        self.assertEqual(response.status_code, 403)
        self.assertIn("Sorry bob", response.text)
        self.assertFalse(self.state.is_open)

    def test_no_session_shows_instructions(self):
        self.ctx.wallet.session = WalletSession()
        response = self.client.get("/open")
        self.assertEqual(response.status_code, 200)
        self.assertIn("join Commons Hub", response.text)
        self.assertFalse(self.state.is_open)


if __name__ == '__main__':
    unittest.main()
