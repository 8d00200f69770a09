import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from doorserver.access.service import NOT_OPEN
from doorserver.core.scheduler import ManualScheduler
from doorserver.session.state import SessionState
from doorserver.tokens.service import token_for_today

from door_fixtures import MONDAY_10AM, FakeDiscord, make_role


class TestDoorTimer(unittest.TestCase):

    def setUp(self):
        self.scheduler = ManualScheduler(MONDAY_10AM)
        self.state = SessionState(self.scheduler, tenant_id="guild", secret="s3cret")

    def test_door_closes_after_dwell(self):
        event = self.state.open_door("alice", "discord")
        self.assertTrue(self.state.is_open)
        self.assertEqual(event.timestamp, MONDAY_10AM)
        self.scheduler.advance(3.4)
        self.assertTrue(self.state.is_open)
        self.scheduler.advance(0.2)
        self.assertFalse(self.state.is_open)

    def test_reopen_restarts_timer(self):
        with patch.object(self.state, "_close_door", wraps=self.state._close_door) as close:
            self.state.open_door("alice", "discord")
            self.scheduler.advance(2)
            self.state.open_door("bob", "token")
            self.scheduler.advance(3)
            self.assertTrue(self.state.is_open)
            self.scheduler.advance(1)
            self.assertFalse(self.state.is_open)
            self.scheduler.advance(10)
            close.assert_called_once()
        self.assertEqual([e.userid for e in self.state.doorlog], ["alice", "bob"])

    def test_stop_cancels_close_timer(self):
        self.state.open_door("alice", "discord")
        self.state.stop()
        self.scheduler.advance(10)
        self.assertTrue(self.state.is_open)

    def test_token_of_the_day(self):
        self.assertEqual(self.state.token_of_the_day(), token_for_today("guild", "s3cret", MONDAY_10AM))

    def test_token_uses_local_date(self):
        # 23:30 UTC on Monday is already Tuesday in Brussels
        scheduler = ManualScheduler(datetime(2025, 6, 2, 23, 30, tzinfo=timezone.utc), tz="Europe/Brussels")
        state = SessionState(scheduler, tenant_id="guild", secret="s3cret")
        self.assertEqual(state.token_of_the_day(), token_for_today("guild", "s3cret", datetime(2025, 6, 3).date()))


class TestLogQueries(unittest.TestCase):

    def setUp(self):
        self.scheduler = ManualScheduler(MONDAY_10AM)
        self.state = SessionState(self.scheduler)

    def test_recent_events_newest_first(self):
        for userid in ("a", "b", "c"):
            self.state.open_door(userid, "discord")
        self.assertEqual([e.userid for e in self.state.recent_events(2)], ["c", "b"])
        self.assertEqual(self.state.recent_events(0), [])

    def test_today_principals(self):
        self.state.open_door("yesterday", "discord")
        self.scheduler.advance(24 * 3600)
        self.state.open_door("alice", "discord")
        self.state.open_door("bob", "discord")
        self.state.open_door("alice", "discord")
        self.assertEqual(self.state.today_principals(), ["alice", "bob"])

    def test_mark_present(self):
        self.state.mark_present("alice")
        self.state.mark_present("alice")
        self.assertEqual(self.state.present_today, {"20250602": ["alice"]})

    def test_client_status(self):
        self.state.record_heartbeat("10.0.0.2", "door-controller")
        self.assertEqual(self.state.client_status(), {"10.0.0.2": "door-controller online"})

        self.scheduler.advance(10)
        self.assertEqual(
            self.state.client_status(),
            {"10.0.0.2": "Offline since 02/06/2025, 10:00:00 (10s ago)"},
        )

    def test_heartbeat_records_door_state(self):
        self.state.open_door("alice", "discord")
        self.assertTrue(self.state.record_heartbeat("10.0.0.2", None).is_door_open)


class TestRefresh(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.scheduler = ManualScheduler(MONDAY_10AM)
        self.member = make_role("member")
        self.coworker = make_role("coworker", days=["Monday"], hours="9-17")
        self.discord = FakeDiscord(members_by_role={"member": ["alice"], "coworker": ["alice", "bob"]})
        self.state = SessionState(
            self.scheduler,
            roles=[self.member, self.coworker],
            tenant_id="guild",
            present_today_role_id="present",
        )

    async def test_refresh_builds_index(self):
        await self.state.refresh_memberships(self.discord)
        self.assertEqual(self.state.membership_index, {"alice": ["member", "coworker"], "bob": ["coworker"]})
        self.assertTrue(self.state.decide("bob").granted)

    async def test_failed_role_keeps_previous_members(self):
        await self.state.refresh_memberships(self.discord)
        self.discord.members_by_role = {"member": ["carol"], "coworker": []}
        self.discord.failing_roles.add("coworker")

        await self.state.refresh_memberships(self.discord)
        self.assertEqual(self.coworker.member_ids, {"alice", "bob"})
        self.assertEqual(self.member.member_ids, {"carol"})
        self.assertEqual(self.state.membership_index["bob"], ["coworker"])

    async def test_malformed_member_record_keeps_previous_members(self):
        await self.state.refresh_memberships(self.discord)
        self.discord.members_by_role = {"member": ["carol"], "coworker": ["bob"]}
        get_members = self.discord.get_members

        async def partly_broken(guild_id, role_id=None):
            if role_id == "coworker":
                return [{"roles": ["coworker"]}]
            return await get_members(guild_id, role_id)

        with patch.object(self.discord, "get_members", side_effect=partly_broken):
            await self.state.refresh_memberships(self.discord)
        self.assertEqual(self.coworker.member_ids, {"alice", "bob"})
        self.assertEqual(self.member.member_ids, {"carol"})
        self.assertEqual(self.state.membership_index["carol"], ["member"])

    async def test_decision_follows_snapshot(self):
        await self.state.refresh_memberships(self.discord)
        self.scheduler.advance(9 * 3600)
        decision = self.state.decide("bob")
        self.assertFalse(decision.granted)
        self.assertEqual(decision.reason, NOT_OPEN)

    async def test_present_today_reset_at_midnight(self):
        self.discord.members_by_role["present"] = ["alice", "bob"]
        self.state.mark_present("alice")

        await self.state.reset_present_today(self.discord)
        self.assertEqual(self.discord.removed_roles, [])

        self.scheduler.set(datetime(2025, 6, 3, 0, 5, tzinfo=timezone.utc))
        await self.state.reset_present_today(self.discord)
        self.assertEqual(self.discord.removed_roles, [("present", "alice"), ("present", "bob")])
        self.assertEqual(self.state.present_today, {})

    async def test_hourly_job(self):
        self.state.record_heartbeat("10.0.0.2", "door")
        self.state.start(self.discord, 3600)

        await self.scheduler.advance_async(3600)
        self.assertIn("alice", self.state.membership_index)
        self.assertIn("10.0.0.2", self.state.status_log)

        # 11:00 + 13h = 00:00 Tuesday
        await self.scheduler.advance_async(13 * 3600)
        self.assertEqual(self.state.status_log, {})

        self.state.stop()
        self.discord.members_by_role = {}
        await self.scheduler.advance_async(timedelta(hours=5).total_seconds())
        self.assertIn("alice", self.state.membership_index)


if __name__ == '__main__':
    unittest.main()
