"""
Door session state.

The one mutable aggregate of the server: door open/closed, the access log,
the principal cache, client heartbeats and the role membership snapshot. All
mutations happen on the event loop thread, so none of it is locked. Readers
always see the current snapshot, never wait on a refresh in flight.
"""
import logging
from datetime import datetime
from typing import Optional, Protocol

from ..access.service import AccessDecision, decide
from ..core.scheduler import Scheduler, TimerHandle
from ..models.AccessEvent import AccessEvent, ClientHeartbeat, Principal
from ..models.AccessRole import AccessRole
from ..models.AuthorizedKey import AuthorizedKey
from ..tokens.service import day_stamp, token_for_today

logger = logging.getLogger(__name__)

DEFAULT_DWELL_SECONDS = 3.5


class MembershipDirectory(Protocol):
    """What the refresh cycle needs from the chat platform."""

    async def get_members(self, guild_id: str, role_id: Optional[str] = None) -> list[dict]: ...

    async def remove_role(self, guild_id: str, role_id: str, member_id: str) -> None: ...


class SessionState:
    def __init__(
        self,
        scheduler: Scheduler,
        roles: Optional[list[AccessRole]] = None,
        authorized_keys: Optional[list[AuthorizedKey]] = None,
        tenant_id: str = "",
        secret: str = "",
        dwell_seconds: float = DEFAULT_DWELL_SECONDS,
        present_today_role_id: str = "",
    ):
        self.scheduler = scheduler
        self.roles: list[AccessRole] = roles or []
        self.authorized_keys: list[AuthorizedKey] = authorized_keys or []
        self.tenant_id = tenant_id
        self.secret = secret
        self.dwell_seconds = dwell_seconds
        self.present_today_role_id = present_today_role_id

        self.membership_index: dict[str, list[str]] = {}
        self.users: dict[str, Principal] = {}
        self.doorlog: list[AccessEvent] = []
        self.status_log: dict[str, list[ClientHeartbeat]] = {}
        self.present_today: dict[str, list[str]] = {}

        self.is_open = False
        self._close_timer: Optional[TimerHandle] = None
        self._jobs: list[TimerHandle] = []

    # ==========================================
    # Door
    # ==========================================
    def open_door(self, userid: str, agent: str) -> AccessEvent:
        """
        Opens the door and appends one log entry. Re-opening while open
        restarts the auto-close timer.
        """
        logger.info("Opening door for userid %s with agent %s", userid, agent)
        event = AccessEvent(timestamp=self.scheduler.now(), userid=userid, agent=agent)
        self.doorlog.append(event)
        self.is_open = True

        if self._close_timer is not None:
            self._close_timer.cancel()
        self._close_timer = self.scheduler.call_later(self.dwell_seconds, self._close_door)
        return event

    def _close_door(self) -> None:
        self._close_timer = None
        self.is_open = False
        logger.info("Closing door")

    # ==========================================
    # Decisions against the current snapshot
    # ==========================================
    def decide(self, principal_id: str, now: Optional[datetime] = None) -> AccessDecision:
        return decide(principal_id, self.roles, self.membership_index, now or self.scheduler.now())

    def token_of_the_day(self) -> str:
        return token_for_today(self.tenant_id, self.secret, self.scheduler.now())

    def role_by_id(self, role_id: str) -> Optional[AccessRole]:
        return next((r for r in self.roles if r.role_id == role_id), None)

    # ==========================================
    # Principals and log queries
    # ==========================================
    def record_principal(self, principal: Principal) -> None:
        self.users[principal.id] = principal

    def mark_present(self, principal_id: str) -> None:
        today = day_stamp(self.scheduler.now())
        present = self.present_today.setdefault(today, [])
        if principal_id not in present:
            present.append(principal_id)

    def recent_events(self, limit: int = 10) -> list[AccessEvent]:
        return list(reversed(self.doorlog[-limit:])) if limit > 0 else []

    def today_principals(self) -> list[str]:
        today = self.scheduler.now().date()
        seen: dict[str, None] = {}
        for event in self.doorlog:
            if event.timestamp.astimezone(self.scheduler.tz).date() == today:
                seen[event.userid] = None
        return list(seen)

    # ==========================================
    # Door client heartbeats
    # ==========================================
    def record_heartbeat(self, ip: str, user_agent: Optional[str]) -> ClientHeartbeat:
        heartbeat = ClientHeartbeat(
            timestamp=self.scheduler.now(),
            ip=ip,
            user_agent=user_agent,
            is_door_open=self.is_open,
        )
        self.status_log.setdefault(ip, []).append(heartbeat)
        return heartbeat

    def client_status(self, offline_after: Optional[float] = None) -> dict[str, str]:
        """
        Online/offline summary per client IP. A client is offline when its
        last heartbeat is older than ``offline_after`` seconds.
        """
        if offline_after is None:
            offline_after = self.dwell_seconds
        now = self.scheduler.now()
        status = {}
        for ip, heartbeats in self.status_log.items():
            if not heartbeats:
                status[ip] = "Online"
                continue
            last = heartbeats[-1]
            elapsed = (now - last.timestamp).total_seconds()
            if elapsed > offline_after:
                since = last.timestamp.astimezone(self.scheduler.tz).strftime("%d/%m/%Y, %H:%M:%S")
                status[ip] = f"Offline since {since} ({round(elapsed)}s ago)"
            else:
                status[ip] = f"{last.user_agent} online"
        return status

    # ==========================================
    # Periodic refresh
    # ==========================================
    async def refresh_memberships(self, directory: MembershipDirectory) -> None:
        """
        Re-pulls each role's members and rebuilds the reverse index. A role
        whose fetch fails keeps its previous members.
        """
        for role in self.roles:
            try:
                members = await directory.get_members(self.tenant_id, role.role_id)
                member_ids = {member["user"]["id"] for member in members}
            except Exception:
                logger.exception("Failed to load members for role %s (%s), keeping previous snapshot",
                                 role.name, role.role_id)
                continue
            role.member_ids = member_ids
            role.refresh_schedule()
            logger.debug("%d members found for role %s", len(role.member_ids), role.name)

        index: dict[str, list[str]] = {}
        for role in self.roles:
            for member_id in role.member_ids:
                index.setdefault(member_id, [])
                if role.role_id not in index[member_id]:
                    index[member_id].append(role.role_id)
        self.membership_index = index
        logger.info("Access roles loaded")

    async def reset_present_today(self, directory: MembershipDirectory) -> None:
        """
        At the top of the day, removes the "present today" role from every
        member holding it.
        """
        now = self.scheduler.now()
        if now.hour != 0 or not self.present_today_role_id:
            return

        try:
            members = await directory.get_members(self.tenant_id, self.present_today_role_id)
        except Exception:
            logger.exception("Failed to load members of the present today role")
            return

        logger.info("Resetting present today for %d members", len(members))
        for member in members:
            try:
                await directory.remove_role(self.tenant_id, self.present_today_role_id, member["user"]["id"])
            except Exception:
                logger.exception("Failed to remove present today role from %s", member["user"].get("username"))

        self.present_today.clear()

    def reset_status_log_if_midnight(self) -> None:
        if self.scheduler.now().hour == 0:
            self.status_log.clear()
            logger.info("Resetting status log")

    async def hourly(self, directory: MembershipDirectory) -> None:
        await self.reset_present_today(directory)
        await self.refresh_memberships(directory)
        self.reset_status_log_if_midnight()

    def start(self, directory: MembershipDirectory, interval: float) -> None:
        async def job():
            await self.hourly(directory)

        self._jobs.append(self.scheduler.every(interval, job))

    def add_job(self, handle: TimerHandle) -> None:
        self._jobs.append(handle)

    def stop(self) -> None:
        for handle in self._jobs:
            handle.cancel()
        self._jobs.clear()
        if self._close_timer is not None:
            self._close_timer.cancel()
            self._close_timer = None
