import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"
MEMBERS_PAGE_SIZE = 1000

OPEN_COMMAND = {
    "name": "open",
    "description": "Opens the door",
    "type": 1,
}


class DiscordClient:
    """
    Thin REST client for the few chat platform calls the door needs.
    """

    def __init__(
        self,
        bot_token: str,
        channel_id: str = "",
        dry_run: bool = False,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.channel_id = channel_id
        self.dry_run = dry_run
        self._http = http or httpx.AsyncClient(
            base_url=API_BASE,
            headers={"Authorization": f"Bot {bot_token}"},
            timeout=10.0,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._http.request(method, path, **kwargs)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def send_message(self, content: str, channel_id: Optional[str] = None) -> bool:
        """
        Posts to the door channel. Failures are logged and reported as False,
        a notification never blocks the door.
        """
        if not content:
            return False
        channel_id = channel_id or self.channel_id
        if self.dry_run or not channel_id:
            logger.info("DRY RUN message: %s", content)
            return False
        try:
            await self._request("POST", f"/channels/{channel_id}/messages", json={"content": content})
        except httpx.HTTPError:
            logger.exception("Failed to send Discord message")
            return False
        return True

    async def get_members(self, guild_id: str, role_id: Optional[str] = None) -> list[dict]:
        """
        All guild members, paginated by user id, optionally filtered by role.
        """
        members: list[dict] = []
        after = "0"
        while True:
            page = await self._request(
                "GET",
                f"/guilds/{guild_id}/members",
                params={"limit": str(MEMBERS_PAGE_SIZE), "after": after},
            )
            if not page:
                break
            members.extend(page)
            after = page[-1]["user"]["id"]
            if len(page) < MEMBERS_PAGE_SIZE:
                break

        if role_id:
            return [m for m in members if role_id in (m.get("roles") or [])]
        return members

    async def get_member(self, guild_id: str, user_id: str) -> Optional[dict]:
        try:
            return await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

    async def add_role(self, guild_id: str, role_id: str, member_id: str) -> None:
        logger.info("Adding role %s to %s", role_id, member_id)
        await self._request("PUT", f"/guilds/{guild_id}/members/{member_id}/roles/{role_id}")

    async def remove_role(self, guild_id: str, role_id: str, member_id: str) -> None:
        logger.info("Removing role %s from %s", role_id, member_id)
        await self._request("DELETE", f"/guilds/{guild_id}/members/{member_id}/roles/{role_id}")

    async def fetch_messages(self, channel_id: str, limit: int = 100) -> list[dict]:
        return await self._request("GET", f"/channels/{channel_id}/messages", params={"limit": limit}) or []

    async def register_commands(self, application_id: str) -> None:
        try:
            await self._request("PUT", f"/applications/{application_id}/commands", json=[OPEN_COMMAND])
            logger.info("Successfully reloaded application (/) commands")
        except httpx.HTTPError:
            logger.exception("Error registering commands")


def avatar_url(user: dict) -> Optional[str]:
    if not user.get("avatar"):
        return None
    return f"https://cdn.discordapp.com/avatars/{user['id']}/{user['avatar']}.png"


def display_name(user: dict, member: Optional[dict] = None) -> str:
    return (
        (member or {}).get("nick")
        or user.get("global_name")
        or user.get("username")
        or user.get("id", "unknown")
    )
