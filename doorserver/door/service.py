import logging
from typing import Any, Optional

from ..core.context import DoorContext
from ..models.AccessEvent import AccessEvent, Principal

logger = logging.getLogger(__name__)


async def grant_access(
    ctx: DoorContext,
    principal: Principal,
    agent: str,
    method: str,
    notification: Optional[str] = None,
    **metadata: Any,
) -> AccessEvent:
    """
    Records the principal, opens the door, appends the audit line and posts
    the chat notification. A failed notification does not undo the opening.
    """
    ctx.state.record_principal(principal)
    event = ctx.state.open_door(principal.id, agent)
    ctx.access_log.log_access(principal.display_name or principal.username or principal.id, method, **metadata)
    if notification:
        await ctx.discord.send_message(notification)
    return event


async def mark_present_today(ctx: DoorContext, member_id: str) -> None:
    """Gives a chat member the transient "present today" role."""
    ctx.state.mark_present(member_id)
    role_id = ctx.settings.DISCORD_PRESENT_TODAY_ROLE_ID
    if not role_id:
        return
    try:
        await ctx.discord.add_role(ctx.settings.DISCORD_GUILD_ID, role_id, member_id)
    except Exception:
        logger.exception("Failed to add present today role to %s", member_id)
