import logging
from datetime import datetime
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from ..access.service import DecisionKind, primary_role
from ..core.context import DoorContext
from ..door.service import grant_access, mark_present_today
from ..models.AccessEvent import Principal
from .client import avatar_url, display_name

logger = logging.getLogger(__name__)

NO_ACCESS_REPLY = "You don't have access to the Commons Hub Brussels. Become a member to access the door."


def verify_interaction(public_key_hex: str, signature_hex: str, timestamp: str, body: bytes) -> bool:
    """
    Checks the Ed25519 signature the chat platform puts on every
    interaction request (timestamp + raw body).
    """
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        public_key.verify(bytes.fromhex(signature_hex), timestamp.encode("utf-8") + body)
    except (InvalidSignature, ValueError):
        return False
    return True


def greeting(name: str, now: datetime) -> str:
    hour = now.hour
    if hour < 9:
        return "Good morning early bird! 🐣"
    if hour < 12:
        return f"Good morning {name}! ☀️"
    if hour < 18:
        return f"Good afternoon {name}! 🌞"
    return f"Good evening {name}! 🌙"


async def handle_open_command(ctx: DoorContext, user: dict, member: Optional[dict] = None) -> str:
    """
    The "open" chat command: runs the role decider for the invoking member and
    returns the reply text.
    """
    user_id = user["id"]
    state = ctx.state
    now = state.scheduler.now()

    decision = state.decide(user_id, now)
    if not decision.granted:
        logger.info("Open command denied for %s: %s", user_id, decision.reason)
        if decision.kind == DecisionKind.NO_ROLES:
            return NO_ACCESS_REPLY
        role = primary_role(user_id, state.roles, state.membership_index)
        if role is None:
            return NO_ACCESS_REPLY
        return f"No access at this time. {role.description}."

    name = display_name(user, member)
    principal = Principal(id=user_id, display_name=name, username=user.get("username"), avatar_url=avatar_url(user))
    await mark_present_today(ctx, user_id)
    await grant_access(
        ctx,
        principal,
        agent="discord",
        method="discord",
        userId=user_id,
        username=user.get("username"),
        role=decision.matched_role.name,
    )

    reply = f"{greeting(name, now)} ({decision.matched_role.description})"
    fact = ctx.fun_facts.pick()
    if fact:
        reply += f"\n**Fun fact**: {fact}"
    return reply
