import json

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from ..core.context import DoorContext, get_context
from .service import handle_open_command, verify_interaction

router = APIRouter(prefix="/discord", tags=["discord"])

PING = 1
APPLICATION_COMMAND = 2
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4
EPHEMERAL = 1 << 6


@router.post("/interactions")
async def interactions(
    request: Request,
    ctx: DoorContext = Depends(get_context),
    x_signature_ed25519: str = Header(default=""),
    x_signature_timestamp: str = Header(default=""),
):
    """
    Interaction webhook for the "open" slash command.
    """
    body = await request.body()
    public_key = ctx.settings.DISCORD_PUBLIC_KEY
    if not public_key or not verify_interaction(public_key, x_signature_ed25519, x_signature_timestamp, body):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid request signature")

    interaction = json.loads(body)
    if interaction.get("type") == PING:
        return {"type": PONG}

    if interaction.get("type") != APPLICATION_COMMAND or interaction.get("data", {}).get("name") != "open":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown command")

    channel_id = ctx.settings.DISCORD_CHANNEL_ID
    if channel_id and interaction.get("channel_id") != channel_id:
        return {
            "type": CHANNEL_MESSAGE_WITH_SOURCE,
            "data": {"content": f"This command only works in <#{channel_id}>", "flags": EPHEMERAL},
        }

    member = interaction.get("member")
    user = (member or {}).get("user") or interaction.get("user")
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user")

    reply = await handle_open_command(ctx, user, member)
    return {"type": CHANNEL_MESSAGE_WITH_SOURCE, "data": {"content": reply}}
