import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError

from ..capability.service import is_ascii_number, verify_capability
from ..core.context import DoorContext, get_context
from ..core.errors import AccessDenied
from ..discord.client import avatar_url, display_name
from ..door.service import grant_access, mark_present_today
from ..models.AccessEvent import Principal
from ..pages.templates import (
    signature_error_page,
    signature_success_page,
    wallet_forbidden_page,
    wallet_no_app_page,
    wallet_success_page,
)
from ..tokens.service import day_stamp, token_for_principal, tokens_match

logger = logging.getLogger(__name__)

router = APIRouter(tags=["open"])


class ShortcutRequest(BaseModel):
    token: str
    userid: str


def _int_or_none(value: str | None) -> int | None:
    return int(value) if value and is_ascii_number(value) else None


@router.get("/open", response_class=HTMLResponse)
async def open_door(request: Request, ctx: DoorContext = Depends(get_context)):
    """
    Main access route. A ``sig`` parameter selects the signed capability
    flow, ``token`` the token of the day, anything else the wallet session.
    """
    params = dict(request.query_params)
    if params.get("sig"):
        return await open_with_signature(ctx, params)
    if params.get("token"):
        return await open_with_token(ctx, params["token"])
    return await open_with_wallet(ctx, params)


async def open_with_signature(ctx: DoorContext, params: dict[str, str]):
    state = ctx.state
    try:
        verification = verify_capability(
            params,
            state.authorized_keys,
            ctx.settings.SECRET,
            now=state.scheduler.time(),
            grace=ctx.settings.GRACE_SECONDS,
        )
    except AccessDenied as e:
        logger.info("/open Signature verification failed: %s", e.reason)
        html = signature_error_page(
            error=e.reason,
            event_name=params.get("reason"),
            event_url=params.get("eventUrl"),
            start_time=_int_or_none(params.get("startTime")),
            duration=_int_or_none(params.get("duration")),
            grace=ctx.settings.GRACE_SECONDS,
            tz=state.scheduler.tz,
        )
        return HTMLResponse(html, status_code=e.status_code)

    name, host, reason = params["name"], params["host"], params["reason"]
    event_url = params.get("eventUrl")
    principal = Principal(id=f"event_{host}_{params['timestamp']}", display_name=name, username=name)
    event_link = f"<{event_url}>" if event_url else reason
    await grant_access(
        ctx,
        principal,
        agent=f"{host} ({verification.authorized_name})",
        method="signature",
        notification=f"🚪 {name} opened the door for {event_link} hosted by {host}",
        host=host,
        reason=reason,
        eventUrl=event_url,
        authorizedKey=verification.authorized_name,
        startTime=params["startTime"],
        duration=params["duration"],
        secretBypass=verification.secret_bypass,
    )
    return HTMLResponse(signature_success_page(name, reason, event_url))


async def open_with_token(ctx: DoorContext, token: str):
    state = ctx.state
    if not tokens_match(state.token_of_the_day(), token):
        logger.info("/open Invalid token")
        return PlainTextResponse("Invalid token", status_code=status.HTTP_403_FORBIDDEN)

    today = day_stamp(state.scheduler.now())
    state.record_principal(Principal(id=today, display_name="Token User"))
    state.open_door(today, "token")
    ctx.access_log.log_access("Token User", "token", date=today)
    await ctx.discord.send_message("🚪 Door opened using today's token")
    return HTMLResponse(wallet_success_page(None, state.today_principals(), state.users))


async def open_with_wallet(ctx: DoorContext, params: dict[str, str]):
    state = ctx.state
    session = await ctx.wallet.resolve(params, state.scheduler.now())

    if session.balance is None or session.balance <= 0:
        if params.get("sigAuthAccount"):
            return HTMLResponse(wallet_forbidden_page(session.profile), status_code=status.HTTP_403_FORBIDDEN)
        return HTMLResponse(wallet_no_app_page(ctx.wallet.community))

    profile = session.profile
    address = session.address
    username = profile.get("username") or address[:8]
    principal = Principal(id=address, display_name=username, username=username, avatar_url=profile.get("image_medium"))
    await grant_access(
        ctx,
        principal,
        agent=profile.get("username") or "unknown",
        method="citizenwallet",
        notification=f"🚪 Door opened by {username} via Citizen Wallet",
        address=address,
        balance=session.balance,
    )
    return HTMLResponse(wallet_success_page(profile, state.today_principals(), state.users))


async def _read_shortcut(request: Request) -> ShortcutRequest | None:
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            return None
    else:
        data = dict(await request.form())
    try:
        return ShortcutRequest.model_validate(data)
    except ValidationError:
        return None


@router.post("/open", response_class=PlainTextResponse)
async def open_with_shortcut(request: Request, ctx: DoorContext = Depends(get_context)):
    """
    Shortcut access (e.g. a home screen button) with a per-member token.
    """
    settings = ctx.settings
    state = ctx.state
    body = await _read_shortcut(request)
    if body is None:
        return PlainTextResponse("Missing token or userid", status_code=status.HTTP_400_BAD_REQUEST)

    expected = token_for_principal(settings.DISCORD_GUILD_ID, body.userid, settings.SECRET)
    if not tokens_match(expected, body.token):
        logger.info("/open Invalid shortcut token for %s", body.userid)
        return PlainTextResponse("Invalid token", status_code=status.HTTP_403_FORBIDDEN)

    if settings.SHORTCUT_RESPECTS_SCHEDULE:
        decision = state.decide(body.userid)
        if not decision.granted:
            return PlainTextResponse(f"No access at this time ({decision.reason})", status_code=status.HTTP_403_FORBIDDEN)

    try:
        member = await ctx.discord.get_member(settings.DISCORD_GUILD_ID, body.userid)
    except Exception:
        logger.exception("Could not look up member %s, opening with userid only", body.userid)
        await grant_access(
            ctx,
            Principal(id=body.userid, display_name=body.userid),
            agent=body.userid,
            method="shortcut",
            notification=f"🚪 Door opened by user <@{body.userid}> via shortcut 📲",
            userId=body.userid,
            note="Member lookup failed",
        )
        return PlainTextResponse("🚪 Door opened via shortcut 📲")

    if member is None:
        return PlainTextResponse("User not found", status_code=status.HTTP_403_FORBIDDEN)

    user = member["user"]
    name = display_name(user, member)
    message = f"🚪 Door opened by <@{user['id']}> via shortcut 📲"
    await mark_present_today(ctx, user["id"])
    await grant_access(
        ctx,
        Principal(id=user["id"], display_name=name, username=user.get("username"), avatar_url=avatar_url(user)),
        agent=name,
        method="shortcut",
        notification=message,
        userId=user["id"],
        username=user.get("username"),
    )
    return PlainTextResponse(message)
