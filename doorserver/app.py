import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from eth_account.signers.local import LocalAccount
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from .audit.service import LOG_FILENAME, AccessLog
from .core.config import ensure_server_key_authorized, load_access_roles, load_authorized_keys
from .core.context import DoorContext
from .core.crypto import load_or_create_server_key
from .core.errors import AccessDenied, ConfigurationError
from .core.scheduler import AsyncioScheduler, Scheduler
from .core.settings import Settings, get_settings
from .discord.client import DiscordClient
from .discord.router import router as discord_router
from .door.router import router as door_router
from .funfacts.service import FunFacts
from .open.router import router as open_router
from .session.state import SessionState
from .wallet.service import CitizenWallet, load_community

logger = logging.getLogger(__name__)


def build_context(
    settings: Settings,
    scheduler: Optional[Scheduler] = None,
    discord: Optional[DiscordClient] = None,
    wallet: Optional[CitizenWallet] = None,
    server_account: Optional[LocalAccount] = None,
) -> DoorContext:
    scheduler = scheduler or AsyncioScheduler(settings.TIMEZONE)
    server_account = server_account or load_or_create_server_key(settings)

    authorized_keys = load_authorized_keys(settings.AUTHORIZED_KEYS_FILE)
    ensure_server_key_authorized(authorized_keys, server_account.address)

    state = SessionState(
        scheduler,
        roles=load_access_roles(settings.ACCESS_ROLES_FILE),
        authorized_keys=authorized_keys,
        tenant_id=settings.DISCORD_GUILD_ID,
        secret=settings.SECRET,
        dwell_seconds=settings.DOOR_DWELL_SECONDS,
        present_today_role_id=settings.DISCORD_PRESENT_TODAY_ROLE_ID,
    )
    return DoorContext(
        settings=settings,
        state=state,
        discord=discord or DiscordClient(settings.DISCORD_BOT_TOKEN, settings.DISCORD_CHANNEL_ID, settings.DRY_RUN),
        access_log=AccessLog(Path(settings.LOG_DIR) / LOG_FILENAME),
        server_account=server_account,
        wallet=wallet or CitizenWallet(load_community(settings.COMMUNITY_FILE)),
        fun_facts=FunFacts(),
    )


async def start_background(ctx: DoorContext) -> None:
    """
    Initial membership load and the periodic jobs. Nothing here blocks
    request handling.
    """
    settings = ctx.settings
    state = ctx.state

    async def load_fun_facts():
        await ctx.fun_facts.load(ctx.discord, settings.DISCORD_FUNFACTS_CHANNEL_ID, state.scheduler.now())

    state.start(ctx.discord, settings.REFRESH_INTERVAL_SECONDS)
    state.add_job(state.scheduler.every(settings.FUNFACTS_INTERVAL_SECONDS, load_fun_facts))

    async def initial_load():
        await state.refresh_memberships(ctx.discord)
        await load_fun_facts()
        if settings.DISCORD_APPLICATION_ID:
            await ctx.discord.register_commands(settings.DISCORD_APPLICATION_ID)

    asyncio.get_running_loop().create_task(initial_load())


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[DoorContext] = None,
    run_background: bool = True,
) -> FastAPI:
    if context is None:
        if settings is None:
            try:
                settings = get_settings()
            except ValidationError as e:
                raise ConfigurationError(f"Missing or invalid configuration: {e}")
        context = build_context(settings)
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Door started at %s (%s)", context.state.scheduler.now().isoformat(), settings.TIMEZONE)
        if run_background:
            await start_background(context)
        yield
        context.state.stop()
        await context.discord.aclose()
        await context.wallet.aclose()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.door = context

    @app.exception_handler(AccessDenied)
    async def access_denied_handler(request: Request, exc: AccessDenied):
        return PlainTextResponse(exc.reason, status_code=exc.status_code)

    app.include_router(door_router)
    app.include_router(open_router)
    app.include_router(discord_router)
    return app
