from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse

from ..core.context import DoorContext, get_context, get_state
from ..models.AccessEvent import AccessEvent
from ..pages.templates import home_page
from ..session.state import SessionState
from ..tokens.service import secret_matches

router = APIRouter(tags=["door"])


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get("/", response_class=HTMLResponse)
def read_root(state: SessionState = Depends(get_state)):
    return home_page(state.is_open, state.recent_events(20), state.today_principals(), state.users)


@router.get("/check", response_class=PlainTextResponse)
def check(request: Request, state: SessionState = Depends(get_state)):
    """
    Polled by the door controller. 200 "open" or 403 "closed".
    """
    state.record_heartbeat(client_ip(request), request.headers.get("user-agent"))
    if state.is_open:
        return PlainTextResponse("open", status_code=status.HTTP_200_OK)
    return PlainTextResponse("closed", status_code=status.HTTP_403_FORBIDDEN)


@router.get("/status")
def door_status(state: SessionState = Depends(get_state)) -> dict[str, str]:
    return state.client_status()


@router.get("/log", response_model=List[AccessEvent])
def get_door_log(state: SessionState = Depends(get_state)):
    return state.doorlog


@router.get("/token", response_class=PlainTextResponse)
def get_token(secret: str | None = None, ctx: DoorContext = Depends(get_context)):
    if not secret_matches(ctx.settings.SECRET, secret):
        return PlainTextResponse("Invalid secret", status_code=status.HTTP_403_FORBIDDEN)
    return ctx.state.token_of_the_day()
