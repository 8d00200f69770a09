from dataclasses import dataclass, field

from eth_account.signers.local import LocalAccount
from fastapi import Request

from ..audit.service import AccessLog
from ..discord.client import DiscordClient
from ..funfacts.service import FunFacts
from ..session.state import SessionState
from ..wallet.service import CitizenWallet
from .settings import Settings


@dataclass
class DoorContext:
    """Everything a route handler or the chat command needs, owned by the app."""

    settings: Settings
    state: SessionState
    discord: DiscordClient
    access_log: AccessLog
    server_account: LocalAccount
    wallet: CitizenWallet
    fun_facts: FunFacts = field(default_factory=FunFacts)


def get_context(request: Request) -> DoorContext:
    return request.app.state.door


def get_state(request: Request) -> SessionState:
    return request.app.state.door.state
