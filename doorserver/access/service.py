import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

from ..models.AccessRole import AccessRole
from .schedule import open_roles

logger = logging.getLogger(__name__)

NO_ROLES = "no roles assigned"
NOT_OPEN = "roles not valid at this time"


class DecisionKind(str, Enum):
    GRANTED = "granted"
    NO_ROLES = "no_roles"
    NOT_OPEN = "not_open"


@dataclass(frozen=True)
class AccessDecision:
    kind: DecisionKind
    reason: str
    matched_role: Optional[AccessRole] = None

    @property
    def granted(self) -> bool:
        return self.kind == DecisionKind.GRANTED


def decide(
    principal_id: str,
    roles: list[AccessRole],
    membership_index: Mapping[str, list[str]],
    now: datetime,
) -> AccessDecision:
    """
    Grants access when any role that is open right now lists the principal
    among its members. All of the principal's roles are considered, so an
    unrestricted role grants access even when a restricted one is closed.
    The first open role in declaration order is reported.
    """
    principal_roles = membership_index.get(principal_id)
    if not principal_roles:
        logger.info("User %s has no roles", principal_id)
        return AccessDecision(kind=DecisionKind.NO_ROLES, reason=NO_ROLES)

    currently_open = open_roles(roles, now)
    logger.debug("Open roles at %s: %s", now.isoformat(), [r.name for r in currently_open])

    for role in currently_open:
        if principal_id in role.member_ids:
            return AccessDecision(kind=DecisionKind.GRANTED, reason=f"Has role: {role.name}", matched_role=role)

    logger.info("User %s has no access, roles %s, open roles %s",
                principal_id, principal_roles, [r.name for r in currently_open])
    return AccessDecision(kind=DecisionKind.NOT_OPEN, reason=NOT_OPEN)


def primary_role(principal_id: str, roles: list[AccessRole], membership_index: Mapping[str, list[str]]) -> Optional[AccessRole]:
    """First role the principal was indexed under, used to explain a denial."""
    role_ids = membership_index.get(principal_id) or []
    if not role_ids:
        return None
    return next((r for r in roles if r.role_id == role_ids[0]), None)
