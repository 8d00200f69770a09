import hashlib
import hmac
from datetime import date, datetime
from typing import Optional

# The rotating tokens are MD5 digests used as rotation ids. Their only
# protection is the secrecy of SECRET.


def _digest(*parts: str) -> str:
    return hashlib.md5(":".join(parts).encode("utf-8")).hexdigest()


def day_stamp(day: date | datetime) -> str:
    return day.strftime("%Y%m%d")


def token_for_today(tenant_id: str, secret: str, today: date | datetime) -> str:
    """
    Token of the day for anonymous same-day visitors. ``today`` is the local
    calendar date; the token changes at local midnight.
    """
    return _digest(tenant_id, day_stamp(today), secret)


def token_for_principal(tenant_id: str, principal_id: str, secret: str) -> str:
    """Stable per-principal token used by the shortcut flow."""
    return _digest(tenant_id, principal_id, secret)


def tokens_match(expected: str, supplied: Optional[str]) -> bool:
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def secret_matches(secret: str, supplied: Optional[str]) -> bool:
    """True only when a server secret is configured and the caller supplied it."""
    return bool(secret) and tokens_match(secret, supplied)
