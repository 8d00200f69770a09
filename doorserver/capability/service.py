"""
Signed capability URLs.

An event host holding a whitelisted secp256k1 key signs the canonical message
of a ``CapabilityRequest`` with an Ethereum personal-sign signature. The door
recovers the signer address from (message, sig) and checks it against the
authorized keys. Expiry is the only revocation mechanism: a valid URL can be
replayed until its window plus grace has elapsed.
"""
import logging
import time
from typing import Iterable, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from pydantic import ValidationError

from ..core.errors import AccessDenied
from ..models.AuthorizedKey import AuthorizedKey
from ..models.CapabilityRequest import (
    REQUIRED_FIELDS,
    CapabilityRequest,
    CapabilityVerification,
)
from ..tokens.service import secret_matches

logger = logging.getLogger(__name__)

GRACE_SECONDS = 30 * 60

MISSING_PARAMETERS = "Missing required parameters"
NOT_STARTED = "Event has not started yet"
EXPIRED = "Event access period has expired"
UNAUTHORIZED_KEY = "Unauthorized public key"


def sign_message(message: str, account: LocalAccount) -> str:
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


def recover_signer(message: str, sig: str) -> str:
    """
    Recovers the signer address. Raises AccessDenied for a malformed signature.
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=sig)
    except Exception as e:
        # eth-account raises a mix of ValueError, TypeError and BadSignature
        raise AccessDenied.unauthorized(f"Invalid signature: {e}")


def sign_capability(
    account: LocalAccount,
    name: str,
    host: str,
    reason: str,
    start_time: int,
    duration: int,
    event_url: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> CapabilityRequest:
    unsigned = CapabilityRequest(
        name=name,
        host=host,
        reason=reason,
        timestamp=str(int(time.time()) if timestamp is None else int(timestamp)),
        start_time=str(int(start_time)),
        duration=str(int(duration)),
        event_url=event_url or None,
    )
    return unsigned.model_copy(update={"sig": sign_message(unsigned.canonical_message(), account)})


def to_query(request: CapabilityRequest) -> dict[str, str]:
    query = {
        "name": request.name,
        "host": request.host,
        "reason": request.reason,
        "timestamp": request.timestamp,
        "startTime": request.start_time,
        "duration": request.duration,
    }
    if request.event_url:
        query["eventUrl"] = request.event_url
    query["sig"] = request.sig
    return query


def build_signed_url(request: CapabilityRequest, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/open?{urlencode(to_query(request))}"


def parse_signed_url(url: str) -> dict[str, str]:
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def is_ascii_number(value: str) -> bool:
    # str.isdigit alone accepts characters like "²" that int() rejects
    return value.isascii() and value.isdigit()


def parse_capability(params: Mapping[str, str]) -> CapabilityRequest:
    if any(not params.get(field) for field in REQUIRED_FIELDS):
        raise AccessDenied.malformed(MISSING_PARAMETERS)
    try:
        request = CapabilityRequest.model_validate(
            {key: params[key] for key in (*REQUIRED_FIELDS, "eventUrl") if params.get(key)}
        )
    except ValidationError:
        raise AccessDenied.malformed(MISSING_PARAMETERS)
    if not (is_ascii_number(request.start_time) and is_ascii_number(request.duration)):
        raise AccessDenied.malformed("Invalid startTime or duration")
    return request


def check_window(request: CapabilityRequest, now: float, grace: int = GRACE_SECONDS) -> None:
    if now < request.window_start - grace:
        raise AccessDenied.unauthorized(NOT_STARTED)
    if now > request.window_end + grace:
        raise AccessDenied.unauthorized(EXPIRED)


def find_authorized_key(address: str, keys: Iterable[AuthorizedKey]) -> Optional[AuthorizedKey]:
    return next((key for key in keys if key.matches(address)), None)


def verify_capability(
    params: Mapping[str, str],
    authorized_keys: Iterable[AuthorizedKey],
    secret: str,
    now: float,
    grace: int = GRACE_SECONDS,
) -> CapabilityVerification:
    """
    Verifies a signed access request.

    1. all required fields present, otherwise malformed request
    2. a matching shared ``secret`` parameter skips the time window check
    3. now within [startTime - grace, startTime + duration*60 + grace]
    4. signer recovered from the canonical message
    5. signer in the authorized keys whitelist
    """
    request = parse_capability(params)

    secret_bypass = secret_matches(secret, params.get("secret"))
    if not secret_bypass:
        check_window(request, now, grace)

    address = recover_signer(request.canonical_message(), request.sig)

    key = find_authorized_key(address, authorized_keys)
    if key is None:
        logger.info("Signature from %s is not in the authorized keys", address)
        raise AccessDenied.unauthorized(UNAUTHORIZED_KEY)

    return CapabilityVerification(
        public_key=address,
        authorized_name=key.name,
        secret_bypass=secret_bypass,
        event_url=request.event_url,
    )
