"""
Citizen Wallet session flow.

The wallet app redirects to /open with a signed session
(sigAuthAccount, sigAuthExpiry, sigAuthSignature, sigAuthRedirect). The
account is a smart contract wallet, so ownership is checked on chain with
ERC-1271 ``isValidSignature``; the door then looks up the community token
balance and the member profile.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

logger = logging.getLogger(__name__)

ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")
IPFS_GATEWAY = "https://ipfs.internal.citizenwallet.xyz"
SESSION_PARAMS = ("sigAuthAccount", "sigAuthExpiry", "sigAuthSignature", "sigAuthRedirect")


@dataclass
class WalletSession:
    profile: Optional[dict] = None
    balance: Optional[float] = None

    @property
    def address(self) -> Optional[str]:
        return (self.profile or {}).get("account")


def load_community(path: str) -> Optional[dict]:
    if not path:
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Community file %s not found, wallet access disabled", path)
        return None


def session_message(account: str, expiry: str, redirect: str) -> str:
    return f"Signature auth for {account} with expiry {expiry} and redirect {quote(redirect, safe='')}"


def eip191_hash(message: str) -> bytes:
    data = message.encode("utf-8")
    return keccak(b"\x19Ethereum Signed Message:\n" + str(len(data)).encode("ascii") + data)


def _calldata(signature: str, types: list[str], args: list[Any]) -> str:
    return "0x" + (function_signature_to_4byte_selector(signature) + encode(types, args)).hex()


def format_profile_links(profile: dict, gateway: str = IPFS_GATEWAY) -> dict:
    for key in ("image", "image_medium", "image_small"):
        value = profile.get(key)
        if isinstance(value, str) and value.startswith("ipfs://"):
            profile[key] = f"{gateway}/{value[len('ipfs://'):]}"
    return profile


class CitizenWallet:
    def __init__(self, community: Optional[dict], http: Optional[httpx.AsyncClient] = None):
        self.community = community
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def enabled(self) -> bool:
        return bool(self.community)

    async def _eth_call(self, to: str, data: str) -> bytes:
        response = await self._http.post(
            self.community["node"]["url"],
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_call",
                "params": [{"to": to, "data": data}, "latest"],
            },
        )
        response.raise_for_status()
        payload = response.json()
        if "error" in payload:
            raise ValueError(payload["error"].get("message", "eth_call failed"))
        return bytes.fromhex(payload["result"].removeprefix("0x"))

    async def verify_account_ownership(self, account: str, message: str, signature: str) -> bool:
        sig_bytes = bytes.fromhex(signature.removeprefix("0x"))
        try:
            result = await self._eth_call(
                account,
                _calldata("isValidSignature(bytes32,bytes)", ["bytes32", "bytes"], [eip191_hash(message), sig_bytes]),
            )
            (magic,) = decode(["bytes4"], result)
            return magic == ERC1271_MAGIC_VALUE
        except (ValueError, DecodingError, httpx.HTTPError):
            logger.warning("isValidSignature is not implemented on %s, checking owner", account)

        signer = Account.recover_message(encode_defunct(text=message), signature=signature)
        result = await self._eth_call(account, _calldata("owner()", [], []))
        (owner,) = decode(["address"], result)
        return owner.lower() == signer.lower()

    async def get_balance(self, address: str) -> float:
        token = self.community["token"]
        result = await self._eth_call(
            token["address"], _calldata("balanceOf(address)", ["address"], [to_checksum_address(address)])
        )
        (raw,) = decode(["uint256"], result)
        return raw / 10 ** int(token.get("decimals", 18))

    async def get_profile(self, address: str) -> Optional[dict]:
        profile_address = self.community.get("profile", {}).get("address")
        if not profile_address:
            return None
        try:
            result = await self._eth_call(
                profile_address, _calldata("fromAddressToId(address)", ["address"], [to_checksum_address(address)])
            )
            (profile_id,) = decode(["uint256"], result)
            result = await self._eth_call(
                profile_address, _calldata("tokenURI(uint256)", ["uint256"], [profile_id])
            )
            (uri,) = decode(["string"], result)
            if not uri:
                return None
            url = uri if uri.startswith("http") else f"{IPFS_GATEWAY}/{uri.removeprefix('ipfs://')}"
            response = await self._http.get(url)
            response.raise_for_status()
            profile = format_profile_links(response.json())
        except (ValueError, DecodingError, httpx.HTTPError):
            logger.exception("Error fetching profile for %s", address)
            return None
        profile.setdefault("account", address)
        return profile

    async def resolve(self, query: Mapping[str, str], now: datetime) -> WalletSession:
        """
        Resolves the session query parameters to a profile and balance. Any
        failure yields an empty session.
        """
        if not self.enabled or not all(query.get(p) for p in SESSION_PARAMS):
            return WalletSession()

        account = query["sigAuthAccount"]
        try:
            expiry = datetime.fromisoformat(query["sigAuthExpiry"].replace("Z", "+00:00"))
            if now > expiry:
                raise ValueError("Signature expired")
            message = session_message(account, query["sigAuthExpiry"], query["sigAuthRedirect"])
            if not await self.verify_account_ownership(account, message, query["sigAuthSignature"]):
                raise ValueError("Invalid signature")
            balance = await self.get_balance(account)
        except Exception as e:
            logger.error("Failed to verify wallet session for %s: %s", account, e)
            return WalletSession()

        profile = await self.get_profile(account) or {"account": account}
        return WalletSession(profile=profile, balance=balance)
