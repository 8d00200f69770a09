import base64
import json
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from eth_account import Account
from eth_account.signers.local import LocalAccount

from .errors import ConfigurationError
from .settings import Settings

logger = logging.getLogger(__name__)

PRIVATE_KEY_FILENAME = ".privateKey"
KDF_ITERATIONS = 480_000


def derive_key_from_password(password: str, salt: bytes, length: int = 32) -> bytes:
    """
    Derives a symmetric key from a password using PBKDF2-HMAC-SHA256.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_private_key_with_password(private_key: str, password: str) -> str:
    """
    Encrypts the hex private key with a password using AES-GCM.
    Returns a JSON string representing the vault object.
    """
    salt = os.urandom(16)
    nonce = os.urandom(12)

    key = derive_key_from_password(password, salt, length=32)
    ciphertext = AESGCM(key).encrypt(nonce, private_key.encode("utf-8"), associated_data=None)

    vault_obj = {
        "kdf": "pbkdf2-hmac-sha256",
        "kdf_iterations": KDF_ITERATIONS,
        "cipher": "aes-256-gcm",
        "salt": base64.b64encode(salt).decode("utf-8"),
        "nonce": base64.b64encode(nonce).decode("utf-8"),
        "ciphertext": base64.b64encode(ciphertext).decode("utf-8"),
    }
    return json.dumps(vault_obj)


def decrypt_private_key_with_password(vault_json: str, password: str) -> str:
    vault = json.loads(vault_json)
    salt = base64.b64decode(vault["salt"])
    nonce = base64.b64decode(vault["nonce"])
    ciphertext = base64.b64decode(vault["ciphertext"])

    key = derive_key_from_password(password, salt, length=32)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, associated_data=None)
    except InvalidTag:
        raise ConfigurationError("Wrong KEY_PASSPHRASE for the server key vault")
    return plaintext.decode("utf-8")


def generate_keypair() -> tuple[str, str]:
    """
    Generates a secp256k1 key pair.
    Returns (private_key_hex, address).
    """
    account = Account.create()
    return "0x" + bytes(account.key).hex(), account.address


def account_from_key(private_key: str) -> LocalAccount:
    try:
        return Account.from_key(private_key.strip())
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid server private key: {e}")


def _read_key_file(path: Path, passphrase: str) -> str:
    content = path.read_text(encoding="utf-8").strip()
    if content.startswith("{"):
        if not passphrase:
            raise ConfigurationError(f"{path} is an encrypted vault but KEY_PASSPHRASE is not set")
        return decrypt_private_key_with_password(content, passphrase)
    return content


def _write_key_file(path: Path, private_key: str, passphrase: str) -> None:
    content = encrypt_private_key_with_password(private_key, passphrase) if passphrase else private_key
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)


def load_or_create_server_key(settings: Settings) -> LocalAccount:
    """
    Server signing key: PRIVATE_KEY env first, then the key file in DATA_DIR,
    otherwise a fresh key is generated and written to the key file.
    """
    if settings.PRIVATE_KEY:
        account = account_from_key(settings.PRIVATE_KEY)
        logger.info("Using PRIVATE_KEY from environment, address %s", account.address)
        return account

    path = Path(settings.DATA_DIR) / PRIVATE_KEY_FILENAME
    if path.exists():
        account = account_from_key(_read_key_file(path, settings.KEY_PASSPHRASE))
        logger.info("Loaded private key from %s, address %s", path, account.address)
        return account

    logger.info("Generating new private key")
    private_key, _ = generate_keypair()
    account = account_from_key(private_key)
    try:
        _write_key_file(path, private_key, settings.KEY_PASSPHRASE)
        logger.info("Private key saved to %s, address %s", path, account.address)
    except OSError:
        logger.exception("Failed to save private key to %s", path)
    return account
