import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from ..models.AccessRole import AccessRole
from ..models.AuthorizedKey import AuthorizedKey
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SERVER_KEY_NAME = "Door Server"


def _load_list(path: str, model):
    file = Path(path)
    if not file.exists():
        logger.warning("%s not found, starting with an empty list", file)
        return []
    try:
        return TypeAdapter(list[model]).validate_python(json.loads(file.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid configuration in {file}: {e}")


def load_access_roles(path: str) -> list[AccessRole]:
    return _load_list(path, AccessRole)


def load_authorized_keys(path: str) -> list[AuthorizedKey]:
    return _load_list(path, AuthorizedKey)


def ensure_server_key_authorized(keys: list[AuthorizedKey], address: str) -> bool:
    """
    Appends the server's own address so links it mints verify. Returns True
    when the key was added.
    """
    if any(key.matches(address) for key in keys):
        return False
    keys.append(AuthorizedKey(
        name=SERVER_KEY_NAME,
        public_key=address,
        description="Auto-generated server key for event access links",
    ))
    logger.info("Server public key %s added to authorized keys", address)
    return True
