# doorcli/core/config.py
from pathlib import Path
import os

# Public URL of the door server, used in generated links
BASE_URL = os.environ.get("DOOR_URL", "http://localhost:8000")

# Directory holding the server key file (.privateKey)
DATA_DIR = Path(os.environ.get("DATA_DIR", "."))
PRIVATE_KEY_FILE = DATA_DIR / ".privateKey"

GUILD_ID = os.environ.get("DISCORD_GUILD_ID", "")
SECRET = os.environ.get("SECRET", "")
TIMEZONE = os.environ.get("TIMEZONE", "Europe/Brussels")
