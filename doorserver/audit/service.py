import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

LOG_FILENAME = "door_access.log"
GENESIS_HASH = "00000000000000000000000000000000"


def calculate_hash(previous_hash: str, entry: dict[str, Any]) -> str:
    """
    SHA-256 over previous_hash + the entry serialized with sorted keys.
    """
    data = previous_hash + json.dumps(entry, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class AccessLog:
    """
    Append-only JSON-lines file of every granted access. Each line is chained
    to the previous one by hash.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._last_hash: Optional[str] = None

    def _read_last_hash(self) -> str:
        if not self.path.exists():
            return GENESIS_HASH
        last_line = ""
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last_line = line
        if not last_line:
            return GENESIS_HASH
        return json.loads(last_line).get("hash", GENESIS_HASH)

    def log_access(self, name: str, method: str, **metadata: Any) -> Optional[dict]:
        """
        Appends one entry. Write failures are logged, never raised.
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
            "name": name,
            "method": method,
            **{key: value for key, value in metadata.items() if value is not None},
        }
        try:
            if self._last_hash is None:
                self._last_hash = self._read_last_hash()
            entry["previous_hash"] = self._last_hash
            entry["hash"] = calculate_hash(self._last_hash, {k: v for k, v in entry.items() if k != "previous_hash"})
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
            self._last_hash = entry["hash"]
        except (OSError, ValueError):
            logger.exception("Failed to write to access log %s", self.path)
            return None
        return entry


def verify_chain(path: Path | str) -> bool:
    """
    Recomputes every hash in the file. False if any line was altered,
    removed or reordered.
    """
    previous_hash = GENESIS_HASH
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            entry = json.loads(line)
            if entry.get("previous_hash") != previous_hash:
                return False
            stored_hash = entry.pop("hash", None)
            entry.pop("previous_hash")
            if calculate_hash(previous_hash, entry) != stored_hash:
                return False
            previous_hash = stored_hash
    return True
