from datetime import datetime

from pydantic import BaseModel, ConfigDict

# ==========================================
# Door log entry (append-only)
# ==========================================
class AccessEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    userid: str
    agent: str

# ==========================================
# Principal snapshot (display only)
# ==========================================
class Principal(BaseModel):
    id: str
    display_name: str | None = None
    username: str | None = None
    avatar_url: str | None = None

class ClientHeartbeat(BaseModel):
    timestamp: datetime
    ip: str
    user_agent: str | None = None
    is_door_open: bool
