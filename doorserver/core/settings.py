from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Door"
    BASE_URL: str = "http://localhost:8000"

    # Chat platform (required, the server refuses to start without them)
    DISCORD_BOT_TOKEN: str
    DISCORD_GUILD_ID: str
    DISCORD_CHANNEL_ID: str = ""
    DISCORD_APPLICATION_ID: str = ""
    DISCORD_PUBLIC_KEY: str = ""
    DISCORD_PRESENT_TODAY_ROLE_ID: str = ""
    DISCORD_FUNFACTS_CHANNEL_ID: str = ""

    # Shared secret: token of the day, /token and capability bypass
    SECRET: str = ""

    # Server signing key
    PRIVATE_KEY: str = ""
    DATA_DIR: str = "."
    KEY_PASSPHRASE: str = ""

    # Static configuration
    ACCESS_ROLES_FILE: str = "access_roles.json"
    AUTHORIZED_KEYS_FILE: str = "authorized_keys.json"
    COMMUNITY_FILE: str = ""
    LOG_DIR: str = "."

    # Local clock used for schedules and the token of the day
    TIMEZONE: str = "Europe/Brussels"

    DOOR_DWELL_SECONDS: float = 3.5
    GRACE_SECONDS: int = 30 * 60
    REFRESH_INTERVAL_SECONDS: int = 60 * 60
    FUNFACTS_INTERVAL_SECONDS: int = 24 * 60 * 60

    # POST /open shortcut also checks role schedules when enabled
    SHORTCUT_RESPECTS_SCHEDULE: bool = False

    DRY_RUN: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache
def get_settings() -> Settings:
    return Settings()
