from pathlib import Path
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logger import get_logger

PACKAGE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Logos served from these hosts refuse cross-origin reads and go through the relay.
    relay_base: str = Field("https://corsproxy.io/", alias="RELAY_BASE")
    relay_cdn_hosts_raw: str = Field("cdn.pandascore.co", alias="RELAY_CDN_HOSTS")

    default_title: str = Field("Watch Party Schedule", alias="DEFAULT_TITLE")
    default_background: str = Field("", alias="DEFAULT_BACKGROUND")
    fonts_dir: str = Field(str(PACKAGE_DIR / "assets" / "fonts"), alias="FONTS_DIR")
    matches_file: str = Field("data/selected_matches.json", alias="MATCHES_FILE")

    assets_timeout_seconds: float = Field(default=15.0, alias="ASSETS_TIMEOUT_SECONDS")
    logo_fetch_retries: int = Field(default=2, alias="LOGO_FETCH_RETRIES")
    logo_max_bytes: int = Field(default=2 * 1024 * 1024, alias="LOGO_MAX_BYTES")
    logo_retry_max_wait_seconds: float = Field(default=2.0, alias="LOGO_RETRY_MAX_WAIT_SECONDS")
    enable_logo_memo: bool = Field(default=True, alias="ENABLE_LOGO_MEMO")
    logo_memo_max_entries: int = Field(default=256, alias="LOGO_MEMO_MAX_ENTRIES")

    # Backgrounds are read from this directory only; URLs only from the listed hosts.
    backgrounds_dir: str = Field("data/backgrounds", alias="BACKGROUNDS_DIR")
    background_hosts_raw: str = Field("", alias="BACKGROUND_HOSTS")
    background_max_bytes: int = Field(default=16 * 1024 * 1024, alias="BACKGROUND_MAX_BYTES")

    @model_validator(mode="after")
    def validate_relay(self):
        if not self.relay_base.strip() and self.relay_cdn_hosts:
            logger = get_logger("settings")
            logger.warning("RELAY_BASE is empty; CDN logos will be fetched directly")
        return self

    @property
    def relay_cdn_hosts(self) -> List[str]:
        return [x.strip().lower() for x in self.relay_cdn_hosts_raw.split(",") if x.strip()]

    @property
    def background_hosts(self) -> List[str]:
        return [x.strip().lower() for x in self.background_hosts_raw.split(",") if x.strip()]


default_settings = Settings()
settings = default_settings
