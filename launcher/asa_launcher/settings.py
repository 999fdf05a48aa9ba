from __future__ import annotations
import os
from pathlib import Path
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_ROOT = Path(r"C:\asa-server") if os.name == "nt" else Path("/opt/asa-server")

class Settings(BaseSettings):
    asa_root: Path = Field(default=_DEFAULT_ROOT, alias="ASA_ROOT")
    steamcmd_path: Optional[Path] = Field(default=None, alias="STEAMCMD_PATH")
    steamcmd_dir: Optional[Path] = Field(default=None, alias="STEAMCMD_DIR")
    launcher_log_dir: Optional[Path] = Field(default=None, alias="LAUNCHER_LOG_DIR")

    steam_login: str = Field(default="anonymous", alias="STEAM_LOGIN")

    restart_delay: float = Field(default=5.0, alias="RESTART_DELAY")
    prefetch_timeout_minutes: float = Field(default=20.0, alias="PREFETCH_TIMEOUT_MINUTES")
    prefetch_poll_interval: float = Field(default=10.0, alias="PREFETCH_POLL_INTERVAL")
    prefetch_progress_marker: str = Field(default="Downloading mod", alias="PREFETCH_PROGRESS_MARKER")
    prefetch_complete_marker: str = Field(default="Mod download complete", alias="PREFETCH_COMPLETE_MARKER")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    asa_app_id: int = Field(default=2430930)

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    def resolved_steamcmd_dir(self) -> Path:
        return self.steamcmd_dir or (self.asa_root.parent / "steamcmd")

    def resolved_log_dir(self) -> Path:
        return self.launcher_log_dir or (self.asa_root / "launcher-logs")
