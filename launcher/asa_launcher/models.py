from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from .logging_setup import get_logger

log = get_logger("asa.launcher.models")

Port = Annotated[int, Field(ge=1, le=65535)]


class ServerConfig(BaseModel):
    """Immutable server settings, built once from the command line."""

    model_config = ConfigDict(frozen=True)

    map_name: str = "TheIsland_WP"
    session_name: str = "ASA Server"
    max_players: int = Field(default=70, gt=0)
    port: Port = 7777
    query_port: Port = 27015
    rcon_port: Optional[Port] = None
    server_password: str = ""
    admin_password: str = ""
    no_battleye: bool = True
    extra_args: Tuple[str, ...] = ()
    mods: Tuple[str, ...] = ()

    @field_validator("map_name")
    @classmethod
    def _map_has_no_separators(cls, v: str) -> str:
        v = v.strip()
        if not v or "?" in v or " " in v:
            raise ValueError(f"invalid map name {v!r}")
        return v

    @field_validator("server_password", "admin_password")
    @classmethod
    def _password_fits_url_token(cls, v: str) -> str:
        # passwords go into the URL token unescaped
        if "?" in v or any(c.isspace() for c in v):
            raise ValueError("passwords must not contain '?' or whitespace")
        return v

    @field_validator("mods", mode="before")
    @classmethod
    def _normalize_mods(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        seen = set()
        ordered: List[str] = []
        for raw in v:
            mod_id = str(raw).strip()
            if not mod_id:
                continue
            if not mod_id.isdigit():
                raise ValueError(f"mod id must be numeric, got {mod_id!r}")
            if mod_id in seen:
                log.warning("Mod id %s listed more than once, keeping the first occurrence.", mod_id)
                continue
            seen.add(mod_id)
            ordered.append(mod_id)
        return tuple(ordered)


class Protocol(str, Enum):
    UDP = "UDP"
    TCP = "TCP"


@dataclass(frozen=True)
class FirewallRule:
    name: str
    protocol: Protocol
    port: int
    direction: str = "inbound"


def rules_for(config: ServerConfig) -> List[FirewallRule]:
    rules = [
        FirewallRule(f"ASA Game Port {config.port}", Protocol.UDP, config.port),
        FirewallRule(f"ASA Query Port {config.query_port}", Protocol.UDP, config.query_port),
    ]
    if config.rcon_port is not None:
        rules.append(FirewallRule(f"ASA RCON Port {config.rcon_port}", Protocol.TCP, config.rcon_port))
    return rules


# --- commands ---------------------------------------------------------------

class _CommandBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: Path
    no_firewall: bool = False
    bootstrap: bool = False
    branch: Optional[str] = None
    branch_password: Optional[str] = None


class SetupCommand(_CommandBase):
    command: Literal["setup"] = "setup"
    # only the ports are used, for the firewall rules
    server: ServerConfig = Field(default_factory=ServerConfig)


class StartCommand(_CommandBase):
    command: Literal["start"] = "start"
    server: ServerConfig = Field(default_factory=ServerConfig)
    auto_restart: bool = True
    restart_delay: float = Field(default=5.0, ge=0)


class PrefetchCommand(_CommandBase):
    command: Literal["prefetch"] = "prefetch"
    server: ServerConfig = Field(default_factory=ServerConfig)
    timeout_minutes: float = Field(default=20.0, gt=0)


class UpdateCommand(_CommandBase):
    command: Literal["update"] = "update"
    steamcmd_path: Optional[Path] = None
    install_dir: Optional[Path] = None
    validate_files: bool = False
    login: str = "anonymous"


Command = Annotated[
    Union[SetupCommand, StartCommand, UpdateCommand, PrefetchCommand],
    Field(discriminator="command"),
]

_command_adapter = TypeAdapter(Command)


def parse_command(data: dict) -> Command:
    return _command_adapter.validate_python(data)
