"""
args.py — Launch argument construction for ArkAscendedServer
------------------------------------------------------------
The server takes its core settings as one URL-style token
(``<map>?Key=Value?Key=Value listen``) followed by dash flags. The token is
positionally tolerant on the server side but we keep the attribute order
fixed so identical configs always produce identical vectors.
"""

from __future__ import annotations
from typing import Iterable, List, Sequence
from urllib.parse import quote
from .models import ServerConfig

LISTEN_SUFFIX = "listen"
NO_BATTLEYE = "-NoBattlEye"

# keys whose values never show up in logs
_SECRET_KEYS = ("ServerPassword", "ServerAdminPassword")


def build_url_token(config: ServerConfig) -> str:
    segments = [
        ("SessionName", quote(config.session_name, safe="")),
        ("Port", str(config.port)),
        ("QueryPort", str(config.query_port)),
        ("MaxPlayers", str(config.max_players)),
    ]
    if config.server_password:
        segments.append(("ServerPassword", config.server_password))
    if config.admin_password:
        segments.append(("ServerAdminPassword", config.admin_password))
    if config.rcon_port is not None:
        segments.append(("RCONPort", str(config.rcon_port)))

    url = config.map_name + "".join(f"?{k}={v}" for k, v in segments)
    # the space before "listen" is part of the token
    return f"{url} {LISTEN_SUFFIX}"


def build_launch_args(config: ServerConfig, extra_args: Sequence[str] = ()) -> List[str]:
    """Return the ordered argument vector for the server binary (without the executable)."""
    args = [build_url_token(config)]
    if config.mods:
        args.append("-mods=" + ",".join(config.mods))
    if config.no_battleye:
        args.append(NO_BATTLEYE)
    args.extend(config.extra_args)
    args.extend(extra_args)
    return args


def merge_tokens(base: Iterable[str], forced: Iterable[str]) -> List[str]:
    """Append ``forced`` to ``base``, skipping tokens already present (case-insensitive)."""
    out = list(base)
    present = {t.lower() for t in out}
    for tok in forced:
        if tok.lower() not in present:
            out.append(tok)
            present.add(tok.lower())
    return out


def format_command(executable, args: Sequence[str]) -> str:
    """Human readable rendering of a launch with passwords masked."""
    shown = []
    for a in args:
        for key in _SECRET_KEYS:
            marker = f"?{key}="
            start = a.find(marker)
            if start < 0:
                continue
            value_start = start + len(marker)
            end = a.find("?", value_start)
            if end < 0:
                end = a.find(" ", value_start)
            if end < 0:
                end = len(a)
            a = a[:value_start] + "<REDACTED>" + a[end:]
        shown.append(f'"{a}"' if " " in a else a)
    return " ".join([str(executable)] + shown)
