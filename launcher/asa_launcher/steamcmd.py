from __future__ import annotations
import subprocess
from pathlib import Path
from typing import Callable, List, Optional
from .errors import ToolNotFound, UpdateFailed
from .logging_setup import get_logger

log = get_logger("asa.launcher.steamcmd")

Runner = Callable[..., subprocess.CompletedProcess]


def build_update_args(install_dir: Path, login: str, app_id: int, *, validate: bool = False,
                      branch: Optional[str] = None, branch_password: Optional[str] = None) -> List[str]:
    args: List[str] = [
        "+force_install_dir", str(install_dir),
        "+login", *(login.split() or ["anonymous"]),
        "+app_update", str(app_id),
    ]
    if branch:
        args += ["-beta", branch]
        if branch_password:
            args += ["-betapassword", branch_password]
    if validate:
        args.append("validate")
    args += ["+quit"]
    return args


def mask_args(args: List[str]) -> List[str]:
    """Copy of ``args`` with the login password and beta password replaced."""
    tokens = list(map(str, args))
    for idx, t in enumerate(tokens):
        if t == "+login":
            j = idx + 2
            while j < len(tokens) and not tokens[j].startswith("+"):
                tokens[j] = "<REDACTED_PW>"
                j += 1
        elif t == "-betapassword" and idx + 1 < len(tokens):
            tokens[idx + 1] = "<REDACTED_PW>"
    return tokens


def command_line(args: List[str]) -> str:
    return " ".join(args)


class SteamCMD:
    def __init__(self, tool_path: Path, run: Runner = subprocess.run):
        self.bin = Path(tool_path)
        self._run_proc = run

    def _run(self, args: List[str]) -> None:
        cmd = [str(self.bin)] + args
        log.info("SteamCMD: %s", command_line([str(self.bin)] + mask_args(args)))
        try:
            proc = self._run_proc(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise ToolNotFound(f"SteamCMD not found at {self.bin}") from e
        if proc.stdout:
            log.debug("steamcmd stdout: %s", proc.stdout[-4000:])
        if proc.stderr:
            log.debug("steamcmd stderr: %s", proc.stderr[-4000:])
        if proc.returncode != 0:
            raise UpdateFailed(proc.returncode, "see launcher.log for SteamCMD output")

    def update_app(self, install_dir: Path, app_id: int, *, login: str = "anonymous", validate: bool = False,
                   branch: Optional[str] = None, branch_password: Optional[str] = None) -> None:
        install_dir = Path(install_dir)
        install_dir.mkdir(parents=True, exist_ok=True)
        args = build_update_args(install_dir, login, app_id, validate=validate,
                                 branch=branch, branch_password=branch_password)
        self._run(args)
        log.info("SteamCMD app_update %s finished (install dir %s).", app_id, install_dir)
