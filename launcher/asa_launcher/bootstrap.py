"""
bootstrap.py — Idempotent install bootstrap for the ASA dedicated server
------------------------------------------------------------------------
Ordered steps, each skipped when already satisfied:

1. Visual C++ runtime (Windows only)
2. SteamCMD binary
3. Server files via SteamCMD app_update (validate on first install)
4. Firewall rules (unless skipped)

Nothing is rolled back. A failed step stops the run and a later run picks
up from the first unsatisfied step.
"""

from __future__ import annotations
import os
import shutil
import subprocess
import tarfile
import tempfile
import urllib.request
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from .errors import DependencyInstallFailed, ToolNotFound
from .firewall import FirewallReconciler
from .fs_layout import Layout
from .logging_setup import get_logger
from .models import FirewallRule
from .settings import Settings
from .steamcmd import SteamCMD

log = get_logger("asa.launcher.bootstrap")

VCREDIST_KEY = r"SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes\x64"
VCREDIST_WINGET_ID = "Microsoft.VCRedist.2015+.x64"

STEAMCMD_URL_WINDOWS = "https://steamcdn-a.akamaihd.net/client/installer/steamcmd.zip"
STEAMCMD_URL_LINUX = "https://steamcdn-a.akamaihd.net/client/installer/steamcmd_linux.tar.gz"


def vcredist_installed() -> bool:
    import winreg
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, VCREDIST_KEY) as key:
            value, _ = winreg.QueryValueEx(key, "Installed")
            return int(value) == 1
    except OSError:
        return False


def steamcmd_candidates(steamcmd_dir: Path) -> List[Path]:
    names = ["steamcmd.exe"] if os.name == "nt" else ["steamcmd.sh", "steamcmd"]
    dirs = [steamcmd_dir]
    if os.name == "nt":
        dirs += [Path(r"C:\steamcmd"), Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")) / "Steam"]
    else:
        dirs += [Path.home() / "steamcmd", Path("/usr/games"), Path("/opt/steamcmd")]
    return [d / n for d in dirs for n in names]


def download_steamcmd(target_dir: Path) -> None:
    url = STEAMCMD_URL_WINDOWS if os.name == "nt" else STEAMCMD_URL_LINUX
    target_dir.mkdir(parents=True, exist_ok=True)
    log.info("Downloading SteamCMD from %s ...", url)
    with tempfile.TemporaryDirectory() as tmp:
        archive = Path(tmp) / url.rsplit("/", 1)[-1]
        with urllib.request.urlopen(url, timeout=60) as r, open(archive, "wb") as fh:
            shutil.copyfileobj(r, fh)
        if archive.suffix == ".zip":
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(target_dir)
        else:
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(path=str(target_dir))
    sh = target_dir / "steamcmd.sh"
    if sh.exists():
        sh.chmod(0o755)


@dataclass
class BootstrapResult:
    changed: List[str] = field(default_factory=list)
    steamcmd: Optional[Path] = None


class InstallBootstrapper:
    def __init__(self, settings: Settings, layout: Layout, *,
                 reconciler: Optional[FirewallReconciler] = None,
                 run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 which: Callable[[str], Optional[str]] = shutil.which,
                 runtime_check: Optional[Callable[[], bool]] = None,
                 downloader: Callable[[Path], None] = download_steamcmd,
                 steamcmd_factory: Callable[[Path], SteamCMD] = SteamCMD,
                 is_windows: bool = os.name == "nt"):
        self.settings = settings
        self.layout = layout
        self.reconciler = reconciler
        self._run = run
        self._which = which
        self._runtime_check = runtime_check or vcredist_installed
        self._download = downloader
        self._steamcmd_factory = steamcmd_factory
        self._is_windows = is_windows

    # ---------------------------------------------------------------------- #
    def bootstrap(self, *, branch: Optional[str] = None, branch_password: Optional[str] = None,
                  rules: Sequence[FirewallRule] = (), skip_firewall: bool = False,
                  firewall_mandatory: bool = True) -> BootstrapResult:
        log.info("Bootstrapping ASA server install in %s", self.layout.root)
        result = BootstrapResult()
        fw = None
        if rules and not skip_firewall:
            fw = self.reconciler or FirewallReconciler()
            if firewall_mandatory:
                # fail before downloading anything
                fw.require_privileges()
        if self.ensure_runtime():
            result.changed.append("runtime")
        steamcmd, installed = self.ensure_steamcmd()
        result.steamcmd = steamcmd
        if installed:
            result.changed.append("steamcmd")
        if self.ensure_server_files(steamcmd, branch=branch, branch_password=branch_password):
            result.changed.append("server_files")
        if skip_firewall:
            log.info("Skipping firewall rules (--no-firewall).")
        elif fw is not None:
            if fw.reconcile(rules, mandatory=firewall_mandatory).created:
                result.changed.append("firewall")
        log.info("Bootstrap complete (changed: %s).", ", ".join(result.changed) or "nothing")
        return result

    def bootstrap_if_missing(self, **kwargs) -> Optional[BootstrapResult]:
        if self.layout.server_exe.exists():
            log.info("Server executable present at %s, bootstrap not needed.", self.layout.server_exe)
            return None
        log.info("Server executable missing at %s, running bootstrap.", self.layout.server_exe)
        return self.bootstrap(**kwargs)

    # ---------------------------------------------------------------------- #
    def ensure_runtime(self) -> bool:
        """Make sure the VC++ redistributable is installed. Returns True if it was installed now."""
        if not self._is_windows:
            log.info("Not on Windows, skipping Visual C++ runtime check.")
            return False
        if self._runtime_check():
            log.info("Visual C++ runtime already installed.")
            return False
        winget = self._which("winget")
        if not winget:
            raise DependencyInstallFailed(
                "Visual C++ 2015-2022 x64 runtime is missing and winget is not available. "
                "Install 'App Installer' from the Microsoft Store or install the runtime manually "
                "from https://aka.ms/vs/17/release/vc_redist.x64.exe, then re-run setup."
            )
        log.info("Installing Visual C++ runtime via winget ...")
        proc = self._run([winget, "install", "--id", VCREDIST_WINGET_ID, "-e", "--silent",
                          "--accept-package-agreements", "--accept-source-agreements"],
                         capture_output=True, text=True)
        if proc.returncode != 0 or not self._runtime_check():
            raise DependencyInstallFailed(
                f"winget could not install {VCREDIST_WINGET_ID} (rc={proc.returncode}). "
                "Install the runtime manually and re-run setup."
            )
        log.info("Visual C++ runtime installed.")
        return True

    def find_steamcmd(self) -> Optional[Path]:
        if self.settings.steamcmd_path:
            p = Path(self.settings.steamcmd_path)
            if p.is_file():
                return p
            log.warning("STEAMCMD_PATH %s does not exist.", p)
            return None
        for candidate in steamcmd_candidates(self.settings.resolved_steamcmd_dir()):
            if candidate.is_file():
                return candidate
        for name in ("steamcmd", "steamcmd.sh"):
            found = self._which(name)
            if found:
                return Path(found)
        return None

    def ensure_steamcmd(self):
        """Return (path, installed_now)."""
        found = self.find_steamcmd()
        if found:
            log.info("SteamCMD found at %s", found)
            return found, False
        target = self.settings.resolved_steamcmd_dir()
        log.info("SteamCMD not found, installing into %s", target)
        try:
            self._download(target)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise ToolNotFound(f"Could not download SteamCMD into {target}: {e}") from e
        # an explicit STEAMCMD_PATH that does not exist is not looked at again
        found = next((p for p in steamcmd_candidates(target) if p.parent == target and p.is_file()), None)
        if not found:
            raise ToolNotFound(f"SteamCMD still not found after installing into {target}.")
        log.info("SteamCMD installed at %s", found)
        return found, True

    def ensure_server_files(self, steamcmd: Path, *, branch: Optional[str] = None,
                            branch_password: Optional[str] = None) -> bool:
        if self.layout.server_exe.exists():
            log.info("Server files present (%s).", self.layout.server_exe)
            return False
        log.info("Installing server files (app %s) into %s ...", self.settings.asa_app_id, self.layout.root)
        self._steamcmd_factory(steamcmd).update_app(
            self.layout.root,
            self.settings.asa_app_id,
            login=self.settings.steam_login,
            validate=True,
            branch=branch,
            branch_password=branch_password,
        )
        return True
