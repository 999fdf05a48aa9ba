"""
Exception taxonomy of the launcher.

Everything derives from LauncherError so the CLI can turn any of them into
a one-line diagnostic and exit code 1. FirewallRuleCreationFailed is the
only one that components catch themselves and downgrade to a warning.
"""

from __future__ import annotations
from typing import Optional


class LauncherError(RuntimeError):
    """Base class for all fatal launcher conditions."""


class ExecutableNotFound(LauncherError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Server executable not found: {path}")


class ToolNotFound(LauncherError):
    pass


class DependencyInstallFailed(LauncherError):
    pass


class UpdateFailed(LauncherError):
    def __init__(self, code: int, detail: Optional[str] = None):
        self.code = code
        msg = f"SteamCMD update failed (rc={code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PermissionDenied(LauncherError):
    pass


class NoModsSpecified(LauncherError):
    def __init__(self, message: str = "Prefetch requires at least one mod id (--mods)."):
        super().__init__(message)


class FirewallRuleCreationFailed(LauncherError):
    def __init__(self, rule_name: str, detail: str = ""):
        self.rule_name = rule_name
        super().__init__(f"Could not create firewall rule {rule_name!r}" + (f": {detail}" if detail else ""))


class InstanceLocked(LauncherError):
    def __init__(self, lock_path, holder: Optional[str] = None):
        self.lock_path = lock_path
        self.holder = holder
        msg = f"Another launcher instance is already running for this install (lock: {lock_path}"
        if holder:
            msg += f", held by pid {holder}"
        super().__init__(msg + ")")
