"""
firewall.py — Inbound firewall rules for the game, query and RCON ports
-----------------------------------------------------------------------
Rules are reconciled by name only: a missing rule is created, an existing
one is left untouched even when its port or protocol no longer matches.
Rule names carry the port, so changing a port yields a new rule while the
old one stays behind until an operator removes it.
"""

from __future__ import annotations
import ctypes
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence
from .errors import FirewallRuleCreationFailed, PermissionDenied
from .logging_setup import get_logger
from .models import FirewallRule

log = get_logger("asa.launcher.firewall")

Runner = Callable[..., subprocess.CompletedProcess]


def is_elevated() -> bool:
    if os.name == "nt":
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


class FirewallStore:
    """Query-by-name / create-inbound-allow interface to the OS rule store."""

    def exists(self, name: str) -> bool:
        raise NotImplementedError

    def create(self, rule: FirewallRule) -> None:
        raise NotImplementedError


class NetshFirewallStore(FirewallStore):
    def __init__(self, run: Runner = subprocess.run):
        self._run = run

    def exists(self, name: str) -> bool:
        proc = self._run(["netsh", "advfirewall", "firewall", "show", "rule", f"name={name}"],
                         capture_output=True, text=True)
        return proc.returncode == 0

    def create(self, rule: FirewallRule) -> None:
        cmd = [
            "netsh", "advfirewall", "firewall", "add", "rule",
            f"name={rule.name}", "dir=in", "action=allow",
            f"protocol={rule.protocol.value}", f"localport={rule.port}",
        ]
        proc = self._run(cmd, capture_output=True, text=True)
        if proc.returncode != 0:
            raise FirewallRuleCreationFailed(rule.name, (proc.stdout or proc.stderr or "").strip())


class UfwFirewallStore(FirewallStore):
    """ufw has no rule names; the name is kept in the rule comment."""

    def __init__(self, run: Runner = subprocess.run):
        self._run = run

    def exists(self, name: str) -> bool:
        proc = self._run(["ufw", "status"], capture_output=True, text=True)
        if proc.returncode != 0:
            return False
        return any(line.rstrip().endswith(f"# {name}") for line in proc.stdout.splitlines())

    def create(self, rule: FirewallRule) -> None:
        cmd = ["ufw", "allow", "in", f"{rule.port}/{rule.protocol.value.lower()}", "comment", rule.name]
        proc = self._run(cmd, capture_output=True, text=True)
        if proc.returncode != 0:
            raise FirewallRuleCreationFailed(rule.name, (proc.stderr or proc.stdout or "").strip())


def default_store() -> Optional[FirewallStore]:
    if os.name == "nt":
        return NetshFirewallStore()
    if shutil.which("ufw"):
        return UfwFirewallStore()
    return None


@dataclass
class ReconcileResult:
    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class FirewallReconciler:
    def __init__(self, store: Optional[FirewallStore] = None, *,
                 elevated: Optional[Callable[[], bool]] = None):
        self.store = store if store is not None else default_store()
        self._elevated = elevated or is_elevated

    def require_privileges(self) -> None:
        if not self._elevated():
            raise PermissionDenied("Firewall rules need administrator privileges. "
                                   "Re-run from an elevated shell or pass --no-firewall.")

    def reconcile(self, rules: Sequence[FirewallRule], *, mandatory: bool = True) -> ReconcileResult:
        """
        Create every rule whose name is not yet present.

        Without elevation the whole run is refused: ``PermissionDenied`` when
        ``mandatory``, otherwise one warning and every rule reported as failed.
        """
        result = ReconcileResult()
        if mandatory:
            self.require_privileges()
        elif not self._elevated():
            log.warning("Firewall rules need administrator privileges. Continuing without firewall rules.")
            result.failed = [r.name for r in rules]
            return result
        if self.store is None:
            log.warning("No supported firewall found on this system, skipping %d rule(s).", len(rules))
            result.failed = [r.name for r in rules]
            return result

        for rule in rules:
            if self.store.exists(rule.name):
                log.info("Firewall rule %r already present, leaving it untouched.", rule.name)
                result.skipped.append(rule.name)
                continue
            try:
                self.store.create(rule)
            except FirewallRuleCreationFailed as e:
                log.warning("%s", e)
                result.failed.append(rule.name)
                continue
            log.info("Created firewall rule %r (%s %s inbound).", rule.name, rule.protocol.value, rule.port)
            result.created.append(rule.name)
        return result
