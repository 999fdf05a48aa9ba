"""
Shared fakes for launcher tests: no real server processes, SteamCMD runs or
firewall changes happen anywhere in the suite.
"""

import pytest
from pathlib import Path

from asa_launcher.fs_layout import build_layout
from asa_launcher.models import FirewallRule


class FakeHandle:
    """Stands in for process_runner.ProcessHandle."""

    def __init__(self, rc=0, on_wait=None, exits_on_its_own=False):
        self.rc = rc
        self.on_wait = on_wait
        self.alive = not exits_on_its_own
        self.terminated = False
        self.killed = False
        self.pid = 4242

    def wait(self):
        if self.on_wait:
            self.on_wait(self)
        self.alive = False
        return self.rc

    def poll(self):
        return None if self.alive else self.rc

    def terminate(self, timeout=10.0):
        self.terminated = True
        self.alive = False

    def kill(self):
        self.killed = True
        self.alive = False


class FakeRunner:
    """Records every launch; ``make_handle(n)`` builds the handle for launch n (1-based)."""

    def __init__(self, make_handle=None):
        self.make_handle = make_handle or (lambda n: FakeHandle())
        self.calls = []
        self.handles = []

    def start(self, name, executable, args, *, cwd):
        self.calls.append({"name": name, "executable": executable, "args": list(args), "cwd": cwd})
        h = self.make_handle(len(self.calls))
        self.handles.append(h)
        return h


class FakeFirewallStore:
    def __init__(self, existing=(), fail=()):
        self.names = set(existing)
        self.fail = set(fail)
        self.created = []

    def exists(self, name):
        return name in self.names

    def create(self, rule: FirewallRule):
        from asa_launcher.errors import FirewallRuleCreationFailed
        if rule.name in self.fail:
            raise FirewallRuleCreationFailed(rule.name, "access denied")
        self.created.append(rule)
        self.names.add(rule.name)


class FakeClock:
    """Monotonic clock advanced only by ``sleep``; hooks fire when time passes a mark."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []
        self.hooks = []

    def __call__(self):
        return self.now

    def at(self, when, fn):
        self.hooks.append((when, fn))

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        for when, fn in list(self.hooks):
            if self.now >= when:
                self.hooks.remove((when, fn))
                fn()


@pytest.fixture
def install_root(tmp_path) -> Path:
    return tmp_path / "asa"


@pytest.fixture
def layout(install_root):
    """Layout with a (dummy) server executable and an empty log directory."""
    lay = build_layout(install_root)
    lay.server_exe.parent.mkdir(parents=True, exist_ok=True)
    lay.server_exe.write_bytes(b"MZ")
    lay.logs_dir.mkdir(parents=True, exist_ok=True)
    return lay


@pytest.fixture
def empty_layout(install_root):
    """Layout of an install that has not been bootstrapped yet."""
    return build_layout(install_root)
