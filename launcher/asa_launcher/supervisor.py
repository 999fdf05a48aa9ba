"""
supervisor.py — Restart loop for the ASA dedicated server
---------------------------------------------------------
Idle -> Launching -> Running -> Exited -> (Restarting -> Launching | Stopped)

The loop blocks on the child's exit; it never polls. A non-zero exit code is
reported, not raised. Restarts are unlimited while auto-restart is on; only
request_stop() (wired to SIGINT/SIGTERM by the CLI) ends the loop, and it
takes the running child down with it.
"""

from __future__ import annotations
import signal
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence
from .args import format_command
from .errors import ExecutableNotFound
from .fs_layout import Layout
from .instance_lock import InstanceLock
from .logging_setup import get_logger
from .process_runner import ProcessHandle, ProcessRunner

log = get_logger("asa.launcher.supervisor")

FAST_EXIT_SECONDS = 1.0


class SupervisorState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    EXITED = "exited"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class ProcessSupervisor:
    def __init__(self, layout: Layout, args: Sequence[str], *,
                 auto_restart: bool = True,
                 restart_delay: float = 5.0,
                 runner: Optional[ProcessRunner] = None,
                 lock: Optional[InstanceLock] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Optional[Callable[[float], bool]] = None,
                 stop_grace: float = 10.0):
        self.layout = layout
        self.args: List[str] = list(args)
        self.auto_restart = auto_restart
        self.restart_delay = restart_delay
        self.runner = runner or ProcessRunner()
        self.lock = lock if lock is not None else InstanceLock(layout.lock_file)
        self._clock = clock
        self._stop_grace = stop_grace
        self._stop = threading.Event()
        # interruptible: returns True when a stop arrived during the wait
        self._sleep = sleep or self._stop.wait
        self._current: Optional[ProcessHandle] = None
        self._guard = threading.RLock()
        self._kill_timer: Optional[threading.Timer] = None
        self._warned_fast_exit = False
        self.state = SupervisorState.IDLE
        self.history: List[SupervisorState] = [self.state]
        self.launches = 0
        self.last_exit_code: Optional[int] = None

    def _set(self, state: SupervisorState) -> None:
        self.state = state
        self.history.append(state)
        log.debug("supervisor -> %s", state.value)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # ---------------------------------------------------------------------- #
    def run(self) -> Optional[int]:
        exe = self.layout.server_exe
        if not exe.is_file():
            raise ExecutableNotFound(exe)

        with self.lock:
            while True:
                self._set(SupervisorState.LAUNCHING)
                log.info("Launch #%d: %s", self.launches + 1, format_command(exe.resolve(), self.args))
                started = self._clock()
                handle = self.runner.start("server", exe, self.args, cwd=self.layout.binaries_dir)
                with self._guard:
                    self._current = handle
                self.launches += 1
                self._set(SupervisorState.RUNNING)
                if self._stop.is_set():
                    handle.terminate(self._stop_grace)

                rc = handle.wait()
                with self._guard:
                    self._current = None
                    if self._kill_timer is not None:
                        self._kill_timer.cancel()
                        self._kill_timer = None
                self.last_exit_code = rc
                self._set(SupervisorState.EXITED)
                log.warning("Server exited with code %s", rc)

                if self._stop.is_set() or not self.auto_restart:
                    if self._stop.is_set():
                        log.info("Stop requested, not restarting.")
                    else:
                        log.info("Auto-restart disabled, stopping.")
                    break

                if self._clock() - started < FAST_EXIT_SECONDS and not self._warned_fast_exit:
                    self._warned_fast_exit = True
                    log.warning("Server exited within %.0fs of launch; restarts are unlimited, "
                                "stop the launcher if it keeps failing.", FAST_EXIT_SECONDS)

                self._set(SupervisorState.RESTARTING)
                log.info("Restarting in %s seconds ...", self.restart_delay)
                if self._sleep(self.restart_delay) or self._stop.is_set():
                    log.info("Stop requested during restart delay.")
                    break

        self._set(SupervisorState.STOPPED)
        return self.last_exit_code

    # ---------------------------------------------------------------------- #
    def request_stop(self) -> None:
        """
        Skip any further restart and take down the running child.

        Safe to call from a signal handler: it only sends signals. The child is
        killed if it is still alive after the grace period, or right away on a
        second request.
        """
        first = not self._stop.is_set()
        self._stop.set()
        with self._guard:
            handle = self._current
        if handle is None:
            return
        if first:
            handle.terminate(None)
            timer = threading.Timer(self._stop_grace, handle.kill)
            timer.daemon = True
            with self._guard:
                self._kill_timer = timer
            timer.start()
        else:
            handle.kill()

    def install_signal_handlers(self) -> Callable[[], None]:
        """Route SIGINT/SIGTERM to request_stop. Returns a callable restoring the old handlers."""
        previous = {}

        def _handler(signum, frame):
            log.info("Received signal %s, stopping server.", signum)
            self.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _handler)

        def _restore() -> None:
            for sig, old in previous.items():
                signal.signal(sig, old)

        return _restore
