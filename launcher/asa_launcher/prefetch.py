"""
prefetch.py — Headless run that waits for mod downloads
-------------------------------------------------------
Idle -> Launching -> Polling -> (Completed | TimedOut) -> Terminating -> Done

The server is started with extra headless flags so it fetches the configured
mods, the server log directory is polled for progress/completion markers and
the process is killed once the downloads are done or the timeout expires.
A timeout is a soft failure: it is logged as a warning and the run still
ends in Done.
"""

from __future__ import annotations
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
from .args import build_launch_args, merge_tokens
from .errors import ExecutableNotFound, NoModsSpecified
from .fs_layout import Layout
from .instance_lock import InstanceLock
from .log_reader import LogTail
from .logging_setup import get_logger
from .models import ServerConfig
from .process_runner import ProcessRunner

log = get_logger("asa.launcher.prefetch")

PREFETCH_ARGS = ("-server", "-log", "-nographics")


class PrefetchState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    TERMINATING = "terminating"
    DONE = "done"


@dataclass
class PrefetchResult:
    outcome: str  # completed | timed_out | exited
    elapsed: float
    progress_seen: int

    @property
    def completed(self) -> bool:
        return self.outcome == "completed"


class PrefetchMonitor:
    def __init__(self, layout: Layout, config: ServerConfig, *,
                 timeout: float = 20 * 60,
                 poll_interval: float = 10.0,
                 progress_marker: str = "Downloading mod",
                 complete_marker: str = "Mod download complete",
                 ignore_existing_logs: bool = True,
                 runner: Optional[ProcessRunner] = None,
                 lock: Optional[InstanceLock] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.layout = layout
        self.config = config
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.progress_marker = progress_marker
        self.complete_marker = complete_marker
        self.ignore_existing_logs = ignore_existing_logs
        self.runner = runner or ProcessRunner()
        self.lock = lock if lock is not None else InstanceLock(layout.lock_file)
        self._clock = clock
        self._sleep = sleep
        self.state = PrefetchState.IDLE
        self.history: List[PrefetchState] = [self.state]

    def _set(self, state: PrefetchState) -> None:
        self.state = state
        self.history.append(state)
        log.debug("prefetch -> %s", state.value)

    def launch_args(self) -> List[str]:
        return merge_tokens(build_launch_args(self.config), PREFETCH_ARGS)

    # ---------------------------------------------------------------------- #
    def run(self) -> PrefetchResult:
        if not self.config.mods:
            raise NoModsSpecified()
        exe = self.layout.server_exe
        if not exe.is_file():
            raise ExecutableNotFound(exe)

        with self.lock:
            self._set(PrefetchState.LAUNCHING)
            tail = LogTail(self.layout.logs_dir, since=time.time())
            if self.ignore_existing_logs:
                tail.skip_existing()
            args = self.launch_args()
            log.info("Prefetching %d mod(s): %s", len(self.config.mods), ", ".join(self.config.mods))
            handle = self.runner.start("prefetch", exe, args, cwd=self.layout.binaries_dir)
            started = self._clock()
            progress = 0
            outcome = "exited"
            try:
                self._set(PrefetchState.POLLING)
                while True:
                    done = False
                    for line in tail.read_new_lines():
                        if self.progress_marker in line:
                            progress += 1
                            log.info("Mod download in progress: %s", line.strip())
                        if self.complete_marker in line:
                            done = True
                    if not done:
                        done = any(self.complete_marker in p for p in tail.pending())

                    elapsed = self._clock() - started
                    if done:
                        outcome = "completed"
                        self._set(PrefetchState.COMPLETED)
                        log.info("Mod downloads complete after %.0fs.", elapsed)
                        break
                    if elapsed >= self.timeout:
                        outcome = "timed_out"
                        self._set(PrefetchState.TIMED_OUT)
                        log.warning("Mod downloads did not finish within %.0f minutes; stopping the server. "
                                    "Check %s manually.", self.timeout / 60, self.layout.logs_dir)
                        break
                    rc = handle.poll()
                    if rc is not None:
                        log.warning("Server exited on its own (rc=%s) before mod downloads completed.", rc)
                        break
                    self._sleep(min(self.poll_interval, max(self.timeout - elapsed, 0)))
            finally:
                self._set(PrefetchState.TERMINATING)
                handle.kill()
                handle.wait()
                self._set(PrefetchState.DONE)

        return PrefetchResult(outcome=outcome, elapsed=self._clock() - started, progress_seen=progress)
