from __future__ import annotations
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from .args import format_command
from .logging_setup import get_logger

log = get_logger("asa.launcher.proc")

@dataclass
class ProcessHandle:
    name: str
    executable: Path
    cwd: Path
    args: List[str]
    proc: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.proc.pid

    def wait(self) -> int:
        return self.proc.wait()

    def poll(self) -> Optional[int]:
        return self.proc.poll()

    def terminate(self, timeout: Optional[float] = 10.0) -> None:
        """terminate, then kill once ``timeout`` runs out. ``None`` only sends the signal."""
        if self.proc.poll() is not None:
            return
        log.info("Stopping %s (pid=%s)", self.name, self.proc.pid)
        try:
            self.proc.terminate()
            if timeout is not None:
                self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.kill()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        if self.proc.poll() is not None:
            return
        log.warning("Killing %s (pid=%s)", self.name, self.proc.pid)
        try:
            self.proc.kill()
        except OSError as e:
            # already gone or not killable; nothing left to do
            log.debug("kill %s: %s", self.name, e)

class ProcessRunner:
    def start(self, name: str, executable: Path, args: List[str], *, cwd: Path) -> ProcessHandle:
        log.debug("Starting %s: %s (cwd=%s)", name, format_command(executable, args), cwd)
        proc = subprocess.Popen([str(executable)] + list(args), cwd=str(cwd))
        return ProcessHandle(name=name, executable=Path(executable), cwd=Path(cwd), args=list(args), proc=proc)
