from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

SERVER_EXE_REL = Path("ShooterGame") / "Binaries" / "Win64" / "ArkAscendedServer.exe"
LOGS_REL = Path("Saved") / "Logs"
LOCK_FILE_NAME = ".asa-launcher.lock"

@dataclass(frozen=True)
class Layout:
    root: Path
    server_exe: Path
    binaries_dir: Path
    logs_dir: Path
    lock_file: Path

def build_layout(root: Path) -> Layout:
    root = Path(root)
    exe = root / SERVER_EXE_REL
    # the server runs from its binary dir; logs live two levels above it
    binaries = exe.parent
    return Layout(
        root=root,
        server_exe=exe,
        binaries_dir=binaries,
        logs_dir=binaries.parent.parent / LOGS_REL,
        lock_file=root / LOCK_FILE_NAME,
    )
