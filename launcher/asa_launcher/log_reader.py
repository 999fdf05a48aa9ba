from __future__ import annotations
import base64
import binascii
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

@dataclass
class LogChunk:
    entries: List[str]
    cursor: str
    truncated: bool

def _encode_cursor(pos: int, size: int) -> str:
    payload = {"pos": pos, "size": size}
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")

def _decode_cursor(cursor: str) -> Optional[dict]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        data = json.loads(raw)
    except (ValueError, binascii.Error):
        return None
    return data if isinstance(data, dict) else None

def list_logs(logs_dir: Path) -> list[dict]:
    out = []
    if not logs_dir.is_dir():
        return out
    for p in sorted(logs_dir.glob("*.log")):
        st = p.stat()
        out.append({
            "id": p.stem,  # ShooterGame, ShooterGame_2, ...
            "path": p.name,
            "size_bytes": st.st_size,
            "modified": int(st.st_mtime),
        })
    return out

def read_tail(path: Path, tail_lines: int = 200, max_bytes: int = 256_000) -> LogChunk:
    # simple + safe: read up to max_bytes from end, then split lines
    st = path.stat()
    size = st.st_size
    read_from = max(0, size - max_bytes)
    with path.open("rb") as f:
        f.seek(read_from)
        data = f.read()
    text = data.decode("utf-8", errors="replace")
    lines = text.splitlines()
    chunk = lines[-tail_lines:] if tail_lines > 0 else lines
    # cursor points to end of file
    return LogChunk(entries=chunk, cursor=_encode_cursor(size, size), truncated=(len(lines) > len(chunk)))

def read_from_cursor(path: Path, cursor: str, max_lines: int = 200, max_bytes: int = 256_000) -> LogChunk:
    st = path.stat()
    size = st.st_size
    decoded = _decode_cursor(cursor) or {"pos": 0, "size": 0}
    pos = int(decoded.get("pos", 0))

    # handle truncate/rotate: if file shrank, start from 0
    if pos > size:
        pos = 0

    with path.open("rb") as f:
        f.seek(pos)
        data = f.read(max_bytes)

    text = data.decode("utf-8", errors="replace")
    lines = text.splitlines()
    out_lines = lines[:max_lines]
    truncated = len(lines) > len(out_lines)

    if truncated:
        consumed = ("\n".join(out_lines) + "\n").encode("utf-8", errors="replace")
        next_pos = pos + len(consumed)
    else:
        next_pos = min(size, pos + len(data))

    return LogChunk(entries=out_lines, cursor=_encode_cursor(next_pos, size), truncated=truncated)


# filesystem mtimes lag the wall clock slightly
MTIME_SLACK = 2.0


def _file_id(st: os.stat_result) -> Tuple[int, ...]:
    if os.name == "nt":
        return st.st_dev, st.st_ino, int(getattr(st, "st_birthtime", st.st_ctime) * 1e6)
    return st.st_dev, st.st_ino


@dataclass
class _FileState:
    pos: int = 0
    partial: str = ""


@dataclass
class LogTail:
    """
    Incremental reader over every ``*.log`` in a directory.

    Each call to ``read_new_lines`` returns only complete lines written since
    the previous call; an unterminated last line is held back until its
    newline arrives so a marker is never split across two reads. A file that
    shrank is read again from the start.

    Positions belong to the file, not its name: when the server moves
    ``ShooterGame.log`` aside and starts a new one, the new file is read from
    its first byte and the moved one continues where it was.

    With ``since`` set, a file first seen with an older mtime (a backup the
    server rotated away) is only followed from its current end.
    """

    logs_dir: Path
    pattern: str = "*.log"
    since: Optional[float] = None
    _files: Dict[Tuple[int, ...], _FileState] = field(default_factory=dict)

    def read_new_lines(self) -> List[str]:
        lines: List[str] = []
        if not self.logs_dir.is_dir():
            return lines
        for p in sorted(self.logs_dir.glob(self.pattern)):
            try:
                st = p.stat()
                size = st.st_size
                fid = _file_id(st)
                state = self._files.get(fid)
                if state is None:
                    stale = self.since is not None and st.st_mtime < self.since - MTIME_SLACK
                    state = self._files[fid] = _FileState(pos=size if stale else 0)
                if size < state.pos:
                    state.pos, state.partial = 0, ""
                with p.open("rb") as f:
                    f.seek(state.pos)
                    data = f.read()
            except OSError:
                # the server may be holding or rotating the file; try next poll
                continue
            state.pos += len(data)
            text = state.partial + data.decode("utf-8", errors="replace")
            parts = text.split("\n")
            state.partial = parts.pop()
            lines.extend(part.rstrip("\r") for part in parts)
        return lines

    def skip_existing(self) -> None:
        """Position every current file at its end so only new output is read."""
        if not self.logs_dir.is_dir():
            return
        for p in self.logs_dir.glob(self.pattern):
            try:
                st = p.stat()
            except OSError:
                continue
            self._files[_file_id(st)] = _FileState(pos=st.st_size)

    def pending(self) -> List[str]:
        """Unterminated trailing lines currently held back, one per file."""
        return [s.partial for s in self._files.values() if s.partial]
